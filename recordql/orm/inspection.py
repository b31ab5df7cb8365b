"""
Inspection module - contains utilities for inspecting Model rows.
"""
import typing

from recordql import db as md_db
from recordql.orm.schema import table as md_table


def get_row_bind(row: 'md_table.Model') -> 'md_db.DatabaseInterface':
    """
    Gets the :class:`.DatabaseInterface` a :class:`.Model` row runs its queries with.

    :param row: The :class:`.Model` instance to inspect.
    """
    return row._bind


def get_pk(row: 'md_table.Model', as_tuple: bool = True):
    """
    Gets the primary key for a Model row.

    :param row: The :class:`.Model` instance to extract the PK from.
    :param as_tuple: Should this PK always be returned as a tuple?
    """
    pk = row.primary_key
    if as_tuple and not isinstance(pk, tuple):
        return pk,

    return pk


def get_row_history(row: 'md_table.Model') -> typing.Dict[str, typing.Dict[str, typing.Any]]:
    """
    Gets the history of every dirty column of a row.

    :param row: The :class:`.Model` instance to inspect.
    :return: A mapping of column name -> ``{"old": ..., "new": ...}``.
    """
    return {
        name: {"old": change.previous_value, "new": change.current_value}
        for name, change in row._history.items()
    }


def is_deleted(row: 'md_table.Model') -> bool:
    """
    Checks if a row has been deleted.
    """
    return row.is_deleted
