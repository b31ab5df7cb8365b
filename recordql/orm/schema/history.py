"""
Classes for the history API.

.. currentmodule:: recordql.orm.schema.history
"""
import abc
from typing import Any


class ColumnChange(abc.ABC):
    """
    Represents a column change. This object stores the old value of a column, and the new value
    of a column.

    For example, a simple change could be:

    .. code-block:: python3

        user = User(db).find_one(1)
        user.username = "admin_2"

    A new ColumnChange object is then stored in the row, ready to be retrieved when the row is
    next saved. The columns with a change are the "dirty" columns of the row.
    """
    def __init__(self, column_name: str):
        """
        :param column_name: The name of the column this change is for.
        """
        self.column_name = column_name

    def __repr__(self):
        return "<{} column='{}'>".format(type(self).__name__, self.column_name)

    @property
    @abc.abstractmethod
    def previous_value(self) -> Any:
        """
        :return: The value of the column before the first change.
        """

    @property
    @abc.abstractmethod
    def current_value(self) -> Any:
        """
        :return: The current value for the column, i.e. after the change.
        """

    @abc.abstractmethod
    def handle_change(self, before: Any, after: Any) -> None:
        """
        Handles a change.

        :param before: The value of the column before the change.
        :param after: The value of the column after the change.
        """

    @abc.abstractmethod
    def handle_change_with_history(self, previous: 'ColumnChange', new: Any) -> None:
        """
        Handles a change with history.

        The previous history object is passed to this object, and after processing it will be
        deleted.

        :param previous: The previous :class:`.ColumnChange`.
        :param new: The new value being added.
        """


class ValueChange(ColumnChange):
    """
    Represents a basic value change on a column.
    """
    def __init__(self, column_name: str):
        super().__init__(column_name)

        #: The previous value of the column.
        self._previous = None

        #: The new value of the column.
        self._new = None

    @property
    def previous_value(self):
        return self._previous

    @property
    def current_value(self):
        return self._new

    def handle_change(self, before: Any, after: Any):
        self._previous = before
        self._new = after

    def handle_change_with_history(self, previous: 'ColumnChange', new: Any):
        # we don't care about any intermediate changes
        self._previous = previous.previous_value
        self._new = new
