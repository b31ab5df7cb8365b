"""
Main package for recordql - a synchronous Active Record micro-ORM with a fluent condition
builder and declarative associations.

.. currentmodule:: recordql

.. autosummary::
    :toctree:

    db
    orm
    backends

    exc
    utils
"""

__author__ = "recordql contributors"

__licence__ = "MIT"
__status__ = "Development"

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    # package is not installed
    pass

from recordql.backends.base import BaseConnector, BaseDialect, BaseResultSet, BaseTransaction, \
    QueryResult
# import helpers
from recordql.db import DatabaseInterface, DatabaseRegistry
from recordql.exc import *
from recordql.orm.inspection import get_pk, get_row_bind, get_row_history
from recordql.orm.query import ConditionBuilder
# orm
from recordql.orm.schema.column import SchemaField
from recordql.orm.schema.relationship import Association, AssociationKind, AssociationResult
from recordql.orm.schema.row import ActiveRecordRow, ResultSet
from recordql.orm.schema.table import Model, ModelMetadata, TableInfo, model_base
from recordql.orm.session import Session
