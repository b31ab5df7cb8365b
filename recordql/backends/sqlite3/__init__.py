"""
SQLite3 backends.

.. autosummary::
    :toctree:

    sqlite3
"""
from pkgutil import extend_path

from recordql.backends.base import BaseDialect
from recordql.exc import ConfigurationError

__path__ = extend_path(__path__, __name__)

DEFAULT_CONNECTOR = "sqlite3"

#: Schema field type name -> SQLite3 column type.
_TYPES = {
    "id": "INTEGER",
    "int": "INTEGER",
    "integer": "INTEGER",
    "smallint": "SMALLINT",
    "bigint": "BIGINT",
    "bool": "BOOLEAN",
    "boolean": "BOOLEAN",
    "float": "REAL",
    "real": "REAL",
    "decimal": "NUMERIC",
    "numeric": "NUMERIC",
    "string": "VARCHAR",
    "varchar": "VARCHAR",
    "text": "TEXT",
    "date": "DATE",
    "datetime": "TIMESTAMP",
    "timestamp": "TIMESTAMP",
    "blob": "BLOB",
}


class Sqlite3Dialect(BaseDialect):
    """
    The dialect for SQLite3.
    """

    @property
    def has_checkpoints(self):
        return True

    @property
    def has_engines(self):
        return False

    def get_column_type_sql(self, type_name, length=None):
        try:
            sql_type = _TYPES[type_name.lower()]
        except KeyError:
            raise ConfigurationError("Unknown schema type '{}'".format(type_name)) from None

        if length is not None and sql_type in ("VARCHAR", "NUMERIC"):
            return "{}({})".format(sql_type, length)

        return sql_type

    def get_autoincrement_sql(self):
        return "INTEGER PRIMARY KEY AUTOINCREMENT"
