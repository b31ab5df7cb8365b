"""
Schema fields, parsed from the ``__schema__`` descriptor of a model.
"""
import io
import logging
import typing

from recordql.backends.base import BaseDialect
from recordql.exc import ConfigurationError
from recordql.sentinels import NO_DEFAULT

logger = logging.getLogger(__name__)


class SchemaField(object):
    """
    Represents one column in the schema descriptor of a model.

    .. code-block:: python3

        class Book(Model, table_name="book"):
            __schema__ = {
                "id": {"type": "id"},
                "title": {"type": "string", "length": 125, "null": False},
                "author_id": {"type": "int", "index": True},
            }

    The ``id`` type is an auto incrementing primary key.
    """

    def __init__(self, name: str, type_: str, *,
                 length: int = None,
                 nullable: bool = True,
                 default: typing.Any = NO_DEFAULT,
                 unique: bool = False,
                 primary_key: bool = False,
                 index: bool = False):
        """
        :param name: The name of this column.
        :param type_: The schema type name of this column, e.g. ``string``.
        :param length: The length of this column, for types with one.
        :param nullable: If this column can be NULL.
        :param default: The default value of this column.
        :param unique: If this column has a unique constraint.
        :param primary_key: If this column is the primary key.
        :param index: If an index should be created on this column.
        """
        self.name = name
        self.type_name = type_
        self.length = length
        self.nullable = nullable
        self.default = default
        self.unique = unique
        self.primary_key = primary_key
        self.index = index

    def __repr__(self):
        return "<SchemaField name={} type={}>".format(self.name, self.type_name)

    @property
    def autoincrement(self) -> bool:
        """
        :return: If this column is an auto incrementing primary key.
        """
        return self.type_name == "id"

    @classmethod
    def from_descriptor(cls, name: str, properties: typing.Mapping[str, typing.Any]) \
            -> 'SchemaField':
        """
        Creates a field from one entry of a schema descriptor.

        :param name: The name of the field.
        :param properties: The properties of the field. ``type`` is required.
        """
        try:
            type_ = properties["type"]
        except KeyError:
            raise ConfigurationError("Schema field '{}' has no type".format(name)) from None

        return cls(name, type_,
                   length=properties.get("length"),
                   nullable=properties.get("null", True),
                   default=properties.get("default", NO_DEFAULT),
                   unique=properties.get("unique", False),
                   primary_key=properties.get("primary", type_ == "id"),
                   index=properties.get("index", False))

    def get_ddl_sql(self, dialect: BaseDialect) -> str:
        """
        Gets the column definition of this field for a CREATE TABLE statement.

        :param dialect: The dialect to get the column types from.
        """
        if self.autoincrement:
            return "{} {}".format(self.name, dialect.get_autoincrement_sql())

        base = io.StringIO()
        base.write(self.name)
        base.write(" ")
        base.write(dialect.get_column_type_sql(self.type_name, self.length))

        if not self.nullable:
            base.write(" NOT NULL")

        if self.unique:
            base.write(" UNIQUE")

        if self.default is not NO_DEFAULT:
            base.write(" DEFAULT ")
            base.write(_literal(self.default))

        return base.getvalue()


def _literal(value: typing.Any) -> str:
    # DDL can't take bound parameters
    if value is None:
        return "NULL"
    elif isinstance(value, bool):
        return str(int(value))
    elif isinstance(value, (int, float)):
        return str(value)

    return "'{}'".format(str(value).replace("'", "''"))


def parse_schema(schema: typing.Mapping[str, typing.Mapping[str, typing.Any]]) \
        -> typing.List[SchemaField]:
    """
    Parses a schema descriptor into a list of :class:`.SchemaField`.
    """
    return [SchemaField.from_descriptor(name, properties) for name, properties in schema.items()]
