"""
Contains the DDL session object.
"""
import io
import logging
import typing

from recordql.orm.schema import column as md_column
from recordql.orm.session import Session

logger = logging.getLogger(__name__)


class DDLSession(Session):
    """
    A session for executing DDL statements in.

    .. code-block:: python3

        with db.get_ddl_session() as sess:
            sess.create_table("book", *parse_schema({"id": {"type": "id"}}))
    """

    def create_table(self, table_name: str, *fields: 'md_column.SchemaField',
                     engine: str = None,
                     if_not_exists: bool = True):
        """
        Creates a table in this database.

        :param table_name: The name of the table.
        :param fields: The :class:`.SchemaField` objects to create columns for.
        :param engine: The storage engine, for dialects which take one.
        :param if_not_exists: Only create the table if it does not exist yet.
        """
        if not fields:
            raise ValueError("Cannot create a table with no columns")

        sql = io.StringIO()
        sql.write("CREATE TABLE ")
        if if_not_exists:
            sql.write("IF NOT EXISTS ")

        sql.write(table_name)

        dialect = self.bind.dialect
        primary_key_columns = []
        column_fields = []
        indexes = []

        for field in fields:
            if not isinstance(field, md_column.SchemaField):
                raise TypeError("Cannot create a table with a {}".format(type(field)))

            column_fields.append(field.get_ddl_sql(dialect))
            # auto incrementing keys declare themselves as the primary key
            if field.primary_key and not field.autoincrement:
                primary_key_columns.append(field)

            if field.index:
                indexes.append(field)

        # this uses spacing to prettify the generated SQL a bit
        sql.write("(\n    ")
        sql.write(",\n    ".join(column_fields))

        if primary_key_columns:
            sql.write(",\n    PRIMARY KEY (")
            sql.write(", ".join(col.name for col in primary_key_columns))
            sql.write(")")

        sql.write("\n)")
        if engine is not None and dialect.has_engines:
            sql.write(" ENGINE={}".format(engine))

        sql.write(";")

        logger.debug("Creating table {}".format(table_name))
        result = self.execute(sql.getvalue())

        for field in indexes:
            self.create_index(table_name, field.name, if_not_exists=if_not_exists)

        return result

    def create_index(self, table_name: str, column_name: str, *,
                     unique: bool = False,
                     if_not_exists: bool = True):
        """
        Creates an index on one column of a table.

        :param table_name: The table to create the index on.
        :param column_name: The column to index.
        :param unique: If this index is unique.
        :param if_not_exists: Only create the index if it does not exist yet.
        """
        base = io.StringIO()
        base.write("CREATE ")
        if unique:
            base.write("UNIQUE ")
        base.write("INDEX ")
        if if_not_exists:
            base.write("IF NOT EXISTS ")
        base.write("ix_{}_{}".format(table_name, column_name))
        base.write(" ON ")
        base.write(table_name)
        base.write(" ({});".format(column_name))

        return self.execute(base.getvalue())

    def drop_table(self, table_name: str, *,
                   if_exists: bool = True):
        """
        Drops a table.

        :param table_name: The name of the table to drop.
        :param if_exists: Should we should only attempt to drop tables that exist?
        """
        base = io.StringIO()
        base.write("DROP TABLE ")
        if if_exists:
            base.write("IF EXISTS ")
        base.write(table_name)
        base.write(";")

        return self.execute(base.getvalue())

    def table_exists(self, table_name: str) -> bool:
        """
        Checks if a table exists.
        """
        row = self.fetch("SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                         [table_name])
        return row is not None

    def get_columns(self, table_name: str) -> typing.List[str]:
        """
        Gets the column names of a table, in order.
        """
        with self.cursor("PRAGMA table_info({})".format(table_name)) as cur:
            return [row["name"] for row in cur.fetch_all()]
