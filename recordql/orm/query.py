"""
Classes for query objects.
"""
import abc
import collections.abc
import logging
import typing

from recordql.orm import operators as md_operators
from recordql.sentinels import NO_VALUE
from recordql.utils import count_placeholders, is_sequence, placeholders

logger = logging.getLogger(__name__)


class ConditionBuilder(object):
    """
    Accumulates the conditions and options of a query.

    Conditions are appended with :meth:`.where` and its helpers, joined with AND unless
    :meth:`.or_` was called right before. :meth:`.wrap` closes everything added since the
    last wrap into one parenthesized group.

    .. code-block:: python3

        builder = ConditionBuilder()
        builder.where("a", 1).where("b", 2).wrap().or_().where("c", 3).where("d", 4).wrap()
        builder.generate_where().sql  # (a = ? AND b = ?) OR (c = ? AND d = ?)

    Every method returns the builder so calls can be chained.
    """

    #: The column used by :meth:`.where_pk`.
    primary_key_name = "id"

    def __init__(self):
        self._init_conditions()

    def _init_conditions(self):
        #: The closed (wrapped) groups, in creation order.
        self._groups = []  # type: typing.List[md_operators.ClauseGroup]

        #: The group clauses are currently appended to.
        self._open_group = md_operators.ClauseGroup()

        #: The operator for the next clause.
        self._pending_operator = md_operators.AND

        #: The columns to select. Empty means every column.
        self.selected_columns = []

        #: The sorters for ORDER BY.
        self.orderers = []  # type: typing.List[md_operators.Sorter]

        #: The columns for GROUP BY.
        self.groupers = []

        #: The limit on the number of rows returned from this query.
        self.row_limit = None

        #: The offset to start fetching rows from.
        self.row_offset = None

    def reset(self) -> 'ConditionBuilder':
        """
        Clears every condition and option on this builder.
        """
        self._init_conditions()
        return self

    @property
    def has_conditions(self) -> bool:
        """
        :return: If any condition has been added to this builder.
        """
        return bool(self._groups) or bool(self._open_group.clauses)

    # boolean operators
    def and_(self) -> 'ConditionBuilder':
        """
        Joins the next condition with AND. This is the default.
        """
        self._pending_operator = md_operators.AND
        return self

    def or_(self) -> 'ConditionBuilder':
        """
        Joins the next condition with OR.

        Called right after :meth:`.wrap`, this joins the next group to the previous one with OR.
        """
        self._pending_operator = md_operators.OR
        return self

    def wrap(self) -> 'ConditionBuilder':
        """
        Closes the conditions added since the last wrap into one parenthesized group.

        Wrapping with nothing added since the last wrap does nothing.
        """
        if not self._open_group.clauses:
            return self

        self._groups.append(self._open_group)
        self._open_group = md_operators.ClauseGroup()
        return self

    def add_condition(self, fragment: str, parameters: typing.Sequence = ()) \
            -> 'ConditionBuilder':
        """
        Adds a condition fragment to the open group, using the pending operator.

        :param fragment: The SQL fragment, with one ``?`` per parameter.
        :param parameters: The parameters to bind, in placeholder order.
        """
        parameters = list(parameters)
        expected = count_placeholders(fragment)
        if expected != len(parameters):
            raise ValueError("Condition '{}' has {} placeholders but {} parameters were given"
                             .format(fragment, expected, len(parameters)))

        clause = md_operators.Clause(self._pending_operator, fragment, parameters)
        self._open_group.add(clause)
        # reset to AND, OR must be asked for each time
        self._pending_operator = md_operators.AND
        return self

    def add_operator(self, operator: 'md_operators.BaseOperator') -> 'ConditionBuilder':
        """
        Adds the SQL generated by an operator as a condition.
        """
        response = operator.generate_sql()
        return self.add_condition(response.sql, response.parameters)

    def where(self, condition: 'typing.Union[str, typing.Mapping[str, typing.Any]]',
              *parameters: typing.Any) -> 'ConditionBuilder':
        """
        Adds a condition to the query.

        .. code-block:: python3

            query.where("name", "bob")                     # name = ?
            query.where("id", [1, 2, 3])                   # id IN (?, ?, ?)
            query.where("deleted_at", None)                # deleted_at IS NULL
            query.where("age > ? AND age < ?", 18, 65)     # parameters bound in order
            query.where("age > ? AND age < ?", [18, 65])
            query.where("email IS NOT NULL")
            query.where({"name": "bob", "age > ?": 18})    # one condition per item

        :param condition: A column name, a SQL fragment with ``?`` placeholders, or a mapping of
            either to their parameters.
        :param parameters: The parameters for the condition.
        :return: This query.
        """
        if isinstance(condition, collections.abc.Mapping):
            for key, value in condition.items():
                self.where(key, value)

            return self

        if not parameters:
            return self.add_condition(condition)

        if count_placeholders(condition):
            if len(parameters) == 1 and is_sequence(parameters[0]):
                parameters = parameters[0]

            return self.add_condition(condition, parameters)

        if len(parameters) > 1:
            raise TypeError("Condition '{}' has no placeholders for {} parameters"
                            .format(condition, len(parameters)))

        value = parameters[0]
        if value is None:
            return self.add_operator(md_operators.IsNull(condition))
        elif is_sequence(value):
            return self.add_operator(md_operators.In(condition, value))

        return self.add_operator(md_operators.Eq(condition, value))

    def where_not(self, column: str, value: typing.Any) -> 'ConditionBuilder':
        """
        Adds a ``column != ?`` condition. Lists become NOT IN, and None becomes IS NOT NULL.
        """
        if value is None:
            return self.where_not_null(column)
        elif is_sequence(value):
            return self.where_not_in(column, value)

        return self.add_operator(md_operators.NEq(column, value))

    def where_like(self, column: str, pattern: str) -> 'ConditionBuilder':
        """
        Adds a ``column LIKE ?`` condition.
        """
        return self.add_operator(md_operators.Like(column, pattern))

    def where_not_like(self, column: str, pattern: str) -> 'ConditionBuilder':
        """
        Adds a ``column NOT LIKE ?`` condition.
        """
        return self.add_operator(md_operators.NotLike(column, pattern))

    def where_gt(self, column: str, value: typing.Any) -> 'ConditionBuilder':
        return self.add_operator(md_operators.Gt(column, value))

    def where_gte(self, column: str, value: typing.Any) -> 'ConditionBuilder':
        return self.add_operator(md_operators.Gte(column, value))

    def where_lt(self, column: str, value: typing.Any) -> 'ConditionBuilder':
        return self.add_operator(md_operators.Lt(column, value))

    def where_lte(self, column: str, value: typing.Any) -> 'ConditionBuilder':
        return self.add_operator(md_operators.Lte(column, value))

    def where_in(self, column: 'typing.Union[str, typing.Sequence[str]]',
                 values: typing.Iterable) -> 'ConditionBuilder':
        """
        Adds a ``column IN (?, ...)`` condition.

        Passing a sequence of columns and a sequence of rows compares tuples:

        .. code-block:: python3

            query.where_in(("make", "model"), [("ford", "focus"), ("fiat", "panda")])
            # (make, model) IN ((?, ?), (?, ?))

        An empty list of values matches nothing.
        """
        return self.add_operator(md_operators.In(column, values))

    def where_not_in(self, column: 'typing.Union[str, typing.Sequence[str]]',
                     values: typing.Iterable) -> 'ConditionBuilder':
        """
        Adds a ``column NOT IN (?, ...)`` condition. An empty list of values matches everything.
        """
        return self.add_operator(md_operators.NotIn(column, values))

    def where_null(self, column: str) -> 'ConditionBuilder':
        return self.add_operator(md_operators.IsNull(column))

    def where_not_null(self, column: str) -> 'ConditionBuilder':
        return self.add_operator(md_operators.IsNotNull(column))

    def where_pk(self, value: typing.Any) -> 'ConditionBuilder':
        """
        Adds a condition on the primary key column.
        """
        return self.where(self.primary_key_name, value)

    # options
    def select(self, columns: 'typing.Union[str, typing.Iterable[str]]') -> 'ConditionBuilder':
        """
        Adds columns to select. Repeated calls add to the previous columns.
        """
        if isinstance(columns, str):
            columns = [columns]

        self.selected_columns.extend(columns)
        return self

    def order_by(self, column: str, direction: str = "ASC") -> 'ConditionBuilder':
        """
        Adds an ORDER BY column. Repeated calls add further sort columns.

        :param column: The column (or SQL expression) to order by.
        :param direction: ``ASC`` or ``DESC``.
        """
        sorter = md_operators.Sorter.get(direction)
        self.orderers.append(sorter(column))
        return self

    def group_by(self, column: str) -> 'ConditionBuilder':
        """
        Adds a GROUP BY column.
        """
        self.groupers.append(column)
        return self

    def limit(self, row_limit: int) -> 'ConditionBuilder':
        """
        Sets a limit of the number of rows that can be returned from this query.
        """
        self.row_limit = row_limit
        return self

    def offset(self, offset: int) -> 'ConditionBuilder':
        """
        Sets the offset of rows to start returning results from.
        """
        self.row_offset = offset
        return self

    # generation
    def generate_where(self) -> 'md_operators.OperatorResponse':
        """
        Generates the conditions of this builder, without the ``WHERE`` keyword.

        Closed groups are joined by their own operator. Conditions added after the last wrap
        are joined to them with AND.
        """
        final = []
        params = []
        for idx, group in enumerate(self._groups):
            response = group.generate_sql(wrapped=True)
            if idx:
                final.append(group.operator)
            final.append(response.sql)
            params.extend(response.parameters)

        if self._open_group.clauses:
            wrapped = bool(self._groups) and len(self._open_group) > 1
            response = self._open_group.generate_sql(wrapped=wrapped)
            if self._groups:
                final.append(md_operators.AND)
            final.append(response.sql)
            params.extend(response.parameters)

        return md_operators.OperatorResponse(" ".join(final), params)


class BaseQuery(abc.ABC):
    """
    A base query object, generating the SQL of one statement against one table.
    """

    def __init__(self, table_name: str):
        """
        :param table_name: The name of the table this query runs against.
        """
        self.table_name = table_name

    @abc.abstractmethod
    def generate_sql(self) -> typing.Tuple[str, list]:
        """
        Generates the SQL for this query.

        :return: A two item tuple, the SQL to use and the ordered list of params to pass.
        """


class ConditionalQuery(BaseQuery, metaclass=abc.ABCMeta):
    """
    A query scoped by the conditions of a :class:`.ConditionBuilder`.
    """

    def __init__(self, table_name: str, conditions: ConditionBuilder = None):
        super().__init__(table_name)

        #: The conditions for this query.
        self.conditions = conditions if conditions is not None else ConditionBuilder()

    def _write_where(self, fmt: str, params: list) -> str:
        if not self.conditions.has_conditions:
            return fmt

        response = self.conditions.generate_where()
        params.extend(response.parameters)
        return "{} WHERE {}".format(fmt, response.sql)


class SelectQuery(ConditionalQuery):
    """
    Represents a SELECT query.

    .. code-block:: python3

        builder = ConditionBuilder().where("author_id", 1).order_by("title").limit(10)
        sql, params = SelectQuery("book", builder).generate_sql()
        # SELECT * FROM book WHERE author_id = ? ORDER BY title ASC LIMIT 10
    """

    def generate_sql(self):
        params = []
        columns = ", ".join(self.conditions.selected_columns) or "*"
        fmt = "SELECT {} FROM {}".format(columns, self.table_name)
        fmt = self._write_where(fmt, params)

        if self.conditions.groupers:
            fmt += " GROUP BY {}".format(", ".join(self.conditions.groupers))

        if self.conditions.orderers:
            orders = (sorter.generate_sql().sql for sorter in self.conditions.orderers)
            fmt += " ORDER BY {}".format(", ".join(orders))

        if self.conditions.row_limit is not None:
            fmt += " LIMIT {}".format(int(self.conditions.row_limit))

        if self.conditions.row_offset is not None:
            if self.conditions.row_limit is None:
                # sqlite3 has no OFFSET without LIMIT
                fmt += " LIMIT -1"
            fmt += " OFFSET {}".format(int(self.conditions.row_offset))

        return fmt, params


class CountQuery(SelectQuery):
    """
    Represents a SELECT COUNT(*) query over the conditions of a builder.
    """

    def generate_sql(self):
        params = []
        fmt = "SELECT COUNT(*) AS count FROM {}".format(self.table_name)
        fmt = self._write_where(fmt, params)
        return fmt, params


class InsertQuery(BaseQuery):
    """
    Represents an INSERT query of one or many rows.

    Every row must have the same columns; the columns of the first row set the column order.
    """

    def __init__(self, table_name: str):
        super().__init__(table_name)

        #: A list of rows to generate the insert statement for.
        self.rows_to_insert = []  # type: typing.List[typing.Mapping[str, typing.Any]]

    def rows(self, *rows: typing.Mapping[str, typing.Any]) -> 'InsertQuery':
        """
        Adds a set of rows to the query.
        """
        for row in rows:
            self.add_row(row)

        return self

    def add_row(self, row: typing.Mapping[str, typing.Any]) -> 'InsertQuery':
        self.rows_to_insert.append(row)
        return self

    def generate_sql(self):
        if not self.rows_to_insert:
            raise ValueError("No rows to insert")

        columns = list(self.rows_to_insert[0].keys())
        if not columns and len(self.rows_to_insert) == 1:
            return "INSERT INTO {} DEFAULT VALUES".format(self.table_name), []

        params = []
        values = []
        for row in self.rows_to_insert:
            if set(row.keys()) != set(columns):
                raise ValueError("Every inserted row must have the columns {}".format(columns))

            params.extend(row[column] for column in columns)
            values.append("({})".format(placeholders(len(columns))))

        fmt = "INSERT INTO {} ({}) VALUES {}".format(self.table_name, ", ".join(columns),
                                                     ", ".join(values))
        return fmt, params


class UpdateQuery(ConditionalQuery):
    """
    Represents an UPDATE query, setting values on every row matching the conditions.
    """

    def __init__(self, table_name: str, conditions: ConditionBuilder = None):
        super().__init__(table_name, conditions)

        #: The column -> value mapping to set.
        self.values = collections.OrderedDict()

    def set(self, column: str, value: typing.Any = NO_VALUE) -> 'UpdateQuery':
        """
        Sets a column in this query. A mapping sets every column in it.
        """
        if isinstance(column, collections.abc.Mapping):
            self.values.update(column)
        else:
            self.values[column] = value

        return self

    def generate_sql(self):
        if not self.values:
            raise ValueError("No values to update")

        params = list(self.values.values())
        setters = ", ".join("{} = ?".format(column) for column in self.values)
        fmt = "UPDATE {} SET {}".format(self.table_name, setters)
        fmt = self._write_where(fmt, params)
        return fmt, params


class DeleteQuery(ConditionalQuery):
    """
    Represents a DELETE query.

    Without any conditions this deletes every row; callers are responsible for guarding that.
    """

    def generate_sql(self):
        params = []
        fmt = "DELETE FROM {}".format(self.table_name)
        fmt = self._write_where(fmt, params)
        return fmt, params
