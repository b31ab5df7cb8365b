"""
Classes for the condition clauses and operators used to build queries.
"""
import abc
import typing

from recordql.utils import is_sequence, placeholders

AND = "AND"
OR = "OR"


class OperatorResponse:
    """
    A storage class for the generated SQL from an operator.
    """
    __slots__ = ("sql", "parameters")

    def __init__(self, sql: str, parameters: list = None):
        """
        :param sql: The generated SQL for this operator.
        :param parameters: The ordered list of parameters bound to the ``?`` in the SQL.
        """
        self.sql = sql
        self.parameters = parameters
        if self.parameters is None:
            self.parameters = []

    def __repr__(self):
        return "<OperatorResponse sql='{}' parameters={}>".format(self.sql, self.parameters)


class BaseOperator(abc.ABC):
    """
    The base operator class.
    """

    @abc.abstractmethod
    def generate_sql(self) -> OperatorResponse:
        """
        Generates the SQL for an operator.

        :return: A :class:`.OperatorResponse` representing the result.
        """


class Clause(BaseOperator):
    """
    A single condition clause, e.g. ``age > ?`` with its bound parameters.

    The operator is the boolean operator that joins this clause to the clause before it.
    """
    __slots__ = ("operator", "fragment", "parameters")

    def __init__(self, operator: str, fragment: str, parameters: typing.Sequence = ()):
        self.operator = operator
        self.fragment = fragment
        self.parameters = list(parameters)

    def __repr__(self):
        return "<Clause {} '{}' {}>".format(self.operator, self.fragment, self.parameters)

    def generate_sql(self):
        return OperatorResponse(self.fragment, list(self.parameters))


class ClauseGroup(BaseOperator):
    """
    An ordered group of :class:`.Clause`, rendered as one parenthesized unit once wrapped.
    """

    def __init__(self, operator: str = AND):
        #: The operator joining this group to the material before it.
        self.operator = operator

        #: The clauses in this group.
        self.clauses = []  # type: typing.List[Clause]

    def __repr__(self):
        return "<ClauseGroup {} {}>".format(self.operator, self.clauses)

    def __len__(self):
        return len(self.clauses)

    def add(self, clause: Clause):
        if not self.clauses:
            # the first clause decides how this group joins the previous one
            self.operator = clause.operator

        self.clauses.append(clause)

    def generate_sql(self, wrapped: bool = True):
        final = []
        vals = []
        for idx, clause in enumerate(self.clauses):
            response = clause.generate_sql()
            if idx:
                final.append(clause.operator)
            final.append(response.sql)
            vals.extend(response.parameters)

        fmt = " ".join(final)
        if wrapped:
            fmt = "({})".format(fmt)

        return OperatorResponse(fmt, vals)


class Sorter(BaseOperator, metaclass=abc.ABCMeta):
    """
    A generic sorter operator, for use in ORDER BY.
    """

    def __init__(self, *columns: str):
        self.cols = columns

    @property
    @abc.abstractmethod
    def sort_order(self):
        """
        The sort order for this row; ASC or DESC.
        """
        pass

    def generate_sql(self):
        names = ", ".join(self.cols)
        sql = "{} {}".format(names, self.sort_order)

        return OperatorResponse(sql)

    @staticmethod
    def get(direction: str) -> 'typing.Type[Sorter]':
        """
        Gets the sorter class for a direction string.
        """
        direction = direction.upper()
        if direction == "ASC":
            return AscSorter
        elif direction == "DESC":
            return DescSorter

        raise ValueError("Unknown sort order {}".format(direction))


class AscSorter(Sorter):
    sort_order = "ASC"


class DescSorter(Sorter):
    sort_order = "DESC"


class ColumnValueMixin(object):
    """
    A mixin that specifies that an operator takes both a column name and a value as arguments.

    .. code-block:: python3

        class MyOp(BaseOperator, ColumnValueMixin):
            ...

        # myop is constructed MyOp("column", value)
    """

    def __init__(self, column: 'typing.Union[str, typing.Sequence[str]]', value: typing.Any = None):
        self.column = column
        self.value = value


class ComparisonOp(ColumnValueMixin, BaseOperator):
    """
    A helper class that implements easy generation of comparison-based operators.

    To customize the operator provided, set the value of ``operator`` in the class body.
    """
    operator = None

    def generate_sql(self):
        sql = "{} {} ?".format(self.column, self.operator)
        return OperatorResponse(sql, [self.value])


class Eq(ComparisonOp):
    """
    Represents an equality operator.
    """
    operator = "="


class NEq(ComparisonOp):
    """
    Represents a non-equality operator.
    """
    operator = "!="


class Lt(ComparisonOp):
    """
    Represents a less than operator.
    """
    operator = "<"


class Gt(ComparisonOp):
    """
    Represents a more than operator.
    """
    operator = ">"


class Lte(ComparisonOp):
    """
    Represents a less than or equals to operator.
    """
    operator = "<="


class Gte(ComparisonOp):
    """
    Represents a more than or equals to operator.
    """
    operator = ">="


class Like(ComparisonOp):
    """
    Represents a LIKE operator.
    """
    operator = "LIKE"


class NotLike(ComparisonOp):
    """
    Represents a NOT LIKE operator.
    """
    operator = "NOT LIKE"


class IsNull(ColumnValueMixin, BaseOperator):
    """
    Represents an IS NULL check. This never binds a parameter.
    """
    operator = "IS NULL"

    def generate_sql(self):
        return OperatorResponse("{} {}".format(self.column, self.operator))


class IsNotNull(IsNull):
    """
    Represents an IS NOT NULL check.
    """
    operator = "IS NOT NULL"


class In(ColumnValueMixin, BaseOperator):
    """
    Represents an IN operator.

    The column can be a sequence of column names, in which case the value must be a sequence of
    rows, each as wide as the column list:

    .. code-block:: python3

        In(("make", "model"), [("ford", "focus"), ("fiat", "panda")])
        # (make, model) IN ((?, ?), (?, ?))
    """
    operator = "IN"

    #: The SQL emitted when there are no values to test against.
    empty = "1 = 0"

    def generate_sql(self):
        values = list(self.value)
        if not values:
            return OperatorResponse(self.empty)

        if not is_sequence(self.column):
            sql = "{} {} ({})".format(self.column, self.operator, placeholders(len(values)))
            return OperatorResponse(sql, values)

        # tuple form, one parenthesized tuple per row
        columns = list(self.column)
        params = []
        tuples = []
        for row in values:
            if not is_sequence(row) or len(row) != len(columns):
                raise ValueError("Row {!r} does not match the columns {}".format(row, columns))

            tuples.append("({})".format(placeholders(len(row))))
            params.extend(row)

        sql = "({}) {} ({})".format(", ".join(columns), self.operator, ", ".join(tuples))
        return OperatorResponse(sql, params)


class NotIn(In):
    """
    Represents a NOT IN operator.
    """
    operator = "NOT IN"
    empty = "1 = 1"
