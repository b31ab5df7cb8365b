"""
The base implementation of a backend. This provides some ABC classes.
"""
import abc
import collections.abc
import typing
from abc import abstractmethod
from collections import OrderedDict
from urllib.parse import ParseResult, parse_qs


class BaseDialect:
    """
    The base class for a SQL dialect describer.

    This class signifies what features the SQL dialect can use, and as such can be used to customize
    query creation for certain servers.

    By default, all ``has_`` properties will default to False, so that none of them need be
    implemented. Regular methods will raise NotImplementedError, however.
    """

    @property
    def has_checkpoints(self) -> bool:
        """
        Returns True if this dialect can use transaction checkpoints.
        """
        return False

    @property
    def has_engines(self) -> bool:
        """
        Returns True if this dialect takes a storage engine in CREATE TABLE.
        """
        return False

    def get_column_type_sql(self, type_name: str, length: int = None) -> str:
        """
        Gets the SQL type for a schema field type name.

        :param type_name: The type name in the schema descriptor, e.g. ``string``.
        :param length: The length of the field, if any.
        """
        raise NotImplementedError

    def get_autoincrement_sql(self) -> str:
        """
        Gets the column definition for an auto incrementing primary key.
        """
        raise NotImplementedError


class BaseResultSet(collections.abc.Iterator, abc.ABC):
    """
    The base class for a result set. This represents the results from a database query, as an
    iterable.

    Children classes must implement:

        - :attr:`.BaseResultSet.keys`
        - :attr:`.BaseResultSet.rowcount`
        - :attr:`.BaseResultSet.last_row_id`
        - :meth:`.BaseResultSet.fetch_row`
        - :meth:`.BaseResultSet.fetch_many`
        - :meth:`.BaseResultSet.close`
    """

    @property
    @abstractmethod
    def keys(self) -> typing.Iterable[str]:
        """
        :return: An iterable of keys that this query contained.
        """

    @property
    @abstractmethod
    def rowcount(self) -> int:
        """
        :return: The number of rows modified by the statement, or -1.
        """

    @property
    @abstractmethod
    def last_row_id(self) -> typing.Any:
        """
        :return: The row ID of the last inserted row, if any.
        """

    @abstractmethod
    def fetch_row(self) -> typing.Mapping[str, typing.Any]:
        """
        Fetches the **next row** in this query.

        This should return None if the row could not be fetched.
        """

    @abstractmethod
    def fetch_many(self, n: int) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches the **next N rows** in this query.

        :param n: The number of rows to fetch.
        """

    @abstractmethod
    def close(self):
        """
        Closes this result set.
        """

    def fetch_all(self) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches every remaining row in this query.
        """
        return list(self)

    def __next__(self):
        res = self.fetch_row()
        if res is None:
            raise StopIteration

        return res

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class BaseTransaction(abc.ABC):
    """
    The base class for a transaction. This represents a database transaction (i.e SQL statements
    guarded with a BEGIN and a COMMIT/ROLLBACK).

    Children classes must implement:

        - :meth:`.BaseTransaction.begin`
        - :meth:`.BaseTransaction.rollback`
        - :meth:`.BaseTransaction.commit`
        - :meth:`.BaseTransaction.execute`
        - :meth:`.BaseTransaction.cursor`
        - :meth:`.BaseTransaction.close`

    Driver errors must be raised as :class:`.QueryExecutionError` (or a subclass) from
    :meth:`.BaseTransaction.execute` and :meth:`.BaseTransaction.cursor`.

    This class takes one parameter in the constructor: the :class:`.BaseConnector` used to connect
    to the DB server.
    """

    def __init__(self, connector: 'BaseConnector'):
        self.connector = connector

    def __enter__(self) -> 'BaseTransaction':
        self.begin()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self.rollback()
                return False

            self.commit()
            return False
        finally:
            self.close()

    @abstractmethod
    def begin(self):
        """
        Begins the transaction.
        """

    @abstractmethod
    def rollback(self, checkpoint: str = None):
        """
        Rolls back the transaction.

        :param checkpoint: If provided, the checkpoint to rollback to. Otherwise, the entire \
            transaction will be rolled back.
        """

    @abstractmethod
    def commit(self):
        """
        Commits the current transaction.
        """

    @abstractmethod
    def execute(self, sql: str, params: typing.Iterable = None):
        """
        Executes SQL in the current transaction.

        :param sql: The SQL statement to execute.
        :param params: Any parameters to pass to the query.
        """

    @abstractmethod
    def close(self):
        """
        Called at the end of a transaction to cleanup.
        """

    @abstractmethod
    def cursor(self, sql: str, params: typing.Iterable = None) -> 'BaseResultSet':
        """
        Executes SQL and returns a database cursor for the rows.

        :param sql: The SQL statement to execute.
        :param params: Any parameters to pass to the query.
        :return: The :class:`.BaseResultSet` returned from the query, if applicable.
        """

    def create_savepoint(self, name: str):
        """
        Creates a savepoint in the current transaction.

        .. warning::
            This is not supported in all DB engines. If so, this will raise
            :class:`NotImplementedError`.

        :param name: The name of the savepoint to create.
        """
        raise NotImplementedError

    def release_savepoint(self, name: str):
        """
        Releases a savepoint in the current transaction.

        :param name: The name of the savepoint to release.
        """
        raise NotImplementedError


class BaseConnector(abc.ABC):
    """
    The base class for a connector. This should be used for all connector classes as the parent
    class.

    Children classes must implement:

        - :meth:`.BaseConnector.connect`
        - :meth:`.BaseConnector.close`
        - :meth:`.BaseConnector.get_transaction`
    """

    def __init__(self, dsn: ParseResult):
        """
        :param dsn: The :class:`urllib.parse.ParseResult` created from parsing a DSN.
        """
        self._parse_result = dsn
        self.dsn = dsn.geturl()
        self.host = dsn.hostname
        self.port = dsn.port
        self.username = dsn.username
        self.password = dsn.password
        self.db = dsn.path[1:]
        self.params = {k: v[0] for k, v in parse_qs(dsn.query).items()}

    @abstractmethod
    def connect(self) -> 'BaseConnector':
        """
        Connects the current connector to the database server. This is called automatically by the
        :class:`.DatabaseInterface`.

        :return: The original BaseConnector instance.
        """

    @abstractmethod
    def close(self):
        """
        Closes the current Connector.
        """

    @abstractmethod
    def get_transaction(self) -> BaseTransaction:
        """
        Gets a new transaction object for this connection.

        :return: A new :class:`~.BaseTransaction` object attached to this connection.
        """


class QueryResult(object):
    """
    The status of an executed statement: the raw rows it returned, the number of rows it
    modified and the last inserted row ID.
    """
    __slots__ = ("rows", "rowcount", "last_row_id")

    def __init__(self, rows: typing.List[typing.Mapping[str, typing.Any]], rowcount: int = -1,
                 last_row_id: typing.Any = None):
        self.rows = rows
        self.rowcount = rowcount
        self.last_row_id = last_row_id

    def __repr__(self):
        return "<QueryResult rows={} rowcount={} last_row_id={}>".format(
            len(self.rows), self.rowcount, self.last_row_id
        )


class DictRow(OrderedDict):
    """
    Represents a row returned from a base result set, in dict form.

    This class allows for accessing both via key and index.
    """
    def __getitem__(self, item):
        if isinstance(item, int):
            try:
                return list(self.values())[item]
            except IndexError:
                raise KeyError(item)

        return super().__getitem__(item)

    def __setitem__(self, key, value, **kwargs):
        if isinstance(key, int):
            # find the actual string key at position ``key``
            # then set the item using said dict key
            d_key = list(self.keys())[key]
            return super().__setitem__(d_key, value, **kwargs)

        return super().__setitem__(key, value, **kwargs)
