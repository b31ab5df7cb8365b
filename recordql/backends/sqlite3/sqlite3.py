"""
A backend using the stdlib sqlite3 driver.
"""
import logging
import queue
import sqlite3
import threading
import typing

from recordql.backends.base import BaseConnector, BaseResultSet, BaseTransaction, DictRow
from recordql.exc import IntegrityError, MissingTableError, QueryExecutionError

logger = logging.getLogger(__name__)


def _translate_error(error: sqlite3.Error) -> QueryExecutionError:
    """
    Translates a sqlite3 error into a :class:`.QueryExecutionError`.
    """
    message = str(error)
    if isinstance(error, sqlite3.OperationalError) and message.startswith("no such table"):
        return MissingTableError(message)

    if isinstance(error, sqlite3.IntegrityError):
        return IntegrityError(message, code="23000")

    return QueryExecutionError(message, code=getattr(error, "sqlite_errorname", None))


class _SqlitePool:
    """
    A connection pool for sqlite3 connections.
    """

    def __init__(self, max_size: int = 12, **kwargs):
        """
        :param max_size: The maximum size of the pool.
        """
        self.queue = queue.Queue(maxsize=max_size)

        self.connection_args = kwargs

    def _new_connection(self) -> sqlite3.Connection:
        # check_same_thread is needed because connections move between threads in the pool.
        conn = sqlite3.connect(**self.connection_args, check_same_thread=False)
        # this allows dict-like access
        conn.row_factory = sqlite3.Row
        return conn

    def connect(self):
        """
        Connects this pool.
        """
        if "timeout" not in self.connection_args:
            self.connection_args["timeout"] = 3600

        for x in range(0, self.queue.maxsize):
            conn = self._new_connection()
            self.queue.put_nowait(conn)

        return self

    def acquire(self) -> sqlite3.Connection:
        """
        Acquires a connection from the pool.
        """
        return self.queue.get()

    def release(self, conn: sqlite3.Connection):
        """
        Releases a connection back to the pool of available connections.
        """
        # rollback anything stale left in the DB
        if conn.in_transaction:
            conn.rollback()

        self.queue.put_nowait(conn)

    def close(self):
        """
        Closes the pool.
        """
        while True:
            try:
                conn = self.queue.get_nowait()
            except queue.Empty:
                return

            conn.close()


class Sqlite3Connector(BaseConnector):
    """
    A connector powered by sqlite3.

    In-memory databases use a single connection, since every connection to ``:memory:`` opens a
    different database.
    """

    def __init__(self, parsed, *, max_size: int = 12):
        super().__init__(parsed)

        if "pool_size" in self.params:
            max_size = int(self.params.pop("pool_size"))

        if self.db == ":memory:":
            max_size = 1

        self.max_size = max_size
        self.pool = None  # type: _SqlitePool

    def connect(self) -> 'BaseConnector':
        """
        Creates the new pool of sqlite3 connections.
        """
        kwargs = dict(self.params)
        if "timeout" in kwargs:
            kwargs["timeout"] = float(kwargs["timeout"])

        logger.info("Opening SQLite3 database {} with {} connections".format(self.db,
                                                                             self.max_size))
        self.pool = _SqlitePool(max_size=self.max_size, database=self.db, **kwargs)
        self.pool.connect()
        return self

    def close(self):
        """
        Closes this connector.
        """
        self.pool.close()

    def get_transaction(self) -> 'BaseTransaction':
        return Sqlite3Transaction(self)


class Sqlite3Transaction(BaseTransaction):
    """
    Represents a sqlite3 transaction.
    """

    def __init__(self, connector: 'Sqlite3Connector'):
        super().__init__(connector)

        #: The connection for this transaction.
        self.connection = None  # type: sqlite3.Connection

        self._lock = threading.Lock()

    def begin(self):
        """
        Begins the current transaction.
        """
        self.connection = self.connector.pool.acquire()

    def execute(self, sql: str, params: typing.Iterable = None):
        """
        Executes SQL in the current transaction.
        """
        # lock to ensure nothing else is using the connection at once
        with self._lock:
            try:
                return self.connection.execute(sql, tuple(params or ()))
            except sqlite3.Error as e:
                raise _translate_error(e) from e

    def commit(self):
        """
        Commits the current transaction.
        """
        with self._lock:
            self.connection.commit()

    def rollback(self, checkpoint: str = None):
        """
        Rolls back the current transaction.
        """
        if checkpoint is not None:
            self.execute("ROLLBACK TRANSACTION TO SAVEPOINT {};".format(checkpoint))
            return

        with self._lock:
            self.connection.rollback()

    def create_savepoint(self, name: str):
        """
        Creates a savepoint for this transaction.
        """
        self.execute("SAVEPOINT {};".format(name))

    def release_savepoint(self, name: str):
        """
        Releases a savepoint in this transaction.
        """
        self.execute("RELEASE SAVEPOINT {};".format(name))

    def cursor(self, sql: str, params: typing.Iterable = None) -> 'Sqlite3ResultSet':
        """
        Gets a cursor for the specified SQL.
        """
        with self._lock:
            cur = self.connection.cursor()
            try:
                cur.execute(sql, tuple(params or ()))
            except sqlite3.Error as e:
                cur.close()
                raise _translate_error(e) from e

        return Sqlite3ResultSet(cur)

    def close(self):
        """
        Closes the current transaction.
        """
        self.connector.pool.release(self.connection)
        self.connection = None


class Sqlite3ResultSet(BaseResultSet):
    """
    A result set for a sqlite3 database.
    """

    def __init__(self, cursor: sqlite3.Cursor):
        self.cursor = cursor

    @property
    def keys(self) -> typing.Iterable[str]:
        if self.cursor.description is None:
            return []

        return [column[0] for column in self.cursor.description]

    @property
    def rowcount(self) -> int:
        return self.cursor.rowcount

    @property
    def last_row_id(self):
        return self.cursor.lastrowid

    def close(self):
        self.cursor.close()

    def fetch_many(self, n: int) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches many rows.
        """
        rows = self.cursor.fetchmany(size=n)
        return [DictRow(r) for r in rows if r is not None]

    def fetch_row(self) -> typing.Mapping[str, typing.Any]:
        """
        Fetches one row.
        """
        row = self.cursor.fetchone()
        return DictRow(row) if row is not None else None


CONNECTOR_TYPE = Sqlite3Connector
