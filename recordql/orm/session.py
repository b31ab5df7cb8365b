import enum
import functools
import logging
import typing
import warnings

from recordql import db as md_db
from recordql.backends.base import BaseResultSet, BaseTransaction, QueryResult
from recordql.exc import DatabaseException

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    NOT_READY = 0
    READY = 1
    CLOSED = 2


# decorators
def enforce_open(func):
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if self._state is not SessionState.READY:
            raise RuntimeError("Session is not ready or closed")
        else:
            return func(self, *args, **kwargs)

    return wrapper


class Session(object):
    """
    Sessions act as a temporary window into the database. They wrap a single transaction, which
    every statement executed through the session runs in.

    Sessions are bound to a :class:`.DatabaseInterface` instance which they use to get a transaction
    and execute queries in.

    .. code-block:: python3

        # get a session from our db interface
        with db.get_session() as sess:
            result = sess.run("SELECT * FROM book WHERE id = ?", [1])
    """

    def __init__(self, bind: 'md_db.DatabaseInterface'):
        """
        :param bind: The :class:`.DatabaseInterface` instance we are bound to.
        """
        self.bind = bind

        #: The current state for the session.
        self._state = SessionState.NOT_READY

        #: The current :class:`.BaseTransaction` this Session is associated with.
        self.transaction = None  # type: BaseTransaction

    def __enter__(self) -> 'Session':
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.commit()
            else:
                if exc_type != DatabaseException:
                    self.rollback()
        finally:
            self.close()

        return False

    def __del__(self):
        if self._state == SessionState.READY:
            warnings.warn("Session was destroyed without being closed!", stacklevel=2)

    def start(self) -> 'Session':
        """
        Starts the session, acquiring a transaction connection which will be used to modify the DB.

        This **must** be called before using the session.

        .. note::
            When using ``with``, this is automatically called.
        """
        if self._state is not SessionState.NOT_READY:
            raise RuntimeError("Session must not be ready or closed")

        logger.debug("Acquiring new transaction, and beginning")
        self.transaction = self.bind.get_transaction()
        self.transaction.begin()

        self._state = SessionState.READY
        return self

    @enforce_open
    def checkpoint(self, checkpoint_name: str):
        """
        Sets a new checkpoint.

        :param checkpoint_name: The name of the checkpoint to use.
        """
        if not self.bind.dialect.has_checkpoints:
            raise NotImplementedError("The {} dialect has no checkpoints".format(
                self.bind.dialect.__class__.__name__))

        return self.transaction.create_savepoint(checkpoint_name)

    @enforce_open
    def uncheckpoint(self, checkpoint_name: str):
        """
        Releases a checkpoint.

        :param checkpoint_name: The name of the checkpoint to release.
        """
        if not self.bind.dialect.has_checkpoints:
            raise NotImplementedError("The {} dialect has no checkpoints".format(
                self.bind.dialect.__class__.__name__))

        return self.transaction.release_savepoint(checkpoint_name)

    @enforce_open
    def commit(self):
        """
        Commits the current session.

        This will **not** close the session; it can be re-used after a commit.
        """
        logger.debug("Committing transaction")
        self.transaction.commit()
        return self

    @enforce_open
    def rollback(self, checkpoint: str = None):
        """
        Rolls the current session back.
        This is useful if an error occurs inside your code.

        :param checkpoint: The checkpoint to roll back to, if applicable.
        """
        logger.debug("Rolling back session to checkpoint {}".format(checkpoint))
        self.transaction.rollback(checkpoint=checkpoint)
        return self

    @enforce_open
    def close(self):
        """
        Closes the current session.

        .. warning::

            This will **NOT COMMIT ANY DATA**. Old data will die.
        """
        self.transaction.close()
        self._state = SessionState.CLOSED
        del self.transaction

    @enforce_open
    def fetch(self, sql: str, params=None):
        """
        Fetches a single row.
        """
        cur = self.cursor(sql, params)
        next = cur.fetch_row()
        cur.close()
        return next

    @enforce_open
    def execute(self, sql: str, params: typing.Iterable[typing.Any] = None):
        """
        Executes SQL inside the current session.

        This is part of the **low-level API.**

        :param sql: The SQL to execute.
        :param params: The parameters to use inside the query.
        """
        return self.transaction.execute(sql, params)

    @enforce_open
    def cursor(self, sql: str, params: typing.Iterable[typing.Any] = None) -> BaseResultSet:
        """
        Executes SQL inside the current session, and returns a new :class:`.BaseResultSet`.

        :param sql: The SQL to execute.
        :param params: The parameters to use inside the query.
        """
        logger.debug("Executing query {} with params {}".format(sql, params))
        return self.transaction.cursor(sql, params)

    @enforce_open
    def run(self, sql: str, params: typing.Iterable[typing.Any] = None) -> QueryResult:
        """
        Executes SQL inside the current session and collects everything it produced.

        :param sql: The SQL to execute.
        :param params: The parameters to use inside the query.
        :return: A :class:`.QueryResult` with the fetched rows, the modified row count and the
            last inserted row ID.
        """
        with self.cursor(sql, params) as cur:
            rows = cur.fetch_all()
            return QueryResult(rows, rowcount=cur.rowcount, last_row_id=cur.last_row_id)
