"""
The main Database object. This is the "database interface" to the actual DB server.
"""
import importlib
import logging
import threading
import typing
from urllib.parse import ParseResult, urlparse

from recordql.backends.base import BaseConnector, BaseDialect, BaseTransaction
from recordql.exc import ConfigurationError
from recordql.orm import session as md_session
from recordql.orm.ddl import ddlsession as md_ddlsession
from recordql.orm.schema import table as md_table

# sentinels
NO_CONNECTOR = object()

logger = logging.getLogger("recordql")


class DatabaseInterface(object):
    """
    The "database interface" to your database. This provides the actual connection to the DB server,
    including things such as querying, inserting, updating, et cetera.

    Creating a new database object is simple:

    .. code-block:: python3

        # pass the DSN in the constructor
        my_database = DatabaseInterface("sqlite3:///app.db")
        my_database.connect()
        # or provide it in the `.connect()` call
        my_database.connect("sqlite3:///app.db")

    """

    def __init__(self, dsn: str = None):
        """
        :param dsn:
            The Data Source Name to connect to the database on, in the form
            ``<type>[+<connector>]://<location>[?<connector params>]``.
        """
        self._dsn = dsn

        #: The current connector instance.
        self.connector = None  # type: BaseConnector

        #: The current Dialect instance.
        self.dialect = None  # type: BaseDialect

    def __enter__(self):
        if not self.connected:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self):
        return "<DatabaseInterface dsn='{}' connected={}>".format(self._dsn, self.connected)

    @property
    def connected(self):
        """
        Checks if this DB is connected.
        """
        return self.connector is not None

    def bind_models(self, md: 'md_table.ModelMetadata') -> 'md_table.ModelMetadata':
        """
        Binds models to this DB instance. Models constructed without an explicit bind use it.

        :param md: The :class:`.ModelMetadata`, or any model class using it.
        """
        if isinstance(md, md_table.ModelMeta):
            md = md.metadata

        md.bind = self
        return md

    def connect(self, dsn: str = None, **kwargs) -> BaseConnector:
        """
        Connects the interface to the database server.

        .. note::
            For SQLite3 connections, this will just open the database.

        :param dsn: The Data Source Name to connect to, if it was not specified in the constructor.
        :return: The :class:`~.BaseConnector` established.
        """
        if dsn is not None:
            self._dsn = dsn

        if self._dsn is None:
            raise ConfigurationError("No DSN was provided to connect with")

        parsed_dsn = urlparse(self._dsn)  # type: ParseResult
        # db type must always exist
        # the connector doesn't have to exist, however
        # if so we use a sentinel value
        schemes = parsed_dsn.scheme.split("+")
        db_type = schemes[0]
        try:
            db_connector = schemes[1]
        except IndexError:
            db_connector = NO_CONNECTOR

        import_path = "recordql.backends.{}".format(db_type)
        try:
            package = importlib.import_module(import_path)
        except ImportError as e:
            raise ConfigurationError("Unknown database type '{}'".format(db_type)) from e

        if db_connector is not NO_CONNECTOR:
            mod_path = ".".join([import_path, db_connector])
        else:
            mod_path = ".".join([import_path, package.DEFAULT_CONNECTOR])

        self.dialect = getattr(package, "{}Dialect".format(db_type.title()))()

        logger.debug("Loading connector {}".format(mod_path))

        connector_mod = importlib.import_module(mod_path)
        connector_ins = connector_mod.CONNECTOR_TYPE(parsed_dsn, **kwargs)  # type: BaseConnector
        self.connector = connector_ins
        try:
            self.connector.connect()
        except Exception:
            # delete self.connector and re-raise in the event that it fails
            self.connector = None
            raise

        return self.connector

    def get_transaction(self, **kwargs) -> BaseTransaction:
        """
        Gets a low-level :class:`.BaseTransaction`.

        .. code-block:: python3

            with db.get_transaction() as transaction:
                results = transaction.cursor("SELECT 1;")
        """
        if not self.connected:
            raise ConfigurationError("{!r} is not connected".format(self))

        return self.connector.get_transaction(**kwargs)

    def get_session(self, **kwargs) -> 'md_session.Session':
        """
        Gets a new :class:`.Session` bound to this instance.
        """
        return md_session.Session(self, **kwargs)

    def get_ddl_session(self, **kwargs) -> 'md_ddlsession.DDLSession':
        """
        Gets a new :class:`.DDLSession` bound to this instance.
        """
        return md_ddlsession.DDLSession(self, **kwargs)

    def close(self):
        """
        Closes the current database interface.
        """
        if self.connector is not None:
            self.connector.close()
            self.connector = None


class DatabaseRegistry(object):
    """
    A registry of database interfaces by alias. Each alias maps to exactly one
    :class:`.DatabaseInterface`, connected the first time the alias is requested.

    The registry is created once at process start and closed at process end:

    .. code-block:: python3

        databases = DatabaseRegistry({"main": "sqlite3:///app.db"})
        author = Author(databases.get("main"))
        ...
        databases.close()

    """

    def __init__(self, aliases: typing.Mapping[str, str] = None):
        """
        :param aliases: A mapping of alias -> DSN.
        """
        self._aliases = dict(aliases or {})
        self._interfaces = {}  # type: typing.Dict[str, DatabaseInterface]
        self._lock = threading.Lock()

    def __contains__(self, alias: str):
        return alias in self._aliases

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def register(self, alias: str, dsn: str) -> 'DatabaseRegistry':
        """
        Registers the DSN for an alias.
        """
        with self._lock:
            if alias in self._interfaces:
                raise ConfigurationError("Alias '{}' is already connected".format(alias))

            self._aliases[alias] = dsn

        return self

    def get(self, alias: str) -> DatabaseInterface:
        """
        Gets the connected :class:`.DatabaseInterface` for an alias.
        """
        with self._lock:
            try:
                return self._interfaces[alias]
            except KeyError:
                pass

            try:
                dsn = self._aliases[alias]
            except KeyError:
                raise ConfigurationError("Database alias '{}' is not configured"
                                         .format(alias)) from None

            logger.debug("Connecting alias {}".format(alias))
            interface = DatabaseInterface(dsn)
            interface.connect()
            self._interfaces[alias] = interface
            return interface

    def close(self):
        """
        Closes every connected interface.
        """
        with self._lock:
            for interface in self._interfaces.values():
                interface.close()

            self._interfaces.clear()
