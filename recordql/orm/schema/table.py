"""
Model objects.
"""
import datetime
import functools
import logging
import re
import typing
from collections import OrderedDict

from cached_property import cached_property

from recordql import db as md_db
from recordql.backends.base import QueryResult
from recordql.exc import ConfigurationError, MissingTableError, UnsafeDeleteError
from recordql.orm import query as md_query
from recordql.orm.schema import column as md_column, relationship as md_relationship, \
    row as md_row
from recordql.orm.schema.decorators import enforce_not_deleted
from recordql.utils import is_sequence

logger = logging.getLogger(__name__)

#: The storage engine used when a model declares none.
DEFAULT_ENGINE = "InnoDB"

#: The format of the timestamps written to timestampable fields.
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

#: A hook, taking the data about to be written and returning the data to write.
Hook = typing.Callable[[typing.Any], typing.Any]


class TableInfo(object):
    """
    The table metadata of a model.

    .. code-block:: python3

        class Book(Model, table_name="app_book", primary_key="id", foreign_key="{}_id"):
            __table_prefix__ = "app_"
            __engine__ = "InnoDB"
            __timestampable__ = {"on_insert": ["created_at", "updated_at"],
                                 "on_update": ["updated_at"]}
            __schema__ = {
                "id": {"type": "id"},
                "title": {"type": "string", "length": 125},
            }

    """

    def __init__(self, name: str = None, *,
                 primary_key: str = "id",
                 foreign_key: str = "{}_id",
                 schema: typing.Mapping[str, typing.Mapping[str, typing.Any]] = None,
                 engine: str = DEFAULT_ENGINE,
                 timestampable: typing.Mapping[str, typing.Iterable[str]] = None,
                 prefix: str = ""):
        """
        :param name: The name of the table.
        :param primary_key: The name of the primary key column.
        :param foreign_key: The foreign key pattern, with one ``{}`` slot for the table name.
        :param schema: The schema descriptor used to create the table when it is missing.
        :param engine: The storage engine of the table.
        :param timestampable: The fields set to the current time ``on_insert`` and
            ``on_update``.
        :param prefix: The table prefix, removed from the table name in key names.
        """
        self.name = name
        self.primary_key = primary_key
        self.foreign_key = foreign_key
        self.schema = schema
        self.engine = engine
        self.timestampable = dict(timestampable or {})
        self.prefix = prefix or ""

    def __repr__(self):
        return "<TableInfo name='{}' primary_key='{}'>".format(self.name, self.primary_key)

    def _strip_prefix(self, name: str) -> str:
        if not self.prefix:
            return name

        return re.sub("^{}".format(re.escape(self.prefix)), "", name)

    @property
    def has_schema(self) -> bool:
        return bool(self.schema)

    @cached_property
    def short_name(self) -> str:
        """
        The table name without the table prefix.
        """
        return self._strip_prefix(self.name)

    @cached_property
    def primary_key_name(self) -> str:
        """
        The primary key name without the table prefix.
        """
        return self._strip_prefix(self.primary_key)

    @cached_property
    def foreign_key_name(self) -> str:
        """
        The name other tables reference this table with, e.g. ``author_id``.
        """
        return self._strip_prefix(self.foreign_key.format(self.name))

    @cached_property
    def fields(self) -> typing.List['md_column.SchemaField']:
        """
        The :class:`.SchemaField` objects of the schema descriptor.
        """
        return md_column.parse_schema(self.schema or {})

    def get_timestamp_fields(self, event: str) -> typing.List[str]:
        """
        Gets the timestampable fields for ``on_insert`` or ``on_update``.
        """
        return list(self.timestampable.get(event) or [])


class ModelMetadata(object):
    """
    The root class for model metadata.
    This stores a registry of models, the association registry, and the database they are bound
    to.

    .. code-block:: python3

        meta = ModelMetadata()
        Model = model_base(meta=meta)

    """

    def __init__(self, bind: 'md_db.DatabaseInterface' = None):
        #: A registry of class name -> model for this metadata.
        self.models = OrderedDict()

        #: The DB object bound to this metadata.
        self.bind = bind  # type: md_db.DatabaseInterface

        #: The association definitions of the models.
        self.associations = md_relationship.AssociationRegistry(self)

    def register_model(self, model: 'ModelMeta') -> 'ModelMeta':
        """
        Registers a new model.
        """
        model.metadata = self
        self.models[model.__name__] = model
        return model

    def get_model(self, name: str) -> 'typing.Optional[typing.Type[Model]]':
        """
        Gets a model from this metadata, by class name or table name.
        """
        try:
            return self.models[name]
        except KeyError:
            for model in self.models.values():
                if model.__table_info__.name == name:
                    return model
            else:
                return None


class ModelMeta(type):
    """
    The metaclass for a model object. This represents the "type" of a model class.
    """

    def __prepare__(*args, **kwargs):
        # this is required so that associations are ordered.
        return OrderedDict()

    def __new__(mcs, name: str, bases: tuple, class_body: dict,
                register: bool = True, **kwargs):
        # usually a cloned class
        # so we just skip it directly
        if register is False:
            return type.__new__(mcs, name, bases, class_body)

        # pull association declarations out of the class body
        associations = OrderedDict()
        for attr_name, value in class_body.copy().items():
            if isinstance(value, md_relationship.Association):
                associations[attr_name] = value
                class_body.pop(attr_name)

        class_body["_declared_associations"] = associations
        return type.__new__(mcs, name, bases, class_body)

    def __init__(self, name: str, bases: tuple, class_body: dict, register: bool = True, *,
                 table_name: str = None,
                 primary_key: str = None,
                 foreign_key: str = None):
        """
        Creates a new Model class.

        :param register: Should this model be registered in the ModelMetadata?
        :param table_name: The name of the table.
        :param primary_key: The name of the primary key column. Defaults to ``id``.
        :param foreign_key: The foreign key pattern. Defaults to ``{}_id``.
        """
        super().__init__(name, bases, class_body)

        if register is False:
            return
        elif not hasattr(self, "metadata"):
            raise TypeError("Model {} has been created but has no metadata - did you subclass Model"
                            " directly instead of a clone?".format(name))

        for attr_name, value in self._declared_associations.items():
            value.__set_name__(self, attr_name)

        # unset keywords are inherited from the parent model
        parent = getattr(self, "__table_info__", None)  # type: TableInfo
        if parent is not None:
            table_name = parent.name if table_name is None else table_name
            primary_key = parent.primary_key if primary_key is None else primary_key
            foreign_key = parent.foreign_key if foreign_key is None else foreign_key

        self.__table_info__ = TableInfo(
            table_name,
            primary_key="id" if primary_key is None else primary_key,
            foreign_key="{}_id" if foreign_key is None else foreign_key,
            schema=getattr(self, "__schema__", None),
            engine=getattr(self, "__engine__", DEFAULT_ENGINE),
            timestampable=getattr(self, "__timestampable__", None),
            prefix=getattr(self, "__table_prefix__", ""),
        )

        #: The column used by where_pk() and the row primary key.
        self.primary_key_name = self.__table_info__.primary_key_name

        logger.debug("Registered new model {}".format(name))
        self.metadata.register_model(self)

    def __repr__(self):
        try:
            return "<Model object='{}' name='{}'>".format(self.__name__, self.__table_info__.name)
        except AttributeError:
            return super().__repr__()

    def iter_associations(self) -> 'typing.Iterator[typing.Tuple[str, md_relationship.Association]]':
        """
        :return: A generator of (name, :class:`.Association`) declared on this model and its
            parents, parents first.
        """
        seen = OrderedDict()
        for klass in reversed(self.__mro__):
            for attr_name, value in klass.__dict__.get("_declared_associations", {}).items():
                seen[attr_name] = value

        return iter(seen.items())


class Model(md_row.ActiveRecordRow, metaclass=ModelMeta, register=False):
    """
    The "base" class for all models. This class is not actually directly used; instead
    :meth:`.model_base` should be called to get a fresh clone.

    A model instance is both a row of its table and the query scope for that table:

    .. code-block:: python3

        books = Book(db).where("author_id", 1).order_by("title").find_all()
        book = Book(db).find_one(5)
        book.title = "Emma"
        book.save()
    """

    #: The table metadata of this model.
    __table_info__ = None  # type: TableInfo

    def __init__(self, bind: 'md_db.DatabaseInterface' = None, **values):
        """
        :param bind: The :class:`.DatabaseInterface` to run queries with. Defaults to the bind of
            the metadata.
        :param values: Values to hydrate this row with.
        """
        cls = type(self)
        info = cls.__table_info__
        if info is None or not info.name:
            raise ConfigurationError("{} has no table name".format(cls.__name__))

        if not info.primary_key:
            raise ConfigurationError("{} has no primary key name".format(cls.__name__))

        if bind is None:
            bind = cls.metadata.bind

        if bind is None:
            raise ConfigurationError("{} is not bound to a database".format(cls.__name__))

        super().__init__()

        #: The :class:`.DatabaseInterface` this row uses.
        self._bind = bind

        #: The hooks registered on this instance.
        self._hooks = {
            "on_insert": None,
            "on_update": None,
            "on_delete": None,
        }  # type: typing.Dict[str, typing.Optional[Hook]]

        #: The association definitions of this model.
        self._associations = cls.metadata.associations.get(cls)

        self.setup()

        if values:
            self.from_array(values)

    def setup(self):
        """
        Called at the end of construction. Override this to register hooks:

        .. code-block:: python3

            class User(Model, table_name="user"):
                def setup(self):
                    self.on_insert(hash_password)
        """

    def __getattr__(self, item: str):
        try:
            return super().__getattr__(item)
        except AttributeError:
            if item.startswith("_") or item not in self._associations:
                raise

        return functools.partial(self.get_association, item)

    @classmethod
    def create(cls, bind: 'md_db.DatabaseInterface' = None,
               data: 'typing.Union[typing.Mapping, typing.Sequence[typing.Mapping]]' = None):
        """
        Creates a new instance, hydrated from data if any is passed.

        :return: The instance, or a :class:`.ResultSet` if ``data`` is a sequence of rows.
        """
        instance = cls(bind)
        if data is not None:
            return instance.from_array(data)

        return instance

    def _new_instance(self) -> 'Model':
        return type(self)(self._bind)

    def _associations_using(self, column: str) -> typing.Iterable[str]:
        return [name for name, definition in self._associations.items()
                if definition.local_key == column]

    # metadata
    def get_table_name(self) -> str:
        return self.__table_info__.name

    def get_primary_key_name(self) -> str:
        return self.__table_info__.primary_key_name

    def get_foreign_key_name(self) -> str:
        return self.__table_info__.foreign_key_name

    # hooks
    def on_insert(self, hook: Hook = None) -> 'Model':
        """
        Registers the hook run before inserts. It receives the row mapping (or the list of row
        mappings) to insert, and returns the data to insert.
        """
        self._hooks["on_insert"] = hook
        return self

    def on_update(self, hook: Hook = None) -> 'Model':
        """
        Registers the hook run before updates. It receives the column mapping to write, and
        returns the mapping to write.
        """
        self._hooks["on_update"] = hook
        return self

    def on_delete(self, hook: typing.Callable[[], typing.Any] = None) -> 'Model':
        """
        Registers the hook run before deletes. It receives nothing.
        """
        self._hooks["on_delete"] = hook
        return self

    def _call_hook(self, event: str, *args):
        hook = self._hooks[event]
        if hook is None:
            return args[0] if args else None

        return hook(*args)

    @staticmethod
    def get_datetime() -> str:
        """
        :return: The current time, formatted for timestampable fields.
        """
        return datetime.datetime.now().strftime(DATETIME_FORMAT)

    # execution
    def _run(self, sql: str, parameters: typing.Iterable) -> QueryResult:
        with self._bind.get_session() as sess:
            return sess.run(sql, parameters)

    def query(self, sql: str, parameters: typing.Iterable = (), raw: bool = False) \
            -> 'typing.Union[QueryResult, md_row.ResultSet]':
        """
        Runs SQL against the database.

        If the table of this model does not exist and the model declares a ``__schema__``, the
        table is created and the query is run once more.

        :param sql: The SQL to run.
        :param parameters: The parameters bound to the ``?`` placeholders.
        :param raw: Return the :class:`.QueryResult` instead of hydrated rows.
        :return: A :class:`.ResultSet` of new rows, or a :class:`.QueryResult` if ``raw``.
        """
        parameters = list(parameters)
        try:
            result = self._run(sql, parameters)
        except MissingTableError:
            if not self.__table_info__.has_schema:
                raise

            logger.info("Table {} is missing, creating it".format(self.get_table_name()))
            self.create_table()
            result = self._run(sql, parameters)

        if raw:
            return result

        return self.from_array(result.rows)

    # ddl
    def create_table(self):
        """
        Creates the table of this model from its schema, if it does not exist.
        """
        info = self.__table_info__
        if not info.has_schema:
            raise ConfigurationError("{} has no schema".format(type(self).__name__))

        with self._bind.get_ddl_session() as sess:
            sess.create_table(info.name, *info.fields, engine=info.engine, if_not_exists=True)

    def table_exists(self) -> bool:
        with self._bind.get_ddl_session() as sess:
            return sess.table_exists(self.get_table_name())

    def get_columns(self) -> typing.List[str]:
        """
        :return: The column names of the table of this model.
        """
        with self._bind.get_ddl_session() as sess:
            return sess.get_columns(self.get_table_name())

    def _pk_scope(self) -> 'md_query.ConditionBuilder':
        builder = md_query.ConditionBuilder()
        builder.primary_key_name = self.primary_key_name
        return builder.where_pk(self.primary_key)

    # finding
    def find_all(self) -> 'md_row.ResultSet':
        """
        Finds every row matching the conditions of this scope.
        """
        try:
            sql, params = md_query.SelectQuery(self.get_table_name(), self).generate_sql()
            return self.query(sql, params)
        finally:
            self.reset()

    def find_one(self, pk: typing.Any = None) -> 'typing.Optional[Model]':
        """
        Finds the first row matching the conditions of this scope.

        :param pk: The primary key of the row to find, if any.
        :return: The row, or None if nothing matched.
        """
        if pk is not None:
            self.where_pk(pk)

        return self.limit(1).find_all().first()

    def count(self) -> int:
        """
        Counts the rows matching the conditions of this scope.
        """
        try:
            sql, params = md_query.CountQuery(self.get_table_name(), self).generate_sql()
            result = self.query(sql, params, raw=True)
        finally:
            self.reset()

        return result.rows[0]["count"]

    # persistence
    def _stamp(self, data: typing.Mapping[str, typing.Any], fields: typing.List[str]) -> dict:
        row = OrderedDict(data)
        if fields:
            now = self.get_datetime()
            for field in fields:
                row[field] = now

        if row.get(self.primary_key_name, 0) is None:
            row.pop(self.primary_key_name)

        return row

    def insert(self, data: 'typing.Union[typing.Mapping, typing.Sequence[typing.Mapping]]') \
            -> 'typing.Union[int, Model]':
        """
        Inserts one or many rows.

        The ``on_insert`` timestampable fields are always set to the current time, replacing any
        value passed for them.

        :param data: A row mapping, or a sequence of row mappings.
        :return: The number of inserted rows for a sequence. For a mapping, a new instance
            hydrated with the inserted row, including its primary key.
        """
        fields = self.__table_info__.get_timestamp_fields("on_insert")
        table_name = self.get_table_name()

        if is_sequence(data):
            rows = self._call_hook("on_insert", [self._stamp(row, fields) for row in data])
            if not rows:
                return 0

            sql, params = md_query.InsertQuery(table_name).rows(*rows).generate_sql()
            return self.query(sql, params, raw=True).rowcount

        row = self._call_hook("on_insert", self._stamp(data, fields))
        sql, params = md_query.InsertQuery(table_name).add_row(row).generate_sql()
        result = self.query(sql, params, raw=True)

        values = OrderedDict(row)
        if values.get(self.primary_key_name) is None and result.last_row_id is not None:
            values[self.primary_key_name] = result.last_row_id

        return self._new_instance().from_array(values)

    @enforce_not_deleted
    def update(self, data: typing.Mapping[str, typing.Any] = None) -> int:
        """
        Updates rows.

        The ``on_update`` timestampable fields are set to the current time first. The dirty
        columns and ``data`` are then written, with ``data`` winning over dirty columns.

        If this row has a primary key, only this row is updated. Otherwise every row matching
        the conditions of this scope is updated, and no conditions means every row of the table.

        :return: The number of updated rows.
        """
        for field in self.__table_info__.get_timestamp_fields("on_update"):
            self.set(field, self.get_datetime())

        values = self.get_dirty()
        if data:
            values.update(data)

        values = self._call_hook("on_update", values)
        if not values:
            self.reset()
            return 0

        single = self.primary_key is not None
        scope = self._pk_scope() if single else self
        try:
            sql, params = md_query.UpdateQuery(self.get_table_name(), scope).set(values) \
                .generate_sql()
            result = self.query(sql, params, raw=True)
        finally:
            self.reset()

        if single:
            self._values.update(values)
            for column in values:
                self._forget_associations(column)

        self._clear_history()
        return result.rowcount

    def save(self) -> 'Model':
        """
        Inserts this row if it has no primary key, otherwise writes its dirty columns.

        :return: This row.
        """
        if self.primary_key is None:
            inserted = self.insert(self.to_dict())
            self._hydrate(inserted.to_dict())
            return self

        self.update()
        return self

    @enforce_not_deleted
    def delete(self, delete_all: bool = False) -> int:
        """
        Deletes rows.

        If this row has a primary key, only this row is deleted. Otherwise every row matching the
        conditions of this scope is deleted. With no primary key and no conditions, every row of
        the table is deleted, but only with ``delete_all``.

        :param delete_all: Allow deleting every row of the table.
        :return: The number of deleted rows.
        :raises UnsafeDeleteError: If this would delete every row without ``delete_all``.
        """
        single = self.primary_key is not None
        if single:
            scope = self._pk_scope()
        elif self.has_conditions or delete_all:
            scope = self
        else:
            raise UnsafeDeleteError("Refusing to delete every row of {} without delete_all"
                                    .format(self.get_table_name()))

        self._call_hook("on_delete")
        try:
            sql, params = md_query.DeleteQuery(self.get_table_name(), scope).generate_sql()
            result = self.query(sql, params, raw=True)
        finally:
            self.reset()

        if single:
            self._mark_deleted()

        return result.rowcount

    # associations
    def resolve_association(self, name: str, overrides: typing.Any = None) \
            -> 'md_relationship.AssociationResult':
        """
        Resolves an association of this row.

        :param name: The name of the association.
        :param overrides: A filter string, or a mapping of ``where``, ``sort`` and ``columns``
            overrides.
        :return: An :class:`.AssociationResult`.
        :raises ConfigurationError: If this model has no such association.
        """
        return md_relationship.RelationshipResolver(self).resolve(name, overrides)

    def get_association(self, name: str, overrides: typing.Any = None) \
            -> 'typing.Union[Model, md_row.ResultSet, None]':
        """
        Gets an association of this row: a row or None for ONE associations, a
        :class:`.ResultSet` for MANY associations.
        """
        return self.resolve_association(name, overrides).unwrap()


def model_base(name: str = "Model", meta: 'ModelMetadata' = None):
    """
    Gets a new base object to use for models.

    To use this object, you call this function to create the new object, and subclass it in your
    model classes:

    .. code-block:: python3

        Model = model_base()

        class User(Model, table_name="user"):
            ...

    Binding the metadata to the database object lets models be created without a bind:

    .. code-block:: python3

        db.bind_models(Model.metadata)
        user = User().find_one(2)

    :param name: The name of the new class to produce. By default, it is ``Model``.
    :param meta: The :class:`.ModelMetadata` to use as metadata.
    :return: A new Model class that can be used for models.
    """
    if meta is None:
        meta = ModelMetadata()

    clone = ModelMeta.__new__(ModelMeta, name, (Model,), {"metadata": meta}, register=False)
    return clone
