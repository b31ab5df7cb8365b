"""
Association helpers.

Associations link a model to another model through a local key and a foreign key, and are
resolved with one query against the target table rather than with a JOIN.

.. code-block:: python3

    class Author(Model, table_name="author"):
        books = Association("Book", kind=AssociationKind.LAZY_MANY)

    class Book(Model, table_name="book"):
        author = Association("Author", kind=AssociationKind.ONE,
                             local_key="author_id", foreign_key="id")

    author = Author(db).find_one(1)
    author.books()                               # ResultSet of Book
    author.books({"where": {"published": 1}})    # merged with the declared filter
"""
import collections
import collections.abc
import enum
import logging
import threading
import types
import typing

from recordql.exc import AssociationConfigError, ConfigurationError
from recordql.orm.schema import row as md_row, table as md_table
from recordql.utils import merge_filters

logger = logging.getLogger(__name__)


class AssociationKind(enum.Enum):
    """
    How an association is resolved.

    Eager associations run one query on first access and cache the result on the row. Lazy
    associations run a fresh query on every access.
    """
    EAGER_ONE = "eager_one"
    EAGER_MANY = "eager_many"
    LAZY_ONE = "lazy_one"
    LAZY_MANY = "lazy_many"

    # aliases
    ONE = "eager_one"
    MANY = "eager_many"

    @property
    def is_eager(self) -> bool:
        return self in (AssociationKind.EAGER_ONE, AssociationKind.EAGER_MANY)

    @property
    def is_one(self) -> bool:
        return self in (AssociationKind.EAGER_ONE, AssociationKind.LAZY_ONE)

    @classmethod
    def parse(cls, value: 'typing.Union[AssociationKind, str]') -> 'AssociationKind':
        """
        Gets the kind for a kind or a kind name, e.g. ``"lazy_many"`` or ``"ONE"``.
        """
        if isinstance(value, cls):
            return value

        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ConfigurationError("Unknown association kind '{}'".format(value)) from None


class Association(object):
    """
    Declares an association in the body of a model class.

    .. code-block:: python3

        class Author(Model, table_name="author"):
            books = Association(Book, kind="many", where={"deleted": 0}, sort="title ASC",
                                backref=True)

    Declarations are collected by the model class when it is created, and resolved into an
    :class:`.AssociationDefinition` the first time the model is instantiated.
    """

    def __init__(self, model: 'typing.Union[typing.Type[md_table.Model], str]', *,
                 kind: 'typing.Union[AssociationKind, str]' = AssociationKind.MANY,
                 foreign_key: str = None,
                 local_key: str = None,
                 where: 'typing.Union[typing.Mapping[str, typing.Any], str]' = None,
                 sort: typing.Any = None,
                 columns: 'typing.Union[str, typing.Sequence[str]]' = "*",
                 backref: 'typing.Union[bool, str]' = False):
        """
        :param model: The target model, or the class name of a model on the same metadata.
        :param kind: The :class:`.AssociationKind`. Defaults to EAGER_MANY.
        :param foreign_key: The column on the target table. Defaults to the foreign key name of
            the declaring model, e.g. ``author_id``.
        :param local_key: The column on the declaring table. Defaults to its primary key.
        :param where: A static filter on the target rows.
        :param sort: The order of the target rows, e.g. ``"title DESC"``.
        :param columns: The columns to select from the target table.
        :param backref: If the target rows should point back at the row that loaded them. A
            string names the inverse association explicitly.
        """
        self.model = model
        self.kind = kind
        self.foreign_key = foreign_key
        self.local_key = local_key
        self.where = where
        self.sort = sort
        self.columns = columns
        self.backref = backref

        #: The model class this association was declared on.
        self.owner = None

        #: The name of this association.
        self.name = None

    def __set_name__(self, owner, name):
        self.owner = owner
        self.name = name

    def __repr__(self):
        return "<Association name='{}' model='{}' kind='{}'>".format(self.name, self.model,
                                                                     self.kind)


class AssociationDefinition(typing.NamedTuple):
    """
    The resolved, immutable form of an :class:`.Association`.
    """
    name: str
    target: type
    kind: AssociationKind
    local_key: str
    foreign_key: str
    where: typing.Any
    sort: typing.Any
    columns: typing.Any
    backref: typing.Union[bool, str]


class AssociationRegistry(object):
    """
    The association definitions of every model of one :class:`.ModelMetadata`.

    Definitions for a model class are built the first time it is instantiated, and then reused
    for every later instance. Building is guarded by a lock, so a class is built exactly once even
    when it is first instantiated from several threads at once.
    """

    def __init__(self, metadata: 'md_table.ModelMetadata'):
        self.metadata = metadata

        #: A mapping of model class -> read-only mapping of name -> definition.
        self._definitions = {}

        #: The number of times the definitions of each model class were built.
        self.build_counts = collections.Counter()

        self._lock = threading.Lock()

    def __contains__(self, model: type):
        return model in self._definitions

    def get(self, model: 'typing.Type[md_table.Model]') \
            -> 'typing.Mapping[str, AssociationDefinition]':
        """
        Gets the association definitions of a model class, building them if needed.
        """
        try:
            return self._definitions[model]
        except KeyError:
            pass

        with self._lock:
            # another thread may have built it while we waited
            try:
                return self._definitions[model]
            except KeyError:
                pass

            definitions = types.MappingProxyType(self._build(model))
            self._definitions[model] = definitions
            self.build_counts[model] += 1
            logger.debug("Built {} associations for {}".format(len(definitions), model.__name__))
            return definitions

    def resolve_target(self, target: 'typing.Union[type, str]') -> 'typing.Type[md_table.Model]':
        """
        Resolves the target of a declaration into a model class.
        """
        if isinstance(target, str):
            model = self.metadata.get_model(target)
            if model is None:
                raise AssociationConfigError("No model named '{}' exists".format(target))
            target = model

        if not isinstance(target, type) or not issubclass(target, md_table.Model):
            raise AssociationConfigError("Association target {!r} is not a model".format(target))

        return target

    def _build(self, model: 'typing.Type[md_table.Model]') \
            -> 'typing.Dict[str, AssociationDefinition]':
        info = model.__table_info__
        definitions = collections.OrderedDict()
        for name, declaration in model.iter_associations():
            where = declaration.where
            if isinstance(where, collections.abc.Mapping):
                where = types.MappingProxyType(dict(where))
            elif where is None:
                where = types.MappingProxyType({})

            definitions[name] = AssociationDefinition(
                name=name,
                target=self.resolve_target(declaration.model),
                kind=AssociationKind.parse(declaration.kind),
                local_key=declaration.local_key or info.primary_key_name,
                foreign_key=declaration.foreign_key or info.foreign_key_name,
                where=where,
                sort=declaration.sort,
                columns=declaration.columns or "*",
                backref=declaration.backref,
            )

        return definitions


class AssociationResult(object):
    """
    The result of resolving an association: a row, a set of rows, or nothing found.
    """
    __slots__ = ("tag", "value")

    ROW = "row"
    ROWS = "rows"
    NOT_FOUND = "not_found"

    def __init__(self, tag: str, value=None):
        self.tag = tag
        self.value = value

    def __repr__(self):
        return "<AssociationResult {} {!r}>".format(self.tag, self.value)

    @classmethod
    def row(cls, row: 'md_row.ActiveRecordRow') -> 'AssociationResult':
        return cls(cls.ROW, row)

    @classmethod
    def rows(cls, rows: 'md_row.ResultSet') -> 'AssociationResult':
        return cls(cls.ROWS, rows)

    @classmethod
    def not_found(cls) -> 'AssociationResult':
        return cls(cls.NOT_FOUND)

    @property
    def found(self) -> bool:
        return self.tag != self.NOT_FOUND

    def unwrap(self) -> 'typing.Union[md_row.ActiveRecordRow, md_row.ResultSet, None]':
        """
        :return: The row, the :class:`.ResultSet`, or None when nothing was found.
        """
        return self.value


def _apply_sort(query: 'md_table.Model', sort: typing.Any):
    if sort is None:
        return

    if isinstance(sort, str):
        for part in sort.split(","):
            pieces = part.split()
            if pieces:
                query.order_by(pieces[0], pieces[1] if len(pieces) > 1 else "ASC")
    elif isinstance(sort, collections.abc.Mapping):
        for column, direction in sort.items():
            query.order_by(column, direction)
    else:
        for item in sort:
            _apply_sort(query, item)


def _apply_filter(query: 'md_table.Model', where: typing.Any):
    if not where:
        return

    if isinstance(where, str):
        # keep ORs inside the filter from escaping it
        query.where("({})".format(where))
    elif isinstance(where, collections.abc.Mapping):
        query.where(where)
    else:
        for item in where:
            _apply_filter(query, item)


class RelationshipResolver(object):
    """
    Resolves the associations of one row.
    """

    def __init__(self, row: 'md_table.Model'):
        """
        :param row: The row to resolve associations for.
        """
        self.row = row

    def get_definition(self, name: str) -> AssociationDefinition:
        definitions = self.row.metadata.associations.get(type(self.row))
        try:
            return definitions[name]
        except KeyError:
            raise ConfigurationError("{} has no association '{}'"
                                     .format(type(self.row).__name__, name)) from None

    @staticmethod
    def merge_overrides(definition: AssociationDefinition, overrides: typing.Any) \
            -> AssociationDefinition:
        """
        Merges the overrides of a call into a definition.

        A string replaces the declared filter. A mapping may carry ``where``, merged key by key
        into the declared filter with the call winning (or replacing it, if either is a string),
        and ``sort`` and ``columns``, which replace the declared values.
        """
        if not overrides:
            return definition

        if isinstance(overrides, str):
            return definition._replace(where=overrides)

        if not isinstance(overrides, collections.abc.Mapping):
            raise TypeError("Association overrides must be a string or a mapping, not {}"
                            .format(type(overrides).__name__))

        changes = {}
        if "where" in overrides:
            where = overrides["where"]
            if isinstance(where, collections.abc.Mapping) \
                    and isinstance(definition.where, collections.abc.Mapping):
                changes["where"] = merge_filters(definition.where, where)
            else:
                changes["where"] = where

        if overrides.get("sort") is not None:
            changes["sort"] = overrides["sort"]

        if overrides.get("columns") is not None:
            changes["columns"] = overrides["columns"]

        return definition._replace(**changes)

    def resolve(self, name: str, overrides: typing.Any = None) -> AssociationResult:
        """
        Resolves an association.

        :param name: The name of the association.
        :param overrides: A filter string or a mapping of ``where``/``sort``/``columns``
            overrides. Calls with overrides always run a query.
        """
        definition = self.get_definition(name)
        row = self.row

        if not overrides:
            if definition.kind.is_one and name in row._backrefs:
                return AssociationResult.row(row._backrefs[name])

            if definition.kind.is_eager:
                with row._lock:
                    try:
                        return row._association_cache[name]
                    except KeyError:
                        pass

                    result = self._execute(definition)
                    # a row without a key has nothing to cache yet
                    if row.get(definition.local_key) is not None:
                        row._association_cache[name] = result
                    return result

        return self._execute(self.merge_overrides(definition, overrides))

    def _execute(self, definition: AssociationDefinition) -> AssociationResult:
        local_value = self.row.get(definition.local_key)
        if local_value is None:
            if definition.kind.is_one:
                return AssociationResult.not_found()
            return AssociationResult.rows(md_row.ResultSet())

        query = definition.target(self.row._bind)
        query.where(definition.foreign_key, local_value)
        _apply_filter(query, definition.where)
        _apply_sort(query, definition.sort)
        if definition.columns != "*":
            query.select(definition.columns)

        if definition.kind.is_one:
            query.limit(1)

        logger.debug("Resolving association {} of {}".format(definition.name,
                                                             type(self.row).__name__))
        rows = query.find_all()
        if definition.backref:
            self._set_backrefs(definition, rows)

        if definition.kind.is_one:
            if not rows:
                return AssociationResult.not_found()
            return AssociationResult.row(rows[0])

        return AssociationResult.rows(rows)

    def get_backref_name(self, definition: AssociationDefinition) -> str:
        """
        Gets the name the origin row is stored under on the target rows.

        This is the association of the target pointing back at the origin model on the same
        keys, or the table name of the origin when the target declares none.
        """
        if isinstance(definition.backref, str):
            return definition.backref

        origin = type(self.row)
        inverse = definition.target.metadata.associations.get(definition.target)
        for other in inverse.values():
            if other.kind.is_one and issubclass(origin, other.target) \
                    and other.local_key == definition.foreign_key \
                    and other.foreign_key == definition.local_key:
                return other.name

        return origin.__table_info__.short_name

    def _set_backrefs(self, definition: AssociationDefinition, rows: 'md_row.ResultSet'):
        name = self.get_backref_name(definition)
        for related in rows:
            related._backrefs[name] = self.row
