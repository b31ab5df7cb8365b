"""
Row objects.
"""
import collections
import collections.abc
import threading
import typing

from recordql.exc import ViewModelError
from recordql.orm import query as md_query
from recordql.orm.schema import history as md_history
from recordql.orm.schema.decorators import enforce_not_deleted, enforce_single_row
from recordql.sentinels import NO_VALUE


class ActiveRecordRow(md_query.ConditionBuilder):
    """
    Represents a single row of a table, and the query scope used to find, update and delete rows
    of that table.

    The column names are the keys, and the values of that row are the items. Values can be read
    and written as attributes or as items:

    .. code-block:: python3

        row.from_array({"id": 1, "title": "Dune"})
        row.title             # "Dune"
        row["title"] = "Emma"  # same as row.set("title", "Emma")

    Every column written with :meth:`.set` becomes "dirty" and is written on the next save.
    Hydrating a row (from the database, or with :meth:`.from_array`) marks nothing dirty.

    .. note::
        Attributes of the class win over columns. A column named like a method of the row or of
        the query scope (``count``, ``limit``, ``where``, ``get``, ``keys``, ``set``, ``update``,
        ``delete``, ``query``, ...) can only be read and written as an item:
        ``row["count"]``.
    """

    def __init__(self):
        super().__init__()

        #: A mapping of column name -> current value for this row.
        self._values = collections.OrderedDict()

        #: A mapping of column name -> ColumnChange object for this row.
        self._history = collections.OrderedDict()  # type: typing.Dict[str, md_history.ColumnChange]

        #: If this row holds exactly one hydrated row.
        self._single_row = False

        #: If this row is marked as "deleted".
        #: This means that the row cannot be updated.
        self.__deleted = False

        #: The per row memo of eager association results.
        self._association_cache = {}

        #: The inverse rows set on this row by a backref.
        self._backrefs = {}

        #: Serializes writes to the caches above.
        self._lock = threading.RLock()

    def __repr__(self):
        gen = ("{}={!r}".format(key, value) for key, value in self._values.items())
        return "<{} {}>".format(type(self).__name__, " ".join(gen))

    def __getattr__(self, item: str):
        # private attributes are never columns
        if item.startswith("_"):
            raise AttributeError("'{}' object has no attribute '{}'"
                                 .format(type(self).__name__, item))

        try:
            return self._values[item]
        except KeyError:
            raise AttributeError("'{}' object has no attribute or column '{}'"
                                 .format(type(self).__name__, item)) from None

    def __setattr__(self, key, value):
        # ensure we're not setting columns until we get _values
        try:
            object.__getattribute__(self, "_values")
        except AttributeError:
            return super().__setattr__(key, value)

        if key.startswith("_") or key in self.__dict__ or hasattr(type(self), key):
            return super().__setattr__(key, value)

        self.set(key, value)

    def __getitem__(self, item: str):
        return self._values[item]

    def __setitem__(self, key: str, value: typing.Any):
        self.set(key, value)

    def __contains__(self, item: str):
        return item in self._values

    __hash__ = object.__hash__

    def __eq__(self, other):
        if not isinstance(other, ActiveRecordRow):
            return NotImplemented

        if type(other) is not type(self) or self.primary_key is None:
            return self is other

        return self.primary_key == other.primary_key

    @property
    def primary_key(self) -> typing.Any:
        """
        Gets the primary key value for this row, or None if it has none yet.
        """
        return self._values.get(self.primary_key_name)

    @property
    def is_single_row(self) -> bool:
        """
        :return: If this object holds exactly one hydrated row.
        """
        return self._single_row

    @property
    def is_deleted(self) -> bool:
        return self.__deleted

    @property
    def is_dirty(self) -> bool:
        return bool(self._history)

    @property
    def dirty_fields(self) -> typing.List[str]:
        """
        :return: The columns set since this row was last hydrated or persisted.
        """
        return list(self._history.keys())

    def keys(self) -> typing.List[str]:
        return list(self._values.keys())

    def get(self, key: str, default: typing.Any = None) -> typing.Any:
        """
        Gets the value of a column, or a default if this row has no such column.
        """
        return self._values.get(key, default)

    def get_old_value(self, key: str) -> typing.Any:
        """
        Gets the value a dirty column had before it was first set, or NO_VALUE if it is not dirty.
        """
        try:
            return self._history[key].previous_value
        except KeyError:
            return NO_VALUE

    def get_dirty(self) -> 'collections.OrderedDict[str, typing.Any]':
        """
        :return: A mapping of dirty column -> current value.
        """
        return collections.OrderedDict(
            (name, change.current_value) for name, change in self._history.items()
        )

    @enforce_not_deleted
    def set(self, key: 'typing.Union[str, typing.Mapping[str, typing.Any]]',
            value: typing.Any = NO_VALUE) -> 'ActiveRecordRow':
        """
        Sets one column, or every column of a mapping, marking them as dirty.

        This does not write anything to the database.
        """
        if isinstance(key, collections.abc.Mapping):
            for name, item in key.items():
                self.set(name, item)

            return self

        if value is NO_VALUE:
            raise TypeError("set() needs a value for column '{}'".format(key))

        before = self._values.get(key)
        if key in self._history:
            change = md_history.ValueChange(key)
            change.handle_change_with_history(self._history[key], value)
        else:
            change = md_history.ValueChange(key)
            change.handle_change(before, value)

        self._history[key] = change
        self._values[key] = value
        self._forget_associations(key)
        return self

    def _hydrate(self, values: typing.Mapping[str, typing.Any]) -> 'ActiveRecordRow':
        self._values = collections.OrderedDict(values)
        self._history.clear()
        self._single_row = True
        self._forget_associations()
        return self

    def _associations_using(self, column: str) -> typing.Iterable[str]:
        """
        :return: The names of the associations resolved through ``column`` of this row.
        """
        return ()

    def _forget_associations(self, column: str = None):
        """
        Drops cached association results and backrefs, either all of them or only the ones
        resolved through one column.
        """
        with self._lock:
            if column is None:
                self._association_cache.clear()
                self._backrefs.clear()
                return

            for name in self._associations_using(column):
                self._association_cache.pop(name, None)
                self._backrefs.pop(name, None)

    def _clear_history(self):
        self._history.clear()

    def _mark_deleted(self):
        self.__deleted = True

    def _new_instance(self) -> 'ActiveRecordRow':
        """
        Creates an empty row of the same type, used for hydrating multiple rows.
        """
        return type(self)()

    def from_array(self, data: 'typing.Union[typing.Mapping, typing.Sequence[typing.Mapping]]') \
            -> 'typing.Union[ActiveRecordRow, ResultSet]':
        """
        Hydrates rows directly from data, without running a query. Nothing becomes dirty.

        :param data: A mapping for a single row, or a sequence of mappings for many rows.
        :return: This row, hydrated, for a mapping. A :class:`.ResultSet` of new rows for a
            sequence.
        """
        if isinstance(data, collections.abc.Mapping):
            return self._hydrate(data)

        rows = []
        for values in data:
            rows.append(self._new_instance()._hydrate(values))

        return ResultSet(rows)

    def to_dict(self) -> dict:
        """
        Converts this row to a dict, indexed by column name.
        """
        return dict(self._values)

    @enforce_single_row
    def get_view_model(self) -> dict:
        """
        Gets the flat column mapping of this row.

        :raises ViewModelError: If this object does not hold exactly one hydrated row.
        """
        return self.to_dict()

    def get_backref(self, name: str) -> 'typing.Optional[ActiveRecordRow]':
        """
        Gets a row set on this row by the backref of an association, if any.
        """
        return self._backrefs.get(name)


class ResultSet(collections.abc.Sequence):
    """
    An ordered sequence of rows of one table.
    """

    def __init__(self, rows: 'typing.Iterable[ActiveRecordRow]' = ()):
        self._rows = list(rows)

    def __repr__(self):
        return "<ResultSet rows={}>".format(len(self._rows))

    def __getitem__(self, item):
        if isinstance(item, slice):
            return ResultSet(self._rows[item])

        return self._rows[item]

    def __len__(self):
        return len(self._rows)

    def __eq__(self, other):
        if not isinstance(other, ResultSet):
            return NotImplemented

        return self._rows == other._rows

    @property
    def is_single_row(self) -> bool:
        return False

    def first(self) -> 'typing.Optional[ActiveRecordRow]':
        """
        :return: The first row of this set, or None if it is empty.
        """
        return self._rows[0] if self._rows else None

    def to_list(self) -> typing.List[dict]:
        """
        Converts every row of this set to a dict.
        """
        return [row.to_dict() for row in self._rows]

    def get_view_model(self):
        raise ViewModelError("Can't get a view model of a set of {} rows".format(len(self)))
