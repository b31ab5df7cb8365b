"""
Tests association definitions and resolution.
"""
import concurrent.futures
import types

import pytest

from recordql import Association, AssociationKind, AssociationResult, ResultSet, model_base
from recordql.exc import AssociationConfigError, ConfigurationError
from recordql.orm.schema.relationship import AssociationDefinition, RelationshipResolver


def titles(rows):
    return [row.title for row in rows]


def test_definition_defaults(models):
    definition = models.Author.metadata.associations.get(models.Author)["books"]

    assert definition.target is models.Book
    assert definition.kind is AssociationKind.EAGER_MANY
    assert definition.local_key == "id"
    assert definition.foreign_key == "author_id"
    assert definition.columns == "*"
    assert definition.where == {}


def test_definitions_are_read_only(models):
    definitions = models.Author.metadata.associations.get(models.Author)

    assert isinstance(definitions, types.MappingProxyType)
    with pytest.raises(TypeError):
        definitions["books"] = None

    with pytest.raises(TypeError):
        definitions["published_books"].where["published"] = 0


def test_definitions_built_once(models):
    registry = models.Author.metadata.associations
    for _ in range(5):
        models.Author()

    assert registry.build_counts[models.Author] == 1


def test_definitions_built_once_across_threads(db):
    Base = model_base()
    db.bind_models(Base)

    class Shelf(Base, table_name="shelf"):
        volumes = Association("Volume", kind=AssociationKind.LAZY_MANY)

    class Volume(Base, table_name="volume"):
        shelf = Association(Shelf, kind=AssociationKind.ONE, local_key="shelf_id",
                            foreign_key="id")

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
        rows = list(pool.map(lambda _: Shelf(), range(32)))

    registry = Base.metadata.associations
    assert len(rows) == 32
    assert registry.build_counts[Shelf] == 1
    assert all(row._associations is rows[0]._associations for row in rows)


def test_inherited_declarations(models):
    class Novelist(models.Author):
        novels = Association("Book", kind=AssociationKind.LAZY_MANY)

    names = list(Novelist.metadata.associations.get(Novelist).keys())

    assert names == ["books", "lazy_books", "first_book", "published_books", "novels"]


def test_target_not_a_model(Model):
    class Broken(Model, table_name="broken"):
        things = Association(dict)

    with pytest.raises(AssociationConfigError):
        Broken()


def test_dangling_target(Model):
    class Dangling(Model, table_name="dangling"):
        things = Association("Nowhere")

    with pytest.raises(AssociationConfigError):
        Dangling()


def test_unknown_kind(Model):
    class Confused(Model, table_name="confused"):
        things = Association("Confused", kind="sometimes")

    with pytest.raises(ConfigurationError):
        Confused()


def test_kind_parse():
    assert AssociationKind.parse("lazy_many") is AssociationKind.LAZY_MANY
    assert AssociationKind.parse("ONE") is AssociationKind.EAGER_ONE
    assert AssociationKind.parse("many") is AssociationKind.EAGER_MANY
    assert AssociationKind.parse(AssociationKind.LAZY_ONE) is AssociationKind.LAZY_ONE
    assert AssociationKind.MANY.is_eager and not AssociationKind.MANY.is_one


def test_eager_many_queries_once(models, library, queries):
    author = library.herbert
    del queries[:]

    first = author.books()
    second = author.get_association("books")

    assert first is second
    assert len(queries) == 1
    assert isinstance(first, ResultSet)
    assert titles(first) == ["Children of Dune", "Dune"]


def test_eager_cache_is_per_row(models, library, queries):
    library.herbert.books()
    del queries[:]

    models.Author().find_one(library.herbert.id).books()

    assert len([sql for sql in queries if sql.startswith("SELECT * FROM book")]) == 1


def test_override_bypasses_cache(models, library, queries):
    author = library.herbert
    cached = author.books()
    del queries[:]

    published = author.books({"where": {"published": 1}})

    assert titles(published) == ["Dune"]
    assert len(queries) == 1
    assert author.books() is cached
    assert len(queries) == 1


def test_lazy_queries_every_time(models, library, queries):
    author = library.herbert
    del queries[:]

    first = author.lazy_books()
    second = author.lazy_books()

    assert first is not second
    assert titles(first) == titles(second)
    assert len(queries) == 2


def test_lazy_one(models, library):
    first = library.herbert.first_book()

    assert isinstance(first, models.Book)
    assert first.title == "Dune"

    lonely = models.Author().insert({"name": "Harper Lee"})
    assert lonely.first_book() is None


def test_one_results(models, library):
    found = library.austen.resolve_association("first_book")
    missing = models.Author().insert({"name": "Harper Lee"}).resolve_association("first_book")
    many = library.austen.resolve_association("lazy_books")

    assert found.tag == AssociationResult.ROW and found.found
    assert missing.tag == AssociationResult.NOT_FOUND and not missing.found
    assert missing.unwrap() is None
    assert many.tag == AssociationResult.ROWS
    assert titles(many.unwrap()) == ["Emma"]


def test_null_local_key_runs_no_query(models, library, queries):
    book = models.Book().from_array({"id": 9, "author_id": None, "title": "Beowulf"})
    author = models.Author().from_array({"name": "Anonymous"})
    del queries[:]

    assert book.author() is None
    assert len(author.books()) == 0
    assert len(author.lazy_books()) == 0
    assert queries == []


def test_eager_one(models, library, queries):
    book = models.Book().find_one(3)
    del queries[:]

    author = book.author()

    assert author == library.austen
    assert book.author() is author
    assert len(queries) == 1


def test_declared_filter(models, library):
    assert titles(library.herbert.published_books()) == ["Dune"]


def test_override_filter_wins(models, library):
    rows = library.herbert.published_books({"where": {"published": 0}})

    assert titles(rows) == ["Children of Dune"]


def test_override_filter_adds(models, library):
    rows = library.herbert.published_books({"where": {"title LIKE ?": "Dune%"}})

    assert titles(rows) == ["Dune"]


def test_override_string_replaces_filter(models, library):
    rows = library.herbert.published_books("published = 0 OR title = 'Dune'")

    assert titles(rows) == ["Children of Dune", "Dune"]


def test_override_sort(models, library):
    rows = library.herbert.lazy_books({"sort": "title DESC"})

    assert titles(rows) == ["Dune", "Children of Dune"]


def test_override_columns(models, library):
    rows = library.herbert.lazy_books({"columns": ["id", "title"]})

    assert [row.keys() for row in rows] == [["id", "title"], ["id", "title"]]


def test_backref(models, library, queries):
    author = library.herbert
    books = author.books()
    del queries[:]

    assert all(book.author() is author for book in books)
    assert all(book.get_backref("author") is author for book in books)
    assert queries == []


def test_backref_name_fallback(db):
    Base = model_base()
    db.bind_models(Base)

    class Publisher(Base, table_name="app_publisher"):
        __table_prefix__ = "app_"
        imprints = Association("Imprint", kind=AssociationKind.LAZY_MANY, backref=True)
        named = Association("Imprint", kind=AssociationKind.LAZY_MANY, backref="owner")

    class Imprint(Base, table_name="imprint"):
        pass

    resolver = RelationshipResolver(Publisher())

    assert resolver.get_backref_name(resolver.get_definition("imprints")) == "publisher"
    assert resolver.get_backref_name(resolver.get_definition("named")) == "owner"


def test_unknown_association(models, library):
    with pytest.raises(ConfigurationError):
        library.herbert.get_association("essays")

    with pytest.raises(AttributeError):
        library.herbert.essays()


def make_definition(**kwargs):
    values = dict(name="books", target=object, kind=AssociationKind.LAZY_MANY, local_key="id",
                  foreign_key="author_id", where={}, sort=None, columns="*", backref=False)
    values.update(kwargs)
    return AssociationDefinition(**values)


def test_merge_overrides():
    merge = RelationshipResolver.merge_overrides
    declared = make_definition(where={"published": 1, "deleted": 0}, sort="title")

    merged = merge(declared, {"where": {"published": 0, "lang": "en"}})
    assert merged.where == {"published": 0, "deleted": 0, "lang": "en"}
    assert merged.sort == "title"

    assert merge(declared, "published = 0").where == "published = 0"
    assert merge(declared, {"where": "published = 0"}).where == "published = 0"

    resorted = merge(declared, {"sort": "id DESC", "columns": ["id"]})
    assert resorted.where == declared.where
    assert resorted.sort == "id DESC"
    assert resorted.columns == ["id"]

    assert merge(declared, None) is declared


def test_merge_overrides_bad_type():
    with pytest.raises(TypeError):
        RelationshipResolver.merge_overrides(make_definition(), 5)


def test_rehydrate_drops_eager_cache(models, library):
    author = models.Author().find_one(library.herbert.id)
    assert titles(author.books()) == ["Children of Dune", "Dune"]

    author.from_array(library.austen.to_dict())

    assert titles(author.books()) == ["Emma"]


def test_new_local_key_drops_eager_cache(models, library):
    book = models.Book().find_one(1)
    assert book.author().name == "Frank Herbert"

    book.set("author_id", library.austen.id)

    assert book.author().name == "Jane Austen"


def test_new_local_key_drops_backref(models, library):
    book = library.herbert.books()[0]
    assert book.get_backref("author") is library.herbert

    book.author_id = library.austen.id

    assert book.get_backref("author") is None
    assert book.author() == library.austen


def test_other_columns_keep_eager_cache(models, library, queries):
    book = models.Book().find_one(1)
    author = book.author()
    del queries[:]

    book.title = "Dune (50th Anniversary)"

    assert book.author() is author
    assert queries == []
