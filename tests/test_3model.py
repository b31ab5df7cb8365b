"""
Tests rows and persistence methods of Model.
"""
import pytest

from recordql import ResultSet, get_pk, get_row_bind, get_row_history, model_base
from recordql.orm.inspection import is_deleted
from recordql.exc import ConfigurationError, IntegrityError, MissingTableError, \
    QueryExecutionError, UnsafeDeleteError, ViewModelError

NOW = "2020-02-02 20:20:20"


@pytest.fixture()
def frozen(models, monkeypatch):
    monkeypatch.setattr(models.Book, "get_datetime", staticmethod(lambda: NOW))
    return NOW


def test_missing_table_name(Model):
    class Nameless(Model):
        pass

    with pytest.raises(ConfigurationError):
        Nameless()


def test_missing_primary_key_name(Model):
    class Keyless(Model, table_name="keyless", primary_key=""):
        pass

    with pytest.raises(ConfigurationError):
        Keyless()


def test_missing_bind():
    Base = model_base()

    class Unbound(Base, table_name="unbound"):
        pass

    with pytest.raises(ConfigurationError):
        Unbound()


def test_explicit_bind(db):
    Base = model_base()

    class Bound(Base, table_name="bound"):
        pass

    assert Bound(db).get_table_name() == "bound"


def test_table_info(Model):
    class Post(Model, table_name="app_post"):
        __table_prefix__ = "app_"

    class Comment(Model, table_name="comment", primary_key="comment_id", foreign_key="fk_{}"):
        pass

    class Reply(Comment):
        pass

    assert Post.__table_info__.short_name == "post"
    assert Post.__table_info__.foreign_key_name == "post_id"
    assert Post.__table_info__.engine == "InnoDB"
    assert Comment.__table_info__.foreign_key_name == "fk_comment"
    assert Comment.primary_key_name == "comment_id"
    assert Reply.__table_info__.name == "comment"
    assert Reply.primary_key_name == "comment_id"


def test_from_array_single(models):
    book = models.Book().from_array({"id": 1, "title": "Dune"})

    assert book.is_single_row
    assert not book.is_dirty
    assert book.primary_key == 1
    assert book.title == book["title"] == "Dune"
    assert book.get_view_model() == {"id": 1, "title": "Dune"}


def test_from_array_many(models):
    rows = models.Book().from_array([{"id": 1, "title": "Dune"}, {"id": 2, "title": "Emma"}])

    assert isinstance(rows, ResultSet)
    assert len(rows) == 2
    assert not rows.is_single_row
    assert rows[1].title == "Emma"
    assert rows[0].get_view_model() == {"id": 1, "title": "Dune"}
    assert rows.to_list() == [{"id": 1, "title": "Dune"}, {"id": 2, "title": "Emma"}]

    with pytest.raises(ViewModelError):
        rows.get_view_model()


def test_view_model_of_scope(models):
    with pytest.raises(ViewModelError):
        models.Book().get_view_model()


def test_set_marks_dirty(models):
    book = models.Book().from_array({"id": 1, "title": "Dune"})
    book.set("title", "Dune Messiah")
    book.published = 1
    book["title"] = "Children of Dune"

    assert book.dirty_fields == ["title", "published"]
    assert book.get_dirty() == {"title": "Children of Dune", "published": 1}
    assert book.get_old_value("title") == "Dune"
    assert get_row_history(book)["title"] == {"old": "Dune", "new": "Children of Dune"}
    assert get_pk(book) == (1,)


def test_set_mapping(models):
    book = models.Book().set({"title": "Dune", "published": 0})

    assert book.to_dict() == {"title": "Dune", "published": 0}
    assert book.primary_key is None


def test_unknown_attribute(models):
    with pytest.raises(AttributeError):
        models.Book().from_array({"id": 1}).title


def test_insert_many(models, frozen):
    count = models.Book().insert([{"title": "Dune"}, {"title": "Emma"}])

    assert count == 2
    assert models.Book().count() == 2
    assert {book.created_at for book in models.Book().find_all()} == {frozen}


def test_insert_empty(models, queries):
    assert models.Book().insert([]) == 0
    assert queries == []


def test_insert_one(models, frozen):
    book = models.Book().insert({"title": "Dune", "created_at": "1965-08-01 00:00:00"})

    assert isinstance(book, models.Book)
    assert book.id == 1
    assert book.created_at == frozen
    assert book.updated_at == frozen
    assert book.is_single_row and not book.is_dirty

    stored = models.Book().find_one(book.id)
    assert stored.title == "Dune"
    assert stored.created_at == frozen


def test_insert_explicit_pk(models):
    author = models.Author().insert({"id": 40, "name": "Ursula K. Le Guin"})

    assert author.id == 40
    assert models.Author().find_one(40).name == "Ursula K. Le Guin"


def test_save_inserts_without_pk(models, queries):
    book = models.Book().from_array({"title": "Dune"})

    assert book.save() is book
    assert book.id is not None
    assert book.created_at is not None
    assert queries[-1].startswith("INSERT INTO book")
    assert models.Book().find_one(book.id).title == "Dune"


def test_save_updates_with_pk(models, library, queries):
    book = models.Book().from_array({"title": "Dune"})
    book.set("id", 1)
    book.set("title", "Dune Revised")
    del queries[:]

    book.save()

    assert queries == ["UPDATE book SET id = ?, title = ?, updated_at = ? WHERE id = ?"]
    assert not book.is_dirty
    assert models.Book().find_one(1).title == "Dune Revised"
    assert models.Book().count() == 3


def test_update_single_row(models, library, frozen):
    book = models.Book().find_one(3)
    book.title = "Persuasion"

    assert book.update() == 1
    assert book.updated_at == frozen

    stored = models.Book().find_one(3)
    assert stored.title == "Persuasion"
    assert stored.updated_at == frozen


def test_update_data_wins(models, library):
    book = models.Book().find_one(3)
    book.title = "Persuasion"

    book.update({"title": "Sense and Sensibility"})

    assert book.title == "Sense and Sensibility"
    assert models.Book().find_one(3).title == "Sense and Sensibility"


def test_update_nothing(models, library, queries):
    author = models.Author().find_one(1)
    del queries[:]

    assert author.update() == 0
    assert queries == []


def test_update_bulk(models, library):
    updated = models.Book().where("author_id", library.herbert.id).update({"published": 1})

    assert updated == 2
    assert models.Book().where("published", 1).count() == 3


def test_delete_single_row(models, library):
    book = models.Book().find_one(1)

    assert book.delete() == 1
    assert book.is_deleted
    assert models.Book().find_one(1) is None

    with pytest.raises(RuntimeError):
        book.title = "Gone"

    with pytest.raises(RuntimeError):
        book.delete()


def test_delete_unsafe(models, library, queries):
    del queries[:]

    with pytest.raises(UnsafeDeleteError):
        models.Book().delete()

    assert queries == []
    assert models.Book().count() == 3


def test_delete_where(models, library):
    assert models.Book().where("published", 0).delete() == 1
    assert models.Book().count() == 2


def test_delete_all(models, library):
    assert models.Book().delete(delete_all=True) == 3
    assert models.Book().count() == 0


def test_scope_reset_after_execution(models, library):
    scope = models.Book().where("published", 0)

    assert len(scope.find_all()) == 1
    assert not scope.has_conditions
    assert len(scope.find_all()) == 3


def test_find_all_options(models, library):
    titles = [b.title for b in models.Book().order_by("title", "DESC").limit(2).find_all()]
    assert titles == ["Emma", "Dune"]

    rows = models.Book().select(["id", "title"]).where_pk(2).find_all()
    assert rows[0].keys() == ["id", "title"]


def test_find_one(models, library):
    assert models.Book().where("title", "Emma").find_one().id == 3
    assert models.Book().find_one(99) is None


def test_query_raw(models, library):
    result = models.Book().query("SELECT title FROM book WHERE id = ?", [1], raw=True)

    assert result.rows[0]["title"] == "Dune"

    rows = models.Book().query("SELECT * FROM book WHERE published = ?", [1])
    assert [book.title for book in rows] == ["Dune", "Emma"]


def test_create_classmethod(models):
    book = models.Book.create(data={"id": 3, "title": "Emma"})

    assert isinstance(book, models.Book)
    assert book.get_view_model() == {"id": 3, "title": "Emma"}


def test_hooks(models, frozen):
    deleted = []
    scope = models.Book()
    scope.on_insert(lambda row: dict(row, title=row["title"].upper()))
    scope.on_update(lambda values: dict(values, published=1))
    scope.on_delete(lambda: deleted.append(True))

    book = scope.insert({"title": "dune"})
    assert book.title == "DUNE"

    scope.where_pk(book.id).update({"title": "Dune"})
    stored = models.Book().find_one(book.id)
    assert stored.published == 1
    assert stored.title == "Dune"

    scope.where_pk(book.id).delete()
    assert deleted == [True]


def test_hooks_in_setup(Model, models):
    class ShoutingAuthor(Model, table_name="author"):
        __schema__ = models.Author.__schema__

        def setup(self):
            self.on_insert(lambda row: dict(row, name=row["name"].upper()))

    assert ShoutingAuthor().insert({"name": "homer"}).name == "HOMER"
    assert models.Author().insert({"name": "virgil"}).name == "virgil"


def test_missing_table_is_created_once(models, monkeypatch):
    calls = []
    original = models.Author.create_table

    def create_table(self):
        calls.append(self)
        return original(self)

    monkeypatch.setattr(models.Author, "create_table", create_table)

    models.Author().insert({"name": "Homer"})
    assert len(calls) == 1
    assert models.Author().table_exists()
    assert models.Author().get_columns() == ["id", "name"]

    assert models.Author().count() == 1
    assert len(calls) == 1


def test_missing_table_retry_fails(models, monkeypatch):
    calls = []
    monkeypatch.setattr(models.Author, "create_table", lambda self: calls.append(self))

    with pytest.raises(MissingTableError):
        models.Author().find_all()

    assert len(calls) == 1


def test_missing_table_without_schema(Model, monkeypatch):
    class Ghost(Model, table_name="ghost"):
        pass

    calls = []
    monkeypatch.setattr(Ghost, "create_table", lambda self: calls.append(self))

    with pytest.raises(MissingTableError):
        Ghost().find_all()

    assert calls == []


def test_other_errors_never_create(models, monkeypatch):
    models.Author().insert({"name": "Homer"})

    calls = []
    monkeypatch.setattr(models.Author, "create_table", lambda self: calls.append(self))

    with pytest.raises(IntegrityError):
        models.Author().insert({"name": None})

    with pytest.raises(QueryExecutionError):
        models.Author().query("SELECT * FROM author WHERE")

    assert calls == []


def test_inspection(db, models, library):
    book = models.Book().find_one(2)

    assert get_row_bind(book) is db
    assert get_pk(book) == (2,)
    assert get_pk(book, as_tuple=False) == 2
    assert get_row_history(book) == {}

    book.delete()
    assert is_deleted(book)


def test_columns_named_like_methods(models):
    row = models.Book().from_array({"id": 1, "count": 3})

    assert row["count"] == 3
    assert callable(row.count)

    row["count"] = 4
    assert row.get("count") == 4
    assert row.get_dirty() == {"count": 4}
