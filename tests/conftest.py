"""
py.test configuration
"""
import types

import pytest

from recordql import Association, AssociationKind, DatabaseInterface, model_base
from recordql.orm.session import Session

BOOK_TIMESTAMPS = {
    "on_insert": ["created_at", "updated_at"],
    "on_update": ["updated_at"],
}


@pytest.fixture()
def db(tmp_path) -> DatabaseInterface:
    iface = DatabaseInterface(dsn="sqlite3:///{}".format(tmp_path / "recordql.db"))
    iface.connect()
    yield iface
    iface.close()


@pytest.fixture()
def Model(db: DatabaseInterface):
    base = model_base()
    db.bind_models(base)
    return base


@pytest.fixture()
def models(Model):
    class Author(Model, table_name="author"):
        __schema__ = {
            "id": {"type": "id"},
            "name": {"type": "string", "length": 64, "null": False},
        }

        books = Association("Book", kind=AssociationKind.EAGER_MANY, sort="title ASC",
                            backref=True)
        lazy_books = Association("Book", kind="lazy_many", sort="title ASC")
        first_book = Association("Book", kind=AssociationKind.LAZY_ONE, sort="id ASC")
        published_books = Association("Book", kind=AssociationKind.LAZY_MANY,
                                      where={"published": 1}, sort="title ASC")

    class Book(Model, table_name="book"):
        __timestampable__ = BOOK_TIMESTAMPS
        __schema__ = {
            "id": {"type": "id"},
            "author_id": {"type": "int", "index": True},
            "title": {"type": "string", "length": 125},
            "published": {"type": "bool", "default": 0},
            "created_at": {"type": "datetime"},
            "updated_at": {"type": "datetime"},
        }

        author = Association("Author", kind=AssociationKind.ONE,
                             local_key="author_id", foreign_key="id")

    return types.SimpleNamespace(Author=Author, Book=Book)


@pytest.fixture()
def library(models):
    """
    Two authors with three books.
    """
    herbert = models.Author().insert({"name": "Frank Herbert"})
    austen = models.Author().insert({"name": "Jane Austen"})
    models.Book().insert([
        {"author_id": herbert.id, "title": "Dune", "published": 1},
        {"author_id": herbert.id, "title": "Children of Dune", "published": 0},
        {"author_id": austen.id, "title": "Emma", "published": 1},
    ])
    return types.SimpleNamespace(herbert=herbert, austen=austen)


@pytest.fixture()
def queries(monkeypatch):
    """
    Records the SQL of every query run through a session.
    """
    executed = []
    original = Session.cursor

    def cursor(self, sql, params=None):
        executed.append(sql)
        return original(self, sql, params)

    monkeypatch.setattr(Session, "cursor", cursor)
    return executed
