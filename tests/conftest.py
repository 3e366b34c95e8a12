import mongomock
import pytest
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from main import app


class _RejectingInserts:
    """Collection proxy whose inserts fail; reads and updates go through."""

    def __init__(self, collection, error):
        self._collection = collection
        self._error = error

    def insert_one(self, *args, **kwargs):
        raise self._error(f"{self._collection.name} unavailable")

    def insert_many(self, *args, **kwargs):
        raise self._error(f"{self._collection.name} unavailable")

    def __getattr__(self, name):
        return getattr(self._collection, name)


class FlakyDatabase:
    def __init__(self, db, broken, error=PyMongoError):
        self._db = db
        self._broken = set(broken)
        self._error = error

    def __getitem__(self, name):
        collection = self._db[name]
        if name in self._broken:
            return _RejectingInserts(collection, self._error)
        return collection


@pytest.fixture
def db():
    return mongomock.MongoClient()["bakery_test"]


@pytest.fixture
def client(db):
    app.state.db = db
    yield TestClient(app)
    app.state.db = None


@pytest.fixture
def flaky_db(db):
    def make(*broken, error=PyMongoError):
        return FlakyDatabase(db, broken, error)

    return make
