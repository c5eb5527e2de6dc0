"""Common test fixtures.

The store is mongomock behind a thin async facade with the same call shapes
as pymongo's async API. mongomock does not implement sessions, so the facade
records every session it is handed and calls mongomock without it.
"""

import os
from typing import Any, Optional

import mongomock
import pytest
import pytest_asyncio
from docshape import db
from docshape.config import reset_config
from docshape.repository import Repository
from docshape.schema import clear_caches
from helpers import Product


# --- Async facade over mongomock ---


class AsyncCursorStub:
    """Chainable cursor whose to_list() is awaitable."""

    def __init__(self, cursor):
        self._cursor = cursor

    def skip(self, count: int) -> "AsyncCursorStub":
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count: int) -> "AsyncCursorStub":
        self._cursor = self._cursor.limit(count)
        return self

    def sort(self, key_or_list) -> "AsyncCursorStub":
        self._cursor = self._cursor.sort(key_or_list)
        return self

    async def to_list(self, length: Optional[int] = None) -> list[dict[str, Any]]:
        documents = list(self._cursor)
        return documents if length is None else documents[:length]


class AsyncCollectionStub:
    """Awaitable collection methods backed by a mongomock collection."""

    AWAITABLE = {
        "insert_one",
        "insert_many",
        "update_one",
        "update_many",
        "replace_one",
        "delete_one",
        "delete_many",
        "count_documents",
        "find_one",
        "create_index",
        "create_indexes",
        "drop_index",
        "drop_indexes",
    }

    def __init__(self, collection: mongomock.Collection):
        self._collection = collection
        self.name = collection.name
        self.calls: list[tuple[str, Any]] = []

    def _record(self, method: str, session: Any) -> None:
        self.calls.append((method, session))

    def __getattr__(self, method: str):
        if method not in self.AWAITABLE:
            raise AttributeError(method)

        async def call(*args, session=None, **kwargs):
            self._record(method, session)
            return getattr(self._collection, method)(*args, **kwargs)

        return call

    def find(self, filter=None, *, session=None, **kwargs) -> AsyncCursorStub:
        self._record("find", session)
        return AsyncCursorStub(self._collection.find(filter, **kwargs))

    async def aggregate(self, pipeline, *, session=None, **kwargs) -> AsyncCursorStub:
        self._record("aggregate", session)
        return AsyncCursorStub(self._collection.aggregate(pipeline, **kwargs))

    async def list_indexes(self, *, session=None) -> AsyncCursorStub:
        self._record("list_indexes", session)
        return AsyncCursorStub(self._collection.list_indexes())

    def sessions_for(self, method: str) -> list[Any]:
        return [session for name, session in self.calls if name == method]


class AsyncDatabaseStub:
    def __init__(self, database: mongomock.Database):
        self._database = database
        self._collections: dict[str, AsyncCollectionStub] = {}

    def __getitem__(self, name: str) -> AsyncCollectionStub:
        if name not in self._collections:
            self._collections[name] = AsyncCollectionStub(self._database[name])
        return self._collections[name]


# --- Fixtures ---


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    """Isolate caches, config and connection state between tests."""
    for key in [key for key in os.environ if key.startswith("DOCSHAPE_")]:
        monkeypatch.delenv(key, raising=False)
    clear_caches()
    reset_config()
    yield
    clear_caches()
    reset_config()
    db._client = None
    db._database = None
    db._uri = None


@pytest.fixture
def database() -> AsyncDatabaseStub:
    return AsyncDatabaseStub(mongomock.MongoClient()["docshape_test"])


@pytest.fixture
def products_collection(database) -> AsyncCollectionStub:
    return database["products"]


@pytest_asyncio.fixture
async def product_repository(database) -> Repository[Product]:
    return Repository(Product, "products", database=database)


@pytest_asyncio.fixture
async def sample_product(product_repository) -> dict[str, Any]:
    result = await product_repository.insert_one(
        {"name": "Widget", "price": 10, "category": "premium", "tags": ["a"]}
    )
    return await product_repository.get_by_id(result.inserted_id)
