"""Schema-validating repository over a MongoDB collection."""

from contextlib import contextmanager
from typing import Any, Generic, Iterable, Iterator, Mapping, Optional, Sequence, TypeVar, Union

from bson import ObjectId
from loguru import logger
from pydantic import BaseModel
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import ConnectionFailure, PyMongoError
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from docshape import db
from docshape.errors import DatabaseConnectionError, DocumentNotFoundError, OperationError
from docshape.repository import indexes
from docshape.repository.indexes import IndexKeys, IndexSpec, as_index_spec
from docshape.schema.adapter import ID_FIELD
from docshape.schema.resolver import prepare_insert, prepare_replace, prepare_update

T = TypeVar("T", bound=BaseModel)

Filter = Mapping[str, Any]


class Repository(Generic[T]):
    """Typed access to one collection, validated against a pydantic schema.

    Every write goes through the schema first:

    - insert_one / insert_many: full validation, defaults applied
    - update / update_one: partial validation of the changed fields; with
      ``upsert=True`` schema defaults are added as insert-only values
    - replace_one: full validation, ``_id`` taken from the filter

    Reads, deletes, counts and aggregations pass filters and pipelines to the
    driver unmodified. Every method accepts ``session`` and any other driver
    keyword options and forwards them unchanged.
    """

    def __init__(
        self,
        schema: type[T],
        collection_name: str,
        *,
        indexes: Optional[Sequence[Union[IndexSpec, Mapping[str, Any]]]] = None,
        database: Optional[AsyncDatabase] = None,
    ):
        """Initialize with a schema and the collection it governs.

        Args:
            schema: Pydantic model validating the collection's documents
            collection_name: Name of the MongoDB collection
            indexes: Indexes to create with init_indexes()
            database: Database to use instead of the one from db.connect()
        """
        self.schema = schema
        self.collection_name = collection_name
        self.indexes = [as_index_spec(index) for index in indexes or []]
        self._database = database

    @property
    def collection(self) -> AsyncCollection:
        """The underlying collection, resolved from the connected database.

        Raises:
            DatabaseConnectionError: If no database is connected
        """
        database = self._database if self._database is not None else db.get_db()
        return database[self.collection_name]

    @contextmanager
    def _driver_errors(self, operation: str) -> Iterator[None]:
        """Translate driver failures into docshape errors."""
        try:
            yield
        except ConnectionFailure as e:
            logger.error(f"{operation} on {self.collection_name} lost the connection: {e}")
            raise DatabaseConnectionError(
                f"{operation} on '{self.collection_name}' could not reach MongoDB: {e}",
                uri=db.current_uri(),
            ) from e
        except PyMongoError as e:
            raise OperationError(operation, str(e), self.collection_name) from e

    # --- Writes ---

    async def insert_one(
        self,
        data: Union[Mapping[str, Any], T],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> InsertOneResult:
        """Validate and insert a single document."""
        document = prepare_insert(self.schema, data)
        logger.debug(f"insert_one into {self.collection_name}")
        with self._driver_errors("insert_one"):
            return await self.collection.insert_one(document, session=session, **options)

    async def insert_many(
        self,
        data: Iterable[Union[Mapping[str, Any], T]],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> InsertManyResult:
        """Validate every document, then insert them in one batch.

        A single invalid document fails the whole batch before anything is sent.
        """
        documents = [prepare_insert(self.schema, item) for item in data]
        logger.debug(f"insert_many of {len(documents)} documents into {self.collection_name}")
        with self._driver_errors("insert_many"):
            return await self.collection.insert_many(documents, session=session, **options)

    async def update(
        self,
        filter: Filter,
        changes: Union[Mapping[str, Any], T],
        *,
        upsert: bool = False,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> UpdateResult:
        """Apply partial changes to every document matching ``filter``.

        Args:
            filter: Query filter, passed through unmodified
            changes: Plain field changes (sent as ``$set``) or an operator document
            upsert: Insert a document when nothing matches; schema defaults
                then fill fields the update and filter leave unset
            session: Optional session, passed through
        """
        update = prepare_update(self.schema, filter, changes, upsert=upsert)
        logger.debug(f"update_many on {self.collection_name} (upsert={upsert})")
        with self._driver_errors("update_many"):
            return await self.collection.update_many(
                filter, update, upsert=upsert, session=session, **options
            )

    async def update_one(
        self,
        filter: Filter,
        changes: Union[Mapping[str, Any], T],
        *,
        upsert: bool = False,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> UpdateResult:
        """Apply partial changes to the first document matching ``filter``.

        See update() for the meaning of the arguments.
        """
        update = prepare_update(self.schema, filter, changes, upsert=upsert)
        logger.debug(f"update_one on {self.collection_name} (upsert={upsert})")
        with self._driver_errors("update_one"):
            return await self.collection.update_one(
                filter, update, upsert=upsert, session=session, **options
            )

    async def replace_one(
        self,
        filter: Filter,
        data: Union[Mapping[str, Any], T],
        *,
        upsert: bool = False,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> UpdateResult:
        """Replace the first document matching ``filter`` with a validated document."""
        document = prepare_replace(self.schema, data, upsert=upsert)
        logger.debug(f"replace_one on {self.collection_name} (upsert={upsert})")
        with self._driver_errors("replace_one"):
            return await self.collection.replace_one(
                filter, document, upsert=upsert, session=session, **options
            )

    async def delete(
        self,
        filter: Filter,
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> DeleteResult:
        with self._driver_errors("delete_many"):
            return await self.collection.delete_many(filter, session=session, **options)

    async def delete_one(
        self,
        filter: Filter,
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> DeleteResult:
        with self._driver_errors("delete_one"):
            return await self.collection.delete_one(filter, session=session, **options)

    # --- Reads ---

    async def find(
        self,
        filter: Optional[Filter] = None,
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> list[dict[str, Any]]:
        with self._driver_errors("find"):
            cursor = self.collection.find(filter or {}, session=session, **options)
            return await cursor.to_list()

    async def find_one(
        self,
        filter: Optional[Filter] = None,
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> Optional[dict[str, Any]]:
        with self._driver_errors("find_one"):
            return await self.collection.find_one(filter or {}, session=session, **options)

    async def find_by_id(
        self,
        id: Union[str, ObjectId],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> Optional[dict[str, Any]]:
        """Find a document by ``_id``; a string id is parsed as an ObjectId."""
        object_id = ObjectId(id) if isinstance(id, str) else id
        return await self.find_one({ID_FIELD: object_id}, session=session, **options)

    async def get_by_id(
        self,
        id: Union[str, ObjectId],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> dict[str, Any]:
        """Like find_by_id() but the document must exist.

        Raises:
            DocumentNotFoundError: If no document has this id
        """
        document = await self.find_by_id(id, session=session, **options)
        if document is None:
            raise DocumentNotFoundError(self.collection_name, {ID_FIELD: id})
        return document

    async def find_paginated(
        self,
        filter: Optional[Filter] = None,
        *,
        skip: int = 0,
        limit: int = 10,
        sort: Optional[Union[Mapping[str, Any], Sequence[tuple[str, Any]]]] = None,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> list[dict[str, Any]]:
        """Find one page of documents.

        Args:
            filter: Query filter, passed through unmodified
            skip: Number of documents to skip
            limit: Page size
            sort: ``{"field": direction}`` or a list of (field, direction) pairs
        """
        with self._driver_errors("find"):
            cursor = self.collection.find(filter or {}, session=session, **options)
            cursor = cursor.skip(skip).limit(limit)
            if sort:
                keys = sort.items() if isinstance(sort, Mapping) else sort
                cursor = cursor.sort(list(keys))
            return await cursor.to_list()

    async def count(
        self,
        filter: Optional[Filter] = None,
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> int:
        with self._driver_errors("count_documents"):
            return await self.collection.count_documents(filter or {}, session=session, **options)

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> list[dict[str, Any]]:
        with self._driver_errors("aggregate"):
            cursor = await self.collection.aggregate(list(pipeline), session=session, **options)
            return await cursor.to_list()

    # --- Indexes ---

    async def init_indexes(self, *, session: Optional[AsyncClientSession] = None) -> list[str]:
        """Synchronize the indexes declared at construction with the server."""
        if not self.indexes:
            return []
        return await self.sync_indexes(self.indexes, session=session)

    async def create_index(
        self,
        keys: IndexKeys,
        *,
        name: Optional[str] = None,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> str:
        with self._driver_errors("create_index"):
            return await indexes.create_index(
                self.collection, keys, name=name, session=session, **options
            )

    async def create_indexes(
        self,
        index_list: Sequence[Union[IndexSpec, Mapping[str, Any]]],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> list[str]:
        with self._driver_errors("create_indexes"):
            return await indexes.create_indexes(
                self.collection, index_list, session=session, **options
            )

    async def drop_index(
        self, index: IndexKeys, *, session: Optional[AsyncClientSession] = None
    ) -> None:
        with self._driver_errors("drop_index"):
            await indexes.drop_index(self.collection, index, session=session)

    async def drop_indexes(self, *, session: Optional[AsyncClientSession] = None) -> None:
        with self._driver_errors("drop_indexes"):
            await indexes.drop_indexes(self.collection, session=session)

    async def list_indexes(
        self, *, session: Optional[AsyncClientSession] = None
    ) -> list[dict[str, Any]]:
        with self._driver_errors("list_indexes"):
            return await indexes.list_indexes(self.collection, session=session)

    async def get_index(
        self, name: str, *, session: Optional[AsyncClientSession] = None
    ) -> Optional[dict[str, Any]]:
        with self._driver_errors("list_indexes"):
            return await indexes.get_index(self.collection, name, session=session)

    async def index_exists(
        self, name: str, *, session: Optional[AsyncClientSession] = None
    ) -> bool:
        with self._driver_errors("list_indexes"):
            return await indexes.index_exists(self.collection, name, session=session)

    async def sync_indexes(
        self,
        index_list: Sequence[Union[IndexSpec, Mapping[str, Any]]],
        *,
        session: Optional[AsyncClientSession] = None,
        **options: Any,
    ) -> list[str]:
        with self._driver_errors("sync_indexes"):
            return await indexes.sync_indexes(
                self.collection, index_list, session=session, **options
            )
