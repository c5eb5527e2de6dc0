"""Index management for docshape collections.

Thin wrappers over the driver's index commands. The additions are a naming
convention for indexes created without an explicit name
(``field1_dir1_field2_dir2``) and sync_indexes(), which reconciles declared
indexes with the ones that exist on the server.
"""

from typing import Any, Mapping, Optional, Sequence, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, field_validator
from pymongo import ASCENDING, IndexModel
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.collection import AsyncCollection

IndexKeys = Union[str, Mapping[str, Any], Sequence[tuple[str, Any]]]


def normalize_keys(keys: IndexKeys) -> list[tuple[str, Any]]:
    """Turn any supported key spec into ordered (field, direction) pairs."""
    if isinstance(keys, str):
        return [(keys, ASCENDING)]
    if isinstance(keys, Mapping):
        return list(keys.items())
    return [(field, direction) for field, direction in keys]


def generate_index_name(keys: IndexKeys) -> str:
    """Name an index after its keys, e.g. ``{"name": 1, "age": -1}`` -> ``name_1_age_-1``.

    A string spec is already a name and is returned unchanged.
    """
    if isinstance(keys, str):
        return keys
    return "_".join(f"{field}_{direction}" for field, direction in normalize_keys(keys))


class IndexSpec(BaseModel):
    """A declared index: ordered keys, an optional name and any index options.

    Options other than ``key`` and ``name`` (unique, sparse,
    expireAfterSeconds, partialFilterExpression, ...) are kept as extras and
    passed to the driver unchanged.
    """

    model_config = ConfigDict(extra="allow")

    key: dict[str, Any]
    name: Optional[str] = None

    @field_validator("key", mode="before")
    @classmethod
    def coerce_key(cls, value: Any) -> dict[str, Any]:
        return dict(normalize_keys(value))

    @property
    def resolved_name(self) -> str:
        return self.name or generate_index_name(self.key)

    @property
    def options(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_index_model(self) -> IndexModel:
        return IndexModel(list(self.key.items()), name=self.resolved_name, **self.options)


def as_index_spec(index: Union[IndexSpec, Mapping[str, Any]]) -> IndexSpec:
    if isinstance(index, IndexSpec):
        return index
    return IndexSpec.model_validate(index)


async def create_index(
    collection: AsyncCollection,
    keys: IndexKeys,
    *,
    name: Optional[str] = None,
    session: Optional[AsyncClientSession] = None,
    **options: Any,
) -> str:
    """Create a single index and return its name.

    Args:
        collection: Target collection
        keys: Index keys, e.g. ``"email"``, ``{"email": 1}`` or
            ``[("name", 1), ("age", -1)]``; a bare field name is ascending
        name: Explicit name; generated from the keys when omitted
        session: Optional session, passed through
        **options: Index options (unique, sparse, expireAfterSeconds, ...)
    """
    key_pairs = normalize_keys(keys)
    index_name = name or generate_index_name(key_pairs)
    return await collection.create_index(key_pairs, name=index_name, session=session, **options)


async def create_indexes(
    collection: AsyncCollection,
    indexes: Sequence[Union[IndexSpec, Mapping[str, Any]]],
    *,
    session: Optional[AsyncClientSession] = None,
    **options: Any,
) -> list[str]:
    """Create several indexes in one command and return their names."""
    models = [as_index_spec(index).to_index_model() for index in indexes]
    return await collection.create_indexes(models, session=session, **options)


async def drop_index(
    collection: AsyncCollection,
    index: IndexKeys,
    *,
    session: Optional[AsyncClientSession] = None,
) -> None:
    """Drop an index given its name or its key spec."""
    await collection.drop_index(generate_index_name(index), session=session)


async def drop_indexes(
    collection: AsyncCollection, *, session: Optional[AsyncClientSession] = None
) -> None:
    """Drop every index except the one on ``_id``."""
    await collection.drop_indexes(session=session)


async def list_indexes(
    collection: AsyncCollection, *, session: Optional[AsyncClientSession] = None
) -> list[dict[str, Any]]:
    cursor = await collection.list_indexes(session=session)
    return await cursor.to_list()


async def get_index(
    collection: AsyncCollection,
    name: str,
    *,
    session: Optional[AsyncClientSession] = None,
) -> Optional[dict[str, Any]]:
    for index in await list_indexes(collection, session=session):
        if index.get("name") == name:
            return index
    return None


async def index_exists(
    collection: AsyncCollection,
    name: str,
    *,
    session: Optional[AsyncClientSession] = None,
) -> bool:
    return await get_index(collection, name, session=session) is not None


async def sync_indexes(
    collection: AsyncCollection,
    indexes: Sequence[Union[IndexSpec, Mapping[str, Any]]],
    *,
    session: Optional[AsyncClientSession] = None,
    **options: Any,
) -> list[str]:
    """Make the server's indexes match the declared ones.

    Indexes are matched by name. A missing index is created; an index whose
    keys (including their order) differ is dropped and recreated; a matching
    index is left alone. Indexes that exist but are not declared are kept.

    Returns:
        Names of the indexes that were created
    """
    existing = {
        index["name"]: index for index in await list_indexes(collection, session=session)
    }

    to_create: list[IndexSpec] = []
    for index in indexes:
        spec = as_index_spec(index)
        current = existing.get(spec.resolved_name)

        if current is None:
            to_create.append(spec)
        elif list(dict(current["key"]).items()) != list(spec.key.items()):
            logger.warning(
                f"Index '{spec.resolved_name}' on {collection.name} has different keys, recreating"
            )
            await drop_index(collection, spec.resolved_name, session=session)
            to_create.append(spec)

    if not to_create:
        return []

    created = await create_indexes(collection, to_create, session=session, **options)
    logger.info(f"Created indexes on {collection.name}: {created}")
    return created
