from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import time
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from pymongo import AsyncMongoClient
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from docshape.config import get_config
from docshape.errors import DatabaseConnectionError

T = TypeVar("T")

# Module level state - one client per process
_client: Optional[AsyncMongoClient] = None
_database: Optional[AsyncDatabase] = None
_uri: Optional[str] = None

NOT_CONNECTED = "MongoDB not connected. Call connect() first."


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a ping against the connected database.

    Attributes:
        healthy: Whether the ping succeeded
        connected: Whether a connection had been established
        timestamp: When the check ran (UTC)
        response_time_ms: Ping round trip, only set when healthy
        error: Failure description, only set when unhealthy
    """

    healthy: bool
    connected: bool
    timestamp: datetime
    response_time_ms: Optional[float] = None
    error: Optional[str] = None


async def connect(
    uri: Optional[str] = None,
    database: Optional[str] = None,
    **client_options: Any,
) -> AsyncDatabase:
    """Connect to MongoDB and remember the database for the process.

    Calling connect() again while connected returns the existing database.
    Pooling and retry behavior are left to the driver; options from
    DocShapeConfig are used unless overridden by ``client_options``.

    Args:
        uri: Connection string, defaults to DOCSHAPE_MONGODB_URI
        database: Database name, defaults to DOCSHAPE_DATABASE
        **client_options: Extra AsyncMongoClient keyword options

    Raises:
        DatabaseConnectionError: If the server cannot be reached
    """
    global _client, _database, _uri

    if _database is not None:
        return _database

    config = get_config()
    uri = uri or config.mongodb_uri
    database = database or config.database
    options = {**config.client_options(), **client_options}

    logger.info(f"Connecting to MongoDB database '{database}'")
    client: Optional[AsyncMongoClient] = None
    try:
        client = AsyncMongoClient(uri, **options)
        await client.admin.command("ping")
    except PyMongoError as e:
        if client is not None:
            await client.close()
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise DatabaseConnectionError(f"Failed to connect to MongoDB: {e}", uri=uri) from e

    # Another task may have connected while we were waiting on the ping
    if _database is not None:  # pragma: no cover
        await client.close()
        return _database

    _client = client
    _database = client[database]
    _uri = uri
    logger.info(f"Connected to MongoDB database '{database}'")
    return _database


async def disconnect() -> None:
    """Close the client and forget the connection."""
    global _client, _database, _uri

    if _client is not None:
        await _client.close()
        logger.info("Disconnected from MongoDB")

    _client = None
    _database = None
    _uri = None


def get_client() -> AsyncMongoClient:
    """Get the connected client.

    Raises:
        DatabaseConnectionError: If connect() has not been called
    """
    if _client is None:
        raise DatabaseConnectionError(NOT_CONNECTED)
    return _client


def get_db() -> AsyncDatabase:
    """Get the connected database.

    Raises:
        DatabaseConnectionError: If connect() has not been called
    """
    if _database is None:
        raise DatabaseConnectionError(NOT_CONNECTED)
    return _database


def is_connected() -> bool:
    return _database is not None


def current_uri() -> Optional[str]:
    return _uri


# --- Sessions and transactions ---


def start_session(**options: Any) -> AsyncClientSession:
    """Start a client session; end it with end_session().

    Prefer scoped_session(), which ends the session on every exit path.
    """
    return get_client().start_session(**options)


async def end_session(session: AsyncClientSession) -> None:
    await session.end_session()


@asynccontextmanager
async def scoped_session(**options: Any) -> AsyncGenerator[AsyncClientSession, None]:
    """
    Get a session with proper lifecycle management.

    Args:
        **options: Passed to AsyncMongoClient.start_session()
    """
    session = start_session(**options)
    try:
        yield session
    finally:
        await end_session(session)


async def with_transaction(
    callback: Callable[[AsyncClientSession], Awaitable[T]],
    **transaction_options: Any,
) -> T:
    """Run ``callback`` inside a transaction on a fresh session.

    The transaction commits when the callback returns and aborts when it
    raises; the session is ended either way. Pass the session to every
    repository call made inside the callback.

    Args:
        callback: Async function receiving the session
        **transaction_options: read_concern, write_concern, read_preference,
            max_commit_time_ms

    Returns:
        Whatever the callback returns
    """
    async with scoped_session() as session:
        return await session.with_transaction(callback, **transaction_options)


# --- Health ---


async def health_check() -> HealthCheckResult:
    """Ping the database and report status with round-trip time. Never raises."""
    timestamp = datetime.now(timezone.utc)

    if _database is None:
        return HealthCheckResult(
            healthy=False,
            connected=False,
            timestamp=timestamp,
            error="No active connection. Call connect() first.",
        )

    start = time.perf_counter()
    try:
        await _database.command("ping")
    except PyMongoError as e:
        logger.warning(f"MongoDB health check failed: {e}")
        return HealthCheckResult(
            healthy=False,
            connected=True,
            timestamp=timestamp,
            error=str(e),
        )

    return HealthCheckResult(
        healthy=True,
        connected=True,
        timestamp=timestamp,
        response_time_ms=round((time.perf_counter() - start) * 1000, 2),
    )
