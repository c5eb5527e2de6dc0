"""docshape - schema-validated document access for MongoDB."""

from importlib.metadata import PackageNotFoundError, version

from docshape.db import (
    HealthCheckResult,
    connect,
    disconnect,
    end_session,
    get_client,
    get_db,
    health_check,
    is_connected,
    scoped_session,
    start_session,
    with_transaction,
)
from docshape.errors import (
    AsyncValidationError,
    ConfigurationError,
    DatabaseConnectionError,
    DocShapeError,
    DocumentNotFoundError,
    OperationError,
    ValidationError,
    ValidationIssue,
)
from docshape.repository import IndexSpec, Repository
from docshape.schema import (
    apply_defaults_for_upsert,
    extract_defaults,
    validate_full,
    validate_partial,
)
from docshape.utils import setup_logging

try:
    __version__ = version("docshape")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    # Connection
    "HealthCheckResult",
    "connect",
    "disconnect",
    "end_session",
    "get_client",
    "get_db",
    "health_check",
    "is_connected",
    "scoped_session",
    "start_session",
    "with_transaction",
    # Errors
    "AsyncValidationError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "DocShapeError",
    "DocumentNotFoundError",
    "OperationError",
    "ValidationError",
    "ValidationIssue",
    # Repository
    "IndexSpec",
    "Repository",
    # Schema
    "apply_defaults_for_upsert",
    "extract_defaults",
    "validate_full",
    "validate_partial",
    # Logging
    "setup_logging",
]
