"""Typed errors raised by docshape.

Every error is a structured object so callers can branch on the kind of
failure and pull field-level detail out programmatically.
"""

from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

WriteOperation = Literal["insert", "update", "replace"]


class DocShapeError(Exception):
    """Base exception for all docshape errors."""


@dataclass(frozen=True)
class ValidationIssue:
    """A single field-level problem reported by schema validation."""

    path: tuple[str | int, ...]
    message: str
    type: str = "value_error"

    @property
    def field(self) -> str:
        """Dotted field path, or ``root`` for model-level issues."""
        return ".".join(str(part) for part in self.path) or "root"


class ValidationError(DocShapeError):
    """Raised when a payload fails schema validation."""

    def __init__(self, issues: Sequence[ValidationIssue], operation: WriteOperation):
        self.issues = list(issues)
        self.operation = operation
        super().__init__(f"Validation failed on {operation}: {self._format_issues()}")

    def _format_issues(self) -> str:
        return "; ".join(f"{issue.field}: {issue.message}" for issue in self.issues)

    def field_errors(self) -> dict[str, list[str]]:
        """Group issue messages by dotted field path."""
        grouped: dict[str, list[str]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.field, []).append(issue.message)
        return grouped


class AsyncValidationError(DocShapeError):
    """Raised when a schema needs asynchronous validation, which is not supported."""

    def __init__(self, schema_name: Optional[str] = None):
        self.schema_name = schema_name
        target = f" on {schema_name}" if schema_name else ""
        super().__init__(
            f"Async validation is not supported{target}. "
            "Use synchronous validators on the schema."
        )


class DatabaseConnectionError(DocShapeError):
    """Raised when the database is unreachable or no connection is established."""

    def __init__(self, message: str, uri: Optional[str] = None):
        self.uri = uri
        super().__init__(message)


class ConfigurationError(DocShapeError):
    """Raised when invalid configuration options are provided."""

    def __init__(self, message: str, option: Optional[str] = None):
        self.option = option
        super().__init__(message)


class DocumentNotFoundError(DocShapeError):
    """Raised by helpers that require a matching document to exist."""

    def __init__(self, collection: str, query: Any):
        self.collection = collection
        self.query = query
        super().__init__(f"Document not found in collection '{collection}'")


class OperationError(DocShapeError):
    """Raised when the database rejects or fails an operation.

    The driver error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, message: str, collection: Optional[str] = None):
        self.operation = operation
        self.collection = collection
        super().__init__(f"{operation} operation failed: {message}")
