"""Schema layer for docshape.

Validates documents against pydantic models and derives, for every write
path, which fields receive schema defaults.
"""

from docshape.schema.adapter import (
    ID_FIELD,
    Schema,
    get_partial_model,
    validate_full,
    validate_partial,
)
from docshape.schema.defaults import clear_caches, extract_defaults
from docshape.schema.provenance import (
    UPDATE_OPERATORS,
    equality_pinned_fields,
    modified_fields,
)
from docshape.schema.resolver import (
    WriteKind,
    apply_defaults_for_upsert,
    build_update,
    prepare_insert,
    prepare_replace,
    prepare_update,
)

__all__ = [
    # Adapter
    "ID_FIELD",
    "Schema",
    "get_partial_model",
    "validate_full",
    "validate_partial",
    # Defaults
    "clear_caches",
    "extract_defaults",
    # Provenance
    "UPDATE_OPERATORS",
    "equality_pinned_fields",
    "modified_fields",
    # Resolver
    "WriteKind",
    "apply_defaults_for_upsert",
    "build_update",
    "prepare_insert",
    "prepare_replace",
    "prepare_update",
]
