"""Default extraction for docshape schemas.

The defaults of a schema are found by validating an empty document against its
relaxed form: any field that comes back with a value, without having been
supplied, was filled by a declared default. Results are cached per schema
class for the lifetime of the class.
"""

import weakref
from types import MappingProxyType
from typing import Any, Mapping

from loguru import logger

from docshape.schema.adapter import Schema, clear_partial_models, ensure_sync, get_partial_model

_defaults: "weakref.WeakKeyDictionary[Schema, Mapping[str, Any]]" = weakref.WeakKeyDictionary()

_NO_DEFAULTS: Mapping[str, Any] = MappingProxyType({})


def extract_defaults(schema: Schema) -> Mapping[str, Any]:
    """Return the alias-keyed default values declared by ``schema``.

    Default factories are called once, when defaults for the schema are first read, and
    the produced values are reused for as long as the schema lives.

    Extraction is best-effort: if validating the empty document fails for any reason, an empty
    mapping is returned (and nothing is cached) instead of failing the write
    that asked for it.

    Args:
        schema: Pydantic model to read defaults from

    Returns:
        Read-only mapping of field alias to default value
    """
    cached = _defaults.get(schema)
    if cached is not None:
        return cached

    try:
        blank = get_partial_model(schema).model_validate({})
        ensure_sync(blank, schema.__name__)

        defaulted = {name for name, info in schema.model_fields.items() if not info.is_required()}
        values = blank.model_dump(by_alias=True, include=defaulted) if defaulted else {}
    except Exception as exc:
        logger.warning(f"Could not extract defaults for {schema.__name__}: {exc}")
        return _NO_DEFAULTS

    defaults = MappingProxyType(values)
    _defaults[schema] = defaults
    logger.debug(f"Extracted {len(defaults)} defaults for {schema.__name__}: {sorted(defaults)}")
    return defaults


def clear_caches() -> None:
    """Drop cached defaults and relaxed schemas for every schema."""
    _defaults.clear()
    clear_partial_models()
