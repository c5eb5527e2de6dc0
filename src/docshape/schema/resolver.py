"""Update semantics for docshape write paths.

Decides, for each kind of write, which fields receive schema defaults:

  Write kind       -> Defaulting
  -----------------------------------------------
  insert           -> every absent field (full validation)
  update           -> none; absent fields stay untouched
  upsert update    -> insert-only ($setOnInsert) for fields neither modified
                      by the update nor pinned by the filter
  replace          -> every absent field (full validation), _id stripped
  upsert replace   -> same as replace
"""

import copy
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from loguru import logger
from pydantic import BaseModel

from docshape.errors import ValidationError, ValidationIssue
from docshape.schema.adapter import ID_FIELD, Schema, validate_full, validate_partial
from docshape.schema.defaults import extract_defaults
from docshape.schema.provenance import equality_pinned_fields, is_operator, modified_fields

# Sections of an operator document whose contents are document fields
VALIDATED_OPERATORS = ("$set", "$setOnInsert")


class WriteKind(Enum):
    """Kinds of write, each with its own defaulting policy."""

    INSERT = "insert"
    UPDATE = "update"
    UPSERT_UPDATE = "upsert_update"
    REPLACE = "replace"
    UPSERT_REPLACE = "upsert_replace"

    @classmethod
    def for_update(cls, upsert: bool) -> "WriteKind":
        return cls.UPSERT_UPDATE if upsert else cls.UPDATE

    @classmethod
    def for_replace(cls, upsert: bool) -> "WriteKind":
        return cls.UPSERT_REPLACE if upsert else cls.REPLACE


# --- Insert ---


def prepare_insert(schema: Schema, data: Any) -> dict[str, Any]:
    """Validate a new document; defaults fill every absent field."""
    document = validate_full(schema, data, "insert")
    # An unset optional identifier must not reach the store as null
    if ID_FIELD in document and document[ID_FIELD] is None:
        del document[ID_FIELD]
    return document


# --- Update ---


def build_update(schema: Schema, changes: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    """Turn caller changes into a validated operator document.

    Plain field changes are partially validated and wrapped in ``$set``. An
    operator document has its ``$set`` and ``$setOnInsert`` sections partially
    validated; other operators pass through untouched, as do dotted paths.

    Raises:
        ValueError: If operator and plain field keys are mixed
        ValidationError: If a changed field is invalid
    """
    if isinstance(changes, BaseModel):
        changes = changes.model_dump(by_alias=True, exclude_unset=True)

    operator_keys = [key for key in changes if is_operator(key)]
    if not operator_keys:
        return _without_empty_sections({"$set": validate_partial(schema, changes)})

    if len(operator_keys) != len(changes):
        plain = sorted(key for key in changes if not is_operator(key))
        raise ValueError(f"Update mixes operators with plain fields: {plain}")

    update: dict[str, Any] = dict(changes)
    for operator in VALIDATED_OPERATORS:
        section = update.get(operator)
        if isinstance(section, Mapping):
            update[operator] = _validate_section(schema, section)
    return _without_empty_sections(update)


def _validate_section(schema: Schema, section: Mapping[str, Any]) -> dict[str, Any]:
    # Dotted paths address nested values the relaxed schema cannot see
    top_level = {key: value for key, value in section.items() if "." not in key}
    nested = {key: value for key, value in section.items() if "." in key}
    return {**validate_partial(schema, top_level), **nested}


def _without_empty_sections(update: dict[str, Any]) -> dict[str, Any]:
    return {
        operator: section
        for operator, section in update.items()
        if not (operator in VALIDATED_OPERATORS and not section)
    }


def apply_defaults_for_upsert(
    schema: Schema,
    filter: Optional[Mapping[str, Any]],
    update: Mapping[str, Any],
) -> Mapping[str, Any]:
    """Add schema defaults to ``$setOnInsert`` for an upsert.

    A default is added only if its field is not modified by any operator in
    ``update`` and not pinned by an equality clause in ``filter``; in both
    cases the store already knows the value to insert. Values the caller put
    in ``$setOnInsert`` always win.

    Args:
        schema: Pydantic model with the defaults
        filter: The upsert's query filter
        update: Operator document to extend

    Returns:
        ``update`` itself when no default applies, otherwise a new operator
        document with the merged ``$setOnInsert`` section
    """
    defaults = extract_defaults(schema)
    if not defaults:
        return update

    claimed = modified_fields(update) | equality_pinned_fields(filter)
    insert_only = {
        field: value
        for field, value in defaults.items()
        if field != ID_FIELD and not _overlaps(field, claimed)
    }
    if not insert_only:
        return update

    logger.debug(f"Upsert defaults for {schema.__name__}: {sorted(insert_only)}")
    merged = dict(update)
    # Cached defaults are shared by every write on this schema
    merged["$setOnInsert"] = {**copy.deepcopy(insert_only), **update.get("$setOnInsert", {})}
    return merged


def _overlaps(field: str, paths: Iterable[str]) -> bool:
    """Whether ``field`` is one of ``paths`` or shares a parent/child path with one."""
    return any(
        path == field or path.startswith(f"{field}.") or field.startswith(f"{path}.")
        for path in paths
    )


def prepare_update(
    schema: Schema,
    filter: Optional[Mapping[str, Any]],
    changes: Mapping[str, Any] | BaseModel,
    upsert: bool = False,
) -> Mapping[str, Any]:
    """Build the operator document for update/update_one.

    Raises:
        ValidationError: If nothing is left to write once the changes are
            validated, e.g. ``{}`` or only fields the schema does not declare
    """
    update = build_update(schema, changes)
    if WriteKind.for_update(upsert) is WriteKind.UPSERT_UPDATE:
        update = apply_defaults_for_upsert(schema, filter, update)
    if not update:
        issue = ValidationIssue(
            path=(), message="update has no changes to apply", type="empty_update"
        )
        raise ValidationError([issue], "update")
    return update


# --- Replace ---


def prepare_replace(schema: Schema, data: Any, upsert: bool = False) -> dict[str, Any]:
    """Validate a replacement document.

    Full validation already back-fills every default, so an upsert that
    inserts gets a complete document with no extra insert-only handling. The
    identifier comes from the filter, never from the payload.
    """
    kind = WriteKind.for_replace(upsert)
    document = validate_full(schema, data, "replace")
    document.pop(ID_FIELD, None)
    logger.debug(f"Prepared {kind.value} for {schema.__name__}")
    return document
