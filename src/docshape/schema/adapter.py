"""Schema adapter for docshape.

Schemas are pydantic models. This module runs the two validation passes every
write path needs:

  Pass               -> Used by
  -----------------------------------------------
  full validation    -> insert, insert_many, replace (defaults back-filled)
  partial validation -> update, update_one ($set / $setOnInsert contents)

Partial validation runs against a relaxed copy of the schema in which every
required field becomes optional. The relaxed copy is built once per schema
class and cached weakly, so it disappears together with the schema.
"""

import inspect
import weakref
from typing import Annotated, Any, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, create_model, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.fields import FieldInfo

from docshape.errors import (
    AsyncValidationError,
    ValidationError,
    ValidationIssue,
    WriteOperation,
)

# The schema is the model class itself; its identity keys every cache.
Schema = type[BaseModel]

ID_FIELD = "_id"

_partial_models: "weakref.WeakKeyDictionary[Schema, Schema]" = weakref.WeakKeyDictionary()


# --- Relaxed schema ---


def get_partial_model(schema: Schema) -> Schema:
    """Return the all-fields-optional variant of ``schema``.

    Field types, aliases, declared constraints and field validators carry
    over. Required fields get an unvalidated ``None`` default; defaulted fields
    keep their default. The relaxed model copies the source config but does
    not inherit from the source class, so model-level validators only run on
    full validation.
    """
    cached = _partial_models.get(schema)
    if cached is not None:
        return cached

    fields = {name: _relax_field(info) for name, info in schema.model_fields.items()}
    partial = create_model(
        f"{schema.__name__}Partial",
        __config__=ConfigDict(**schema.model_config),
        __module__=schema.__module__,
        __validators__=_field_validators(schema),
        **fields,
    )
    _partial_models[schema] = partial
    logger.debug(f"Built relaxed schema for {schema.__name__} ({len(fields)} fields)")
    return partial


def _field_validators(schema: Schema) -> dict[str, Any]:
    validators = {}
    for name, decorator in schema.__pydantic_decorators__.field_validators.items():
        info = decorator.info
        # Bound to the source class; keep the plain function
        func = getattr(decorator.func, "__func__", decorator.func)
        validators[name] = field_validator(*info.fields, mode=info.mode, check_fields=False)(func)
    return validators


def _relax_field(info: FieldInfo) -> tuple[Any, FieldInfo]:
    annotation = info.annotation
    if info.metadata:
        # Constraints such as ge=0 or AfterValidator live in metadata
        annotation = Annotated[(annotation, *info.metadata)]

    extras: dict[str, Any] = {
        key: value
        for key, value in (
            ("alias", info.alias),
            ("validation_alias", info.validation_alias),
            ("serialization_alias", info.serialization_alias),
            ("discriminator", info.discriminator),
            ("exclude", info.exclude),
        )
        if value is not None
    }

    if info.is_required():
        return annotation, Field(None, validate_default=False, **extras)
    if info.validate_default is not None:
        extras["validate_default"] = info.validate_default
    if info.default_factory is not None:
        return annotation, Field(default_factory=info.default_factory, **extras)
    return annotation, Field(info.default, **extras)


# --- Validation passes ---


def validate_full(
    schema: Schema, data: Any, operation: WriteOperation = "insert"
) -> dict[str, Any]:
    """Validate a complete document and return it with defaults applied.

    Args:
        schema: Pydantic model describing the document
        data: Mapping or model instance to validate
        operation: Reported on the raised ValidationError ("insert" or "replace")

    Returns:
        The validated document, keyed by alias

    Raises:
        ValidationError: If the payload does not satisfy the schema
        AsyncValidationError: If the schema validates asynchronously
    """
    if isinstance(data, BaseModel):
        # Instances may have been mutated or built with model_construct()
        data = data.model_dump(by_alias=True, warnings=False)
    instance = run_validation(schema, data, operation, schema.__name__)
    return instance.model_dump(by_alias=True)


def validate_partial(
    schema: Schema, data: Optional[Mapping[str, Any] | BaseModel]
) -> dict[str, Any]:
    """Validate only the fields present in ``data``.

    Unlike validate_full(), no field absent from the input is ever returned:
    defaults injected by the relaxed pass are stripped so an update never
    reintroduces values the caller did not send.

    Raises:
        ValidationError: With operation "update" if a present field is invalid
        AsyncValidationError: If the schema validates asynchronously
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_unset=True)
    if not data:
        return {}

    partial = get_partial_model(schema)
    instance = run_validation(partial, data, "update", schema.__name__)

    provided = instance.model_fields_set
    if not provided:
        return {}
    return instance.model_dump(by_alias=True, include=provided)


def run_validation(
    model: Schema, data: Any, operation: WriteOperation, schema_name: str
) -> BaseModel:
    """Validate ``data`` with ``model`` and translate failures into docshape errors."""
    try:
        instance = model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(issues_from(exc), operation) from exc

    ensure_sync(instance, schema_name)
    return instance


def ensure_sync(instance: Any, schema_name: str) -> None:
    """Raise AsyncValidationError if validation left awaitables behind.

    An ``async def`` validator makes pydantic hand back a coroutine instead of a
    value. Pending coroutines are closed before raising.
    """
    if inspect.isawaitable(instance):
        pending = [instance]
    else:
        pending = [value for value in vars(instance).values() if inspect.isawaitable(value)]

    if not pending:
        return

    for awaitable in pending:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
    raise AsyncValidationError(schema_name)


def issues_from(exc: PydanticValidationError) -> list[ValidationIssue]:
    """Convert pydantic error details into ValidationIssue records."""
    return [
        ValidationIssue(path=tuple(error["loc"]), message=error["msg"], type=error["type"])
        for error in exc.errors(include_url=False)
    ]


def clear_partial_models() -> None:
    """Drop every cached relaxed schema."""
    _partial_models.clear()
