"""Field provenance for upsert defaulting.

Two sources other than schema defaults can decide a field's value when an
upsert inserts a document:

  Source                       -> Collected by
  -----------------------------------------------
  update operator ($set, ...)  -> modified_fields()
  filter equality ({f: value}) -> equality_pinned_fields()

Both functions are pure and ignore the order of their input's keys.
"""

from typing import Any, Mapping, Optional

UPDATE_OPERATORS = (
    "$set",
    "$unset",
    "$inc",
    "$mul",
    "$rename",
    "$min",
    "$max",
    "$currentDate",
    "$push",
    "$pull",
    "$addToSet",
    "$pop",
    "$bit",
    "$setOnInsert",
)

OPERATOR_PREFIX = "$"


def is_operator(key: str) -> bool:
    return key.startswith(OPERATOR_PREFIX)


def modified_fields(update: Mapping[str, Any]) -> set[str]:
    """Collect every field path touched by a recognized update operator.

    Unrecognized keys are ignored. For ``$rename`` both the source and the
    target path count as modified.
    """
    fields: set[str] = set()
    for operator in UPDATE_OPERATORS:
        section = update.get(operator)
        if not isinstance(section, Mapping):
            continue
        fields.update(section.keys())
        if operator == "$rename":
            fields.update(target for target in section.values() if isinstance(target, str))
    return fields


def equality_pinned_fields(filter: Optional[Mapping[str, Any]]) -> set[str]:
    """Collect field paths a filter pins to a single literal value.

    A field is pinned when its predicate is a literal (scalar or array) or an
    operator document whose only operator is ``$eq``. Range, membership and
    negation operators do not pin, and neither does an embedded document
    without operators.
    """
    pinned: set[str] = set()
    if filter:
        _collect_pinned(filter, pinned)
    return pinned


def _collect_pinned(node: Mapping[str, Any], pinned: set[str]) -> None:
    for key, value in node.items():
        # --- Combinators ($and, $or, $nor, ...) ---
        if is_operator(key):
            if isinstance(value, list):
                for clause in value:
                    if isinstance(clause, Mapping):
                        _collect_pinned(clause, pinned)
            elif isinstance(value, Mapping):
                _collect_pinned(value, pinned)
            continue

        # --- Field predicates ---
        if isinstance(value, Mapping):
            if set(value) == {"$eq"}:
                pinned.add(key)
            continue

        pinned.add(key)
