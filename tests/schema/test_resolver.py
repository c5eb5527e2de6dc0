"""Tests for docshape.schema.resolver -- per-write-kind defaulting."""

from bson import ObjectId
import pytest

from docshape.errors import ValidationError
from docshape.schema.defaults import extract_defaults
from docshape.schema.resolver import (
    WriteKind,
    apply_defaults_for_upsert,
    build_update,
    prepare_insert,
    prepare_replace,
    prepare_update,
)

from helpers import Catalog, Product


# --- Write kinds ---


def test_write_kind_dispatch():
    """Upsert flag selects the write kind."""
    assert WriteKind.for_update(False) is WriteKind.UPDATE
    assert WriteKind.for_update(True) is WriteKind.UPSERT_UPDATE
    assert WriteKind.for_replace(False) is WriteKind.REPLACE
    assert WriteKind.for_replace(True) is WriteKind.UPSERT_REPLACE


# --- Insert ---


class TestPrepareInsert:
    def test_defaults_applied(self):
        document = prepare_insert(Product, {"name": "Widget", "price": 1})

        assert document == {
            "name": "Widget",
            "price": 1.0,
            "category": "general",
            "in_stock": True,
            "tags": [],
        }

    def test_unset_id_stripped(self):
        """A None _id is left for the server to assign."""
        assert "_id" not in prepare_insert(Product, {"name": "Widget", "price": 1})

    def test_explicit_id_kept(self):
        oid = ObjectId()

        assert prepare_insert(Product, {"_id": oid, "name": "W", "price": 1})["_id"] == oid

    def test_invalid_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            prepare_insert(Product, {"name": "Widget", "price": -1})

        assert exc_info.value.operation == "insert"


# --- Build update ---


class TestBuildUpdate:
    def test_plain_changes_wrapped_in_set(self):
        """Plain field changes -> $set."""
        assert build_update(Product, {"price": 5}) == {"$set": {"price": 5.0}}

    def test_plain_changes_not_back_filled(self):
        """Partial updates never add defaults."""
        update = build_update(Product, {"name": "X"})

        assert update == {"$set": {"name": "X"}}

    def test_operator_document_validates_set(self):
        """Values under $set are validated and coerced."""
        update = build_update(Product, {"$set": {"price": "5"}, "$inc": {"stock": 1}})

        assert update == {"$set": {"price": 5.0}, "$inc": {"stock": 1}}

    def test_operator_document_validates_set_on_insert(self):
        with pytest.raises(ValidationError):
            build_update(Product, {"$setOnInsert": {"price": -1}})

    def test_other_operators_untouched(self):
        """Only $set and $setOnInsert are validated."""
        update = {"$inc": {"price": -100}, "$push": {"tags": 5}}

        assert build_update(Product, update) == update

    def test_dotted_paths_pass_through(self):
        """Dotted keys have no schema field and pass through."""
        update = build_update(Product, {"$set": {"meta.color": "red", "price": 2}})

        assert update == {"$set": {"price": 2.0, "meta.color": "red"}}

    def test_empty_set_dropped(self):
        assert build_update(Product, {"$set": {}, "$inc": {"price": 1}}) == {"$inc": {"price": 1}}

    def test_mixed_keys_rejected(self):
        """Operator and plain keys in one change -> ValueError."""
        with pytest.raises(ValueError, match="mixes operators"):
            build_update(Product, {"$set": {"price": 1}, "name": "X"})

    def test_invalid_change_raises_update_error(self):
        with pytest.raises(ValidationError) as exc_info:
            build_update(Product, {"price": -1})

        assert exc_info.value.operation == "update"

    def test_input_not_mutated(self):
        changes = {"$set": {"price": "5"}}

        build_update(Product, changes)

        assert changes == {"$set": {"price": "5"}}


# --- Upsert defaults ---


class TestApplyDefaultsForUpsert:
    def test_adds_unclaimed_defaults(self):
        """Defaults not claimed by the update or filter -> $setOnInsert."""
        update = apply_defaults_for_upsert(Product, {"name": "X"}, {"$set": {"price": 5}})

        assert update == {
            "$set": {"price": 5},
            "$setOnInsert": {"category": "general", "in_stock": True, "tags": []},
        }

    def test_modified_field_not_defaulted(self):
        """Field set by the update -> no insert-only default."""
        update = apply_defaults_for_upsert(Product, {}, {"$set": {"category": "tools"}})

        assert "category" not in update["$setOnInsert"]
        assert update["$set"] == {"category": "tools"}

    def test_field_modified_by_any_operator_not_defaulted(self):
        update = apply_defaults_for_upsert(Product, {}, {"$push": {"tags": "x"}})

        assert "tags" not in update["$setOnInsert"]

    def test_pinned_field_not_defaulted(self):
        """Equality match in the filter -> no insert-only default."""
        update = apply_defaults_for_upsert(Product, {"category": "special"}, {"$set": {"price": 1}})

        assert "category" not in update["$setOnInsert"]

    def test_range_filter_does_not_pin(self):
        """Range operators don't pin a value, so the default still applies."""
        update = apply_defaults_for_upsert(
            Product, {"category": {"$in": ["a", "b"]}}, {"$set": {"price": 1}}
        )

        assert update["$setOnInsert"]["category"] == "general"

    def test_caller_set_on_insert_wins(self):
        """Caller-supplied $setOnInsert values override defaults."""
        update = apply_defaults_for_upsert(
            Product, {}, {"$set": {"price": 1}, "$setOnInsert": {"in_stock": False}}
        )

        assert update["$setOnInsert"]["in_stock"] is False
        assert update["$setOnInsert"]["category"] == "general"

    def test_id_never_defaulted(self):
        update = apply_defaults_for_upsert(Product, {}, {"$set": {"price": 1}})

        assert "_id" not in update["$setOnInsert"]

    def test_dotted_path_blocks_parent_default(self):
        """Touching tags.0 claims tags."""
        update = apply_defaults_for_upsert(Product, {}, {"$set": {"tags.0": "first"}})

        assert "tags" not in update["$setOnInsert"]

    def test_rename_target_blocks_default(self):
        """$rename target counts as modified."""
        update = apply_defaults_for_upsert(Product, {}, {"$rename": {"kind": "category"}})

        assert "category" not in update["$setOnInsert"]

    def test_returns_same_object_when_nothing_added(self):
        update = {"$set": {"category": "a", "in_stock": False, "tags": []}}

        assert apply_defaults_for_upsert(Product, {}, update) is update

    def test_input_not_mutated(self):
        update = {"$set": {"price": 1}, "$setOnInsert": {"in_stock": False}}

        apply_defaults_for_upsert(Product, {}, update)

        assert update == {"$set": {"price": 1}, "$setOnInsert": {"in_stock": False}}

    def test_order_of_filter_keys_irrelevant(self):
        first = apply_defaults_for_upsert(Product, {"name": "X", "category": "a"}, {"$set": {}})
        second = apply_defaults_for_upsert(Product, {"category": "a", "name": "X"}, {"$set": {}})

        assert first == second

    def test_mutable_default_copied(self):
        """Mutating a returned $setOnInsert value leaves the cached default alone."""
        update = apply_defaults_for_upsert(Product, {}, {"$set": {"price": 1}})
        update["$setOnInsert"]["tags"].append("leaked")

        assert extract_defaults(Product)["tags"] == []
        again = apply_defaults_for_upsert(Product, {}, {"$set": {"price": 2}})
        assert again["$setOnInsert"]["tags"] == []


# --- Prepare update ---


class TestPrepareUpdate:
    def test_plain_update_has_no_set_on_insert(self):
        update = prepare_update(Product, {"name": "X"}, {"price": 5})

        assert update == {"$set": {"price": 5.0}}

    def test_explicit_change_beats_default(self):
        update = prepare_update(Product, {}, {"category": "tools"}, upsert=True)

        assert update["$set"] == {"category": "tools"}
        assert "category" not in update["$setOnInsert"]

    def test_upsert_scenario(self):
        """Upsert with plain changes gets $set and $setOnInsert."""
        update = prepare_update(Product, {"name": "X"}, {"price": 5}, upsert=True)

        assert update == {
            "$set": {"price": 5.0},
            "$setOnInsert": {"category": "general", "in_stock": True, "tags": []},
        }

    def test_filter_pinned_default_skipped(self):
        update = prepare_update(Product, {"category": "special"}, {"price": 5}, upsert=True)

        assert update["$setOnInsert"] == {"in_stock": True, "tags": []}

    def test_factory_default_reused(self):
        """Factory defaults are computed once per schema."""
        first = prepare_update(Catalog, {"title": "A"}, {"version": 2}, upsert=True)
        second = prepare_update(Catalog, {"title": "B"}, {"version": 3}, upsert=True)

        assert first["$setOnInsert"]["created_at"] == second["$setOnInsert"]["created_at"]

    @pytest.mark.parametrize("changes", [{}, {"unknown": 1}, {"$set": {}}])
    def test_empty_update_rejected(self, changes):
        """Nothing left to write -> ValidationError instead of a driver error."""
        with pytest.raises(ValidationError) as exc_info:
            prepare_update(Product, {}, changes)

        assert exc_info.value.operation == "update"
        assert [issue.type for issue in exc_info.value.issues] == ["empty_update"]

    def test_empty_upsert_still_inserts_defaults(self):
        update = prepare_update(Product, {"name": "X"}, {}, upsert=True)

        assert update == {"$setOnInsert": {"category": "general", "in_stock": True, "tags": []}}


# --- Replace ---


class TestPrepareReplace:
    def test_defaults_back_filled(self):
        document = prepare_replace(Product, {"name": "Y", "price": 2})

        assert document["category"] == "general"
        assert document["tags"] == []

    def test_id_stripped(self):
        """Replacement _id is dropped; the filter decides identity."""
        document = prepare_replace(Product, {"_id": ObjectId(), "name": "Y", "price": 2})

        assert "_id" not in document

    def test_upsert_same_as_plain(self):
        data = {"name": "Y", "price": 2}

        assert prepare_replace(Product, data, upsert=True) == prepare_replace(Product, data)

    def test_invalid_raises_replace_error(self):
        with pytest.raises(ValidationError) as exc_info:
            prepare_replace(Product, {"name": ""})

        assert exc_info.value.operation == "replace"
