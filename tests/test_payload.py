"""Unit tests for envelope construction and per-entity assembly.

Tests build_envelope() placement rules, PayloadEnvelope helpers, and the
assemble()/finalize() shape table for every entity kind.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from src.sheetsync.fields.schemas import EntityKind, WarningCode
from src.sheetsync.payload.assembler import assemble, finalize
from src.sheetsync.payload.builder import build_envelope
from src.sheetsync.payload.envelope import PayloadEnvelope
from tests.conftest import ADDRESS_HASH, PRIORITY_HASH, TIME_RANGE_HASH

CUSTOM_TEXT = "c0ffee0000000000000000000000000000000001"


# ── PayloadEnvelope ─────────────────────────────────────────────────────────


class TestPayloadEnvelope:
    """Envelope helpers return new values and never mutate."""

    def test_with_root_returns_new_envelope(self):
        """with_root() leaves the original untouched."""
        original = PayloadEnvelope(root={"title": "A"})
        updated = original.with_root({"value": 5})
        assert original.root == {"title": "A"}
        assert updated.root == {"title": "A", "value": 5}

    def test_with_custom_accepts_hash_keys(self):
        """Custom keys may start with a digit."""
        updated = PayloadEnvelope().with_custom({"0abc" + CUSTOM_TEXT: 1})
        assert updated.custom_fields == {"0abc" + CUSTOM_TEXT: 1}

    def test_get_prefers_root(self):
        """get() looks at the root before custom_fields."""
        envelope = PayloadEnvelope(root={"k": 1}, custom_fields={"k": 2, "j": 3})
        assert envelope.get("k") == 1
        assert envelope.get("j") == 3
        assert envelope.get("missing", "x") == "x"

    def test_from_payload_splits_custom_and_drops_internal(self):
        """Raw dicts are split into root and custom_fields without markers."""
        envelope = PayloadEnvelope.from_payload(
            {"title": "A", "__has_range": True, "custom_fields": {CUSTOM_TEXT: "x"}}
        )
        assert envelope.root == {"title": "A"}
        assert envelope.custom_fields == {CUSTOM_TEXT: "x"}


# ── build_envelope ──────────────────────────────────────────────────────────


class TestBuildEnvelope:
    """Row cells are classified, formatted, and placed."""

    def test_custom_and_standard_placement(self, definitions):
        """Hash keys go to custom_fields and well-known keys to the root."""
        row = {"Title": "Big Deal", "Notes": "hello", "Value": "1500"}
        mapping = {"Title": "title", "Notes": CUSTOM_TEXT, "Value": "value"}
        envelope = build_envelope(row, mapping, definitions)
        assert envelope.root == {"title": "Big Deal", "value": 1500}
        assert envelope.custom_fields == {CUSTOM_TEXT: "hello"}

    def test_blank_unmapped_and_read_only_cells_skipped(self):
        """Blank cells, unmapped headers, and computed keys are not sent."""
        row = {"Title": "  ", "Other": "x", "ID": 7, "Updated": "2025-01-01"}
        mapping = {"Title": "title", "ID": "id", "Updated": "update_time"}
        envelope = build_envelope(row, mapping)
        assert envelope.root == {}
        assert envelope.custom_fields is None

    def test_option_label_mapped_to_id(self, definitions):
        """Enum labels are written as option ids."""
        envelope = build_envelope({"Priority": "high"}, {"Priority": PRIORITY_HASH}, definitions)
        assert envelope.custom_fields == {PRIORITY_HASH: 1}

    def test_set_labels_mapped_to_id_list(self, definitions):
        """Set labels become a list of ids."""
        envelope = build_envelope({"Labels": "Warm, Hot"}, {"Labels": "label"}, definitions)
        assert envelope.root == {"label": [11, 10]}

    def test_unparseable_value_omitted_with_warning(self, definitions):
        """A value that cannot be formatted is omitted, not corrupted."""
        envelope = build_envelope(
            {"Close": "next tuesday-ish", "Title": "Kept"},
            {"Close": "expected_close_date", "Title": "title"},
            definitions,
        )
        assert "expected_close_date" not in envelope.root
        assert envelope.root["title"] == "Kept"
        [warning] = envelope.warnings
        assert warning.code is WarningCode.FORMAT_ERROR
        assert warning.raw_value == "next tuesday-ish"

    def test_contact_channels_collected(self):
        """email.* columns become a list with the first entry primary."""
        row = {"Work Email": "a@x.com", "Home Email": "b@x.com"}
        mapping = {"Work Email": "email.work", "Home Email": "email.home"}
        envelope = build_envelope(row, mapping)
        assert envelope.root["email"] == [
            {"label": "work", "value": "a@x.com", "primary": True},
            {"label": "home", "value": "b@x.com", "primary": False},
        ]

    def test_address_component_extracted(self, definitions):
        """Address components are pulled out of structured cells."""
        row = {"City": {"locality": "Springfield", "country": "US"}, "Zip": {"locality": "x"}}
        mapping = {"City": f"{ADDRESS_HASH}_locality", "Zip": f"{ADDRESS_HASH}_postal_code"}
        envelope = build_envelope(row, mapping, definitions)
        assert envelope.custom_fields == {f"{ADDRESS_HASH}_locality": "Springfield"}

    def test_nested_address_path_goes_to_root(self):
        """address.locality is flattened to address_locality."""
        envelope = build_envelope({"City": "Springfield"}, {"City": "address.locality"})
        assert envelope.root == {"address_locality": "Springfield"}

    def test_range_start_component_placed_on_base_key(self, definitions):
        """<hash>_start of a range field is stored raw under the base hash."""
        envelope = build_envelope({"Start": "09:00 AM"}, {"Start": f"{TIME_RANGE_HASH}_start"}, definitions)
        assert envelope.custom_fields == {TIME_RANGE_HASH: "09:00 AM"}

    def test_unknown_key_with_definitions_warns(self, definitions):
        """A key missing from supplied definitions is sent as-is with a warning."""
        envelope = build_envelope({"Mystery": "x"}, {"Mystery": "mystery_field"}, definitions)
        assert envelope.root == {"mystery_field": "x"}
        assert [w.code for w in envelope.warnings] == [WarningCode.CLASSIFICATION_AMBIGUOUS]

    def test_datetime_cell_converted_to_wire(self):
        """Instants are never sent as objects."""
        envelope = build_envelope({"When": datetime(2025, 5, 14, 9, 0)}, {"When": "due_date"})
        assert envelope.root == {"due_date": "2025-05-14 09:00:00"}


# ── assemble / finalize ─────────────────────────────────────────────────────


def _envelope() -> PayloadEnvelope:
    return PayloadEnvelope(
        root={"title": "Deal", "__has_range_fields": True},
        custom_fields={CUSTOM_TEXT: "note", TIME_RANGE_HASH: "09:00:00"},
    )


class TestAssemble:
    """Per-entity shape rules."""

    def test_deal_promotes_custom_fields(self):
        """Deal keeps custom_fields nested and copies them to the root."""
        wire = finalize(assemble(EntityKind.DEAL, _envelope()))
        assert wire["title"] == "Deal"
        assert wire[CUSTOM_TEXT] == "note"
        assert wire["custom_fields"] == {CUSTOM_TEXT: "note", TIME_RANGE_HASH: "09:00:00"}

    def test_deal_backfills_root_custom_keys(self):
        """Custom keys found only at the root are also nested for deals."""
        envelope = PayloadEnvelope(root={CUSTOM_TEXT: "x", "title": "T"})
        wire = finalize(assemble(EntityKind.DEAL, envelope))
        assert wire["custom_fields"] == {CUSTOM_TEXT: "x"}

    @pytest.mark.parametrize(
        "kind",
        [EntityKind.PERSON, EntityKind.ORGANIZATION, EntityKind.PRODUCT, EntityKind.ACTIVITY, EntityKind.LEAD],
    )
    def test_flattening_entities_have_no_nested_object(self, kind):
        """Flattened entities never send custom_fields."""
        wire = finalize(assemble(kind, _envelope()))
        assert "custom_fields" not in wire
        assert wire[CUSTOM_TEXT] == "note"
        assert wire[TIME_RANGE_HASH] == "09:00:00"

    @pytest.mark.parametrize("kind", list(EntityKind))
    def test_internal_markers_stripped(self, kind):
        """Keys starting with __ never reach the wire."""
        wire = finalize(assemble(kind, _envelope()))
        assert not any(key.startswith("__") for key in wire)

    def test_deal_root_custom_keys_match_nested(self):
        """Every custom key at a deal's root is nested with the same value."""
        wire = finalize(assemble(EntityKind.DEAL, _envelope()))
        for key, value in wire.items():
            if key not in ("title", "custom_fields"):
                assert wire["custom_fields"][key] == value

    def test_assemble_accepts_raw_dict(self):
        """A raw payload dict is wrapped before shaping."""
        wire = finalize(assemble(EntityKind.PERSON, {"name": "Ann", "custom_fields": {CUSTOM_TEXT: 1}}))
        assert wire == {"name": "Ann", CUSTOM_TEXT: 1}


class TestProductCoercions:
    """Product standard attributes are coerced or omitted."""

    def test_non_numeric_category_omitted(self):
        """A category label instead of an id is dropped with a warning."""
        shaped = assemble(EntityKind.PRODUCT, {"name": "Widget", "category": "Electronics"})
        wire = finalize(shaped)
        assert "category" not in wire
        assert [w.code for w in shaped.warnings] == [WarningCode.COERCION_SKIPPED]

    def test_numeric_fields_coerced(self):
        """category and owner_id become numbers, unit a string."""
        wire = finalize(assemble(EntityKind.PRODUCT, {"category": "7", "owner_id": "12", "unit": 5}))
        assert wire == {"category": 7, "owner_id": 12, "unit": "5"}

    def test_blank_category_and_owner(self):
        """Blank category is sent as null; blank owner is not sent."""
        wire = finalize(assemble(EntityKind.PRODUCT, {"category": "", "owner_id": " ", "unit": ""}))
        assert wire == {"category": None, "unit": None}

    def test_bare_price_wrapped(self):
        """A scalar price becomes a one-entry list in the default currency."""
        wire = finalize(assemble(EntityKind.PRODUCT, {"prices": 25}, default_currency="GBP"))
        assert wire["prices"] == [{"price": 25, "currency": "GBP"}]

    def test_non_numeric_price_omitted(self):
        """Price text that is not a number is dropped with a warning, never zeroed."""
        shaped = assemble(EntityKind.PRODUCT, {"name": "Widget", "prices": "call us"})
        assert finalize(shaped) == {"name": "Widget"}
        assert [(w.code, w.key) for w in shaped.warnings] == [(WarningCode.COERCION_SKIPPED, "prices")]


class TestStructuredPrices:
    """Price-list cells survive envelope construction."""

    def test_price_list_cell_kept(self):
        """A list of price objects is placed at the root unchanged."""
        prices = [{"price": 10, "currency": "EUR"}, {"price": 12.5, "currency": "USD"}]
        envelope = build_envelope({"Prices": prices}, {"Prices": "prices"})
        assert envelope.root == {"prices": prices}
        assert envelope.warnings == ()

    def test_single_price_object_wrapped(self):
        """One price object becomes a one-entry list."""
        envelope = build_envelope({"Prices": {"price": 10, "currency": "EUR"}}, {"Prices": "prices"})
        assert envelope.root == {"prices": [{"price": 10, "currency": "EUR"}]}

    def test_malformed_price_entries_rejected(self):
        """Entries without a price are a format error."""
        envelope = build_envelope({"Prices": [{"currency": "EUR"}]}, {"Prices": "prices"})
        assert envelope.root == {}
        assert [w.code for w in envelope.warnings] == [WarningCode.FORMAT_ERROR]
