"""Tests for lot key normalization."""

from __future__ import annotations

import base64

from hypothesis import given
from hypothesis import strategies as st

from shipledger.inventory.lots import decode_lot_uuid, item_key, normalize_lot_key


def _encode(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


class TestDecodeLotUuid:
    def test_strips_lot_prefix(self):
        assert decode_lot_uuid(_encode("Lot:ABC456")) == "ABC456"

    def test_value_without_prefix_is_returned(self):
        assert decode_lot_uuid(_encode("ABC456")) == "ABC456"

    def test_garbage_is_none(self):
        assert decode_lot_uuid("%%%not-base64%%%") is None

    def test_non_utf8_is_none(self):
        assert decode_lot_uuid("////") is None

    def test_missing_padding_is_tolerated(self):
        assert decode_lot_uuid(_encode("Lot:7").rstrip("=")) == "7"

    def test_none_and_empty(self):
        assert decode_lot_uuid(None) is None
        assert decode_lot_uuid("") is None


class TestNormalizeLotKey:
    def test_raw_id_wins_over_reference(self):
        assert normalize_lot_key("L123", _encode("Lot:OTHER")) == "L123"

    def test_raw_id_is_trimmed(self):
        assert normalize_lot_key("  L123 ") == "L123"

    def test_integer_raw_id(self):
        assert normalize_lot_key(42, None) == "42"

    def test_reference_used_when_raw_id_blank(self):
        assert normalize_lot_key("   ", _encode("Lot:ABC456")) == "ABC456"

    def test_reference_used_when_raw_id_missing(self):
        assert normalize_lot_key(None, _encode("Lot:ABC456")) == "ABC456"

    def test_undecodable_reference_means_no_lot(self):
        assert normalize_lot_key(None, "garbage!!") is None

    def test_prefix_only_reference_means_no_lot(self):
        assert normalize_lot_key(None, _encode("Lot:   ")) is None

    def test_nothing_means_no_lot(self):
        assert normalize_lot_key() is None

    @given(st.text(min_size=1).filter(lambda s: s.strip()))
    def test_any_non_blank_raw_id_is_its_own_key(self, lot_id):
        assert normalize_lot_key(lot_id, "anything") == lot_id.strip()

    @given(st.text(alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1).filter(lambda s: s.strip()))
    def test_encoded_reference_round_trips(self, lot):
        assert normalize_lot_key(None, _encode(f"Lot:{lot}")) == lot.strip()


class TestItemKey:
    def test_sku_only(self):
        assert item_key("SKU-1", None) == "SKU-1"

    def test_sku_with_lot(self):
        assert item_key("SKU-1", "L123") == "SKU-1__lot_L123"

    def test_slashes_are_escaped(self):
        assert "/" not in item_key("SKU/1", "L/1")

    def test_two_lots_are_distinct_items(self):
        assert item_key("SKU-1", "A") != item_key("SKU-1", "B")
