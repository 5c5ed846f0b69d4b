"""Tests for event signatures and analytics idempotency keys."""

import pytest

from shipledger.analytics import (
    build_idempotency_key_for_payload,
    ensure_idempotent_event,
    idempotency_key_from,
)
from shipledger.inventory.ledger import build_event_signature


def test_signature_deterministic():
    """Same fields should produce the same signature."""
    sig1 = build_event_signature("W", "A-1", "SKU", "2024-06-01T10:00:00Z", "app", 4, 7)
    sig2 = build_event_signature("W", "A-1", "SKU", "2024-06-01T10:00:00Z", "app", 4, 7)
    assert sig1 == sig2


def test_signature_placeholders_for_missing_fields():
    sig = build_event_signature("W", "A-1", "SKU", None, None, None, None)
    assert sig == "W|A-1|SKU|ts|src|prev|next"


def test_signature_distinguishes_on_hand_within_same_second():
    """Two changes in the same second differ by their on-hand values."""
    sig1 = build_event_signature("W", "A-1", "SKU", "2024-06-01T10:00:00Z", "app", 4, 7)
    sig2 = build_event_signature("W", "A-1", "SKU", "2024-06-01T10:00:00Z", "app", 7, 9)
    assert sig1 != sig2


def test_signature_zero_is_not_placeholder():
    sig = build_event_signature("W", "A-1", "SKU", "t", "s", 0, 0)
    assert sig.endswith("|0|0")


def test_key_from_parts_blanks_none():
    assert idempotency_key_from(["a", None, 3]) == "a||3"


def test_payload_key_ignores_unrelated_fields():
    key1 = build_idempotency_key_for_payload({"webhook_type": "Tote Cleared", "tote_id": "T1", "noise": 1})
    key2 = build_idempotency_key_for_payload({"webhook_type": "Tote Cleared", "tote_id": "T1", "noise": 2})
    assert key1 == key2


def test_payload_key_includes_type():
    key1 = build_idempotency_key_for_payload({"webhook_type": "a", "order_id": "1"})
    key2 = build_idempotency_key_for_payload({"webhook_type": "b", "order_id": "1"})
    assert key1 != key2


@pytest.mark.asyncio
async def test_ensure_idempotent_event_first_time_only(store):
    assert await ensure_idempotent_event(store, "packed_out|o1") is True
    assert await ensure_idempotent_event(store, "packed_out|o1") is False
    assert await ensure_idempotent_event(store, "packed_out|o2") is True


@pytest.mark.asyncio
async def test_ensure_idempotent_event_encodes_key(store):
    await ensure_idempotent_event(store, "a/b|c")
    assert "idempotency_events/a%2Fb%7Cc" in store.dump()
