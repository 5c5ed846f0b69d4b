"""Normalization adapters so analytics sees one payload shape per webhook type."""

from __future__ import annotations

from typing import Any


def _first(payload: dict, *keys: str) -> Any:
    for key in keys:
        if payload.get(key):
            return payload[key]
    return None


def normalize_shipment_update(payload: dict) -> dict:
    """Flat shipment payload -> nested fulfillment/packages shape.

    A single top-level ``tracking_number`` becomes a one-package list.
    """
    order_uuid = _first(payload, "order_uuid", "order_id")
    if isinstance(payload.get("packages"), list):
        packages = payload["packages"]
    elif payload.get("tracking_number"):
        packages = [{"shipping_label": {"tracking_number": payload["tracking_number"]}}]
    else:
        packages = []

    return {
        **payload,
        "fulfillment": {"order_uuid": order_uuid, "order_number": payload.get("order_number")},
        "packages": packages,
        "order_fulfillment_status": _first(payload, "status", "fulfillment_status"),
        "event_time": _first(payload, "shipped_at", "created_at", "updated_at"),
    }


def normalize_packed_out(payload: dict) -> dict:
    items = payload.get("items") if isinstance(payload.get("items"), list) else []
    return {
        **payload,
        "items": items,
        "event_time": _first(payload, "packed_at", "created_at", "updated_at"),
    }


def normalize_tote_cleared(payload: dict) -> dict:
    if isinstance(payload.get("items"), list):
        items = payload["items"]
    elif isinstance(payload.get("items_picked"), list):
        items = payload["items_picked"]
    else:
        items = []
    return {
        **payload,
        "items": items,
        "event_time": _first(payload, "cleared_at", "created_at", "updated_at"),
    }
