"""Daily warehouse counters fed by the non-inventory webhooks.

- Order Packed Out: record-only, ``packed_out/{ymd}/data/{id}``
- Tote Cleared: per-pick dedup edges, picker leaderboard, ``stats/{ymd}.itemsPicked``
- Shipment Update: label/order dedup, ``stats/{ymd}.shipped``

Dedup documents carry ``expireAt`` so a TTL policy can reap them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from shipledger.storage import SERVER_TIMESTAMP, DocumentStore, Increment, Transaction
from shipledger.storage.paths import IDEMPOTENCY_EVENTS_COLLECTION
from shipledger.utils import DEFAULT_TZ, safe_seg, today_ymd

logger = logging.getLogger(__name__)

_DEDUP_TTL = timedelta(days=14)


def _expire_at() -> str:
    return (datetime.now(timezone.utc) + _DEDUP_TTL).isoformat()


def idempotency_key_from(parts: list[Any]) -> str:
    return "|".join("" if part is None else str(part) for part in parts)


def build_idempotency_key_for_payload(payload: dict) -> str:
    """Key over the identifying fields any ShipHero analytics payload may carry."""
    return idempotency_key_from(
        [
            payload.get("webhook_type"),
            payload.get("order_id"),
            payload.get("order_number"),
            payload.get("shipment_id"),
            payload.get("tote_id"),
            payload.get("packed_by_user_id"),
            payload.get("cleared_by_user_id"),
            payload.get("packed_at"),
            payload.get("cleared_at"),
        ]
    )


async def ensure_idempotent_event(store: DocumentStore, key: str) -> bool:
    """Mark ``key`` as seen; True only the first time."""
    path = f"{IDEMPOTENCY_EVENTS_COLLECTION}/{safe_seg(key)}"

    async def _mark(tx: Transaction) -> bool:
        if await tx.get(path) is not None:
            return False
        tx.set(path, {"key": key, "seenAt": SERVER_TIMESTAMP})
        return True

    return await store.run_transaction(_mark)


async def process_order_packed_out(store: DocumentStore, body: dict) -> str | None:
    """Record a packed-out event once; returns the record path or None if duplicate."""
    ymd = today_ymd(DEFAULT_TZ, body.get("packed_at"))
    key = build_idempotency_key_for_payload({**body, "webhook_type": "packed_out"})
    if not await ensure_idempotent_event(store, key):
        logger.info("[packed_out] duplicate webhook ignored: %s", key)
        return None

    path = await store.add(
        f"packed_out/{ymd}/data",
        {
            **body,
            "_meta": {"idempotencyKey": key, "ymd": ymd, "source": "webhook", "type": "packed_out"},
            "receivedAt": SERVER_TIMESTAMP,
        },
    )
    logger.info("[packed_out] event recorded: ymd=%s path=%s", ymd, path)
    return path


async def process_tote_cleared(store: DocumentStore, body: dict) -> tuple[int, int]:
    """Count picked items/orders once per pick edge; returns (items, orders) added."""
    ymd = today_ymd(DEFAULT_TZ, body.get("cleared_at"))
    user_id = str(body.get("cleared_by_user_id") or "unknown")
    user_name = " ".join(
        part
        for part in (body.get("cleared_by_user_first_name"), body.get("cleared_by_user_last_name"))
        if part
    ) or "Unknown"
    # One tote line counts as one picked unit
    picked_quantity = 1

    edges: dict[str, str | None] = {}
    for item in body.get("items") or []:
        order_id = str(item["order_id"]) if item.get("order_id") else None
        sig = idempotency_key_from([order_id, user_id, body.get("cleared_at"), picked_quantity])
        edges.setdefault(f"dedup/{ymd}/pick_edges/{safe_seg(sig)}", order_id)

    async def _count(tx: Transaction) -> tuple[int, int]:
        unseen = []
        for path, order_id in edges.items():
            if await tx.get(path) is None:
                unseen.append((path, order_id))

        items_added = 0
        orders_added = 0
        for path, order_id in unseen:
            tx.set(
                path,
                {
                    "createdAt": SERVER_TIMESTAMP,
                    "expireAt": _expire_at(),
                    "user_id": user_id,
                    "order_id": order_id,
                    "qty": picked_quantity,
                    "source": "webhook",
                },
            )
            items_added += picked_quantity
            if order_id:
                orders_added += 1

        if unseen:
            tx.set(
                f"leaderboards/{ymd}/pickers/{safe_seg(user_id)}",
                {
                    "name": user_name,
                    "items": Increment(items_added),
                    "orders": Increment(orders_added),
                },
                merge=True,
            )
            picked: dict[str, Any] = {"items": Increment(items_added)}
            if orders_added:
                picked["orders"] = Increment(orders_added)
            tx.set(
                f"stats/{ymd}",
                {"updatedAt": SERVER_TIMESTAMP, "source": "webhook", "itemsPicked": picked},
                merge=True,
            )
        return items_added, orders_added

    return await store.run_transaction(_count)


async def process_shipment_update(store: DocumentStore, body: dict) -> tuple[int, bool]:
    """Count new labels and newly shipped orders; returns (labels added, order is new)."""
    ymd = today_ymd(DEFAULT_TZ, body.get("event_time"))
    fulfillment = body.get("fulfillment") or {}
    order_key = fulfillment.get("order_uuid") or str(fulfillment.get("order_number") or "")
    tracking_numbers = []
    for package in body.get("packages") or []:
        number = ((package or {}).get("shipping_label") or {}).get("tracking_number")
        if number and number not in tracking_numbers:
            tracking_numbers.append(number)

    stats_path = f"stats/{ymd}"
    order_path = f"dedup/{ymd}/shipped_orders/{safe_seg(order_key)}" if order_key else None

    async def _count(tx: Transaction) -> tuple[int, bool]:
        new_labels = []
        for number in tracking_numbers:
            path = f"dedup/{ymd}/labels/{safe_seg(number)}"
            if await tx.get(path) is None:
                new_labels.append(path)
        is_new_order = order_path is not None and await tx.get(order_path) is None

        for path in new_labels:
            tx.set(path, {"createdAt": SERVER_TIMESTAMP, "expireAt": _expire_at()})

        shipped: dict[str, Any] = {}
        if new_labels:
            shipped["labels"] = Increment(len(new_labels))
            shipped["shipments"] = Increment(len(new_labels))
        if is_new_order:
            tx.set(order_path, {"createdAt": SERVER_TIMESTAMP, "expireAt": _expire_at()})
            shipped["orders"] = Increment(1)
        if shipped:
            tx.set(
                stats_path,
                {"shipped": shipped, "updatedAt": SERVER_TIMESTAMP, "source": "webhook"},
                merge=True,
            )
        return len(new_labels), is_new_order

    return await store.run_transaction(_count)
