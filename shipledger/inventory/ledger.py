"""Transactional, idempotent application of inventory changes.

Each event updates two documents in one transaction:
- the item ``warehouses/{w}/locations/{loc}/items/{sku[__lot_{lot}]}``
- the location rollup ``warehouses/{w}/locations/{loc}`` (qty_total, items_count)

An event whose signature equals the item's ``last_event_id`` is a duplicate
delivery and leaves both documents untouched.
"""

from __future__ import annotations

import logging
from typing import Any

from shipledger.errors import LocationNotFoundError
from shipledger.inventory.dead_letter import DeadLetterSink
from shipledger.inventory.locations import LocationResolver
from shipledger.inventory.lots import item_key, normalize_lot_key
from shipledger.inventory.models import ApplyResult, InventoryChangeEvent, direction_of
from shipledger.storage import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, Increment, Transaction
from shipledger.storage import paths
from shipledger.utils import merge_field, parse_timestamp, to_int

logger = logging.getLogger(__name__)


def build_event_signature(
    warehouse_id: str,
    location_name: str,
    sku: str,
    timestamp: Any = None,
    source: Any = None,
    previous_on_hand: Any = None,
    new_on_hand: Any = None,
) -> str:
    """Deterministic identity of one delivery.

    previous/new on-hand keep two changes within the same second distinct.
    """
    parts = [
        warehouse_id,
        location_name,
        sku,
        "ts" if timestamp is None else timestamp,
        "src" if source is None else source,
        "prev" if previous_on_hand is None else previous_on_hand,
        "next" if new_on_hand is None else new_on_hand,
    ]
    return "|".join(str(part) for part in parts)


def event_signature(event: InventoryChangeEvent) -> str:
    """Signature of ``event`` as stored in ``last_event_id``.

    A delta-only event is keyed by the on-hand it reports after the change
    (previous_on_hand + delta), so distinct changes never share a key.
    """
    if event.new_on_hand is not None:
        reported_on_hand = event.new_on_hand
    else:
        reported_on_hand = (event.previous_on_hand or 0) + (event.delta or 0)
    return build_event_signature(
        event.warehouse_uuid,
        event.location_name,
        event.sku,
        event.event_timestamp,
        event.source,
        event.previous_on_hand,
        reported_on_hand,
    )


def compute_next_quantity(
    previous: int, delta: int | None = None, absolute: int | None = None
) -> tuple[int, int]:
    """Return (next quantity, applied delta); quantities never go below zero."""
    if absolute is not None:
        next_quantity = max(0, absolute)
    else:
        next_quantity = max(0, previous + (delta or 0))
    return next_quantity, next_quantity - previous


def items_count_change(previous: int, next_quantity: int) -> int:
    if previous <= 0 < next_quantity:
        return 1
    if previous > 0 >= next_quantity:
        return -1
    return 0


class InventoryLedger:
    """Applies InventoryChangeEvents to item and location documents."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: LocationResolver,
        dead_letters: DeadLetterSink,
    ):
        self._store = store
        self._resolver = resolver
        self._dead_letters = dead_letters

    async def apply(self, event: InventoryChangeEvent) -> ApplyResult:
        """Apply one event; a repeated delivery is a successful no-op.

        Raises:
            EventValidationError: warehouse, location or SKU missing.
            LocationNotFoundError: unresolvable location (dead letter written).
            TransactionConflictError: conflict retries exhausted.
        """
        event.ensure_complete()

        lot_key = normalize_lot_key(event.lot_id, event.lot_uuid)
        item_id = item_key(event.sku, lot_key)

        try:
            location_id = await self._resolver.resolve(event.warehouse_uuid, event.location_name)
        except LocationNotFoundError as e:
            dead_letter_path = await self._dead_letters.record(event, reason=str(e))
            raise LocationNotFoundError(
                event.warehouse_uuid,
                event.location_name,
                sku=event.sku,
                dead_letter_path=dead_letter_path,
            ) from e

        signature = event_signature(event)
        location_path = paths.location_doc(event.warehouse_uuid, location_id)
        item_path = paths.item_doc(event.warehouse_uuid, location_id, item_id)

        async def _apply(tx: Transaction) -> ApplyResult:
            # Reads
            item = await tx.get(item_path)
            location = await tx.get(location_path)

            previous = max(0, to_int((item or {}).get("quantity")) or 0)
            if item is not None and item.get("last_event_id") == signature:
                return ApplyResult(location_id, item_id, previous, previous, 0, duplicate=True)

            next_quantity, applied_delta = compute_next_quantity(
                previous, event.delta, event.new_on_hand
            )

            # Writes
            tx.set(
                item_path,
                self._item_fields(event, item or {}, lot_key, location_id, next_quantity, applied_delta, signature),
                merge=True,
            )

            rollup: dict[str, Any] = {
                "qty_total": Increment(applied_delta),
                "updated_at": SERVER_TIMESTAMP,
            }
            count_change = items_count_change(previous, next_quantity)
            if count_change:
                rollup["items_count"] = Increment(count_change)
            if not (location or {}).get("name"):
                rollup["name"] = event.location_name
            tx.set(location_path, rollup, merge=True)

            return ApplyResult(location_id, item_id, previous, next_quantity, applied_delta)

        result = await self._store.run_transaction(_apply)
        if result.duplicate:
            logger.info(
                "Duplicate inventory event ignored: sku=%s item=%s location=%s",
                event.sku,
                item_id,
                event.location_name,
            )
        else:
            logger.info(
                "Applied inventory change: sku=%s item=%s location=%s %d -> %d (%+d)",
                event.sku,
                item_id,
                event.location_name,
                result.previous_quantity,
                result.next_quantity,
                result.applied_delta,
            )
        return result

    @staticmethod
    def _item_fields(
        event: InventoryChangeEvent,
        previous: dict,
        lot_key: str | None,
        location_id: str,
        quantity: int,
        applied_delta: int,
        signature: str,
    ) -> dict[str, Any]:
        raw = previous.get("_raw") or {}
        event_at = parse_timestamp(event.event_timestamp)
        fields: dict[str, Any] = {
            "sku": event.sku,
            "product_name": merge_field(event.product_name, previous.get("product_name")),
            "quantity": quantity,
            "lot_id": merge_field(lot_key, previous.get("lot_id")),
            "lot_uuid": merge_field(event.lot_uuid, previous.get("lot_uuid")),
            "lot_name": merge_field(event.lot_name, previous.get("lot_name")),
            "lot_expiration_date": merge_field(event.lot_expiration, previous.get("lot_expiration_date")),
            "_raw": {
                "warehouse_id": event.warehouse_uuid,
                "location_id": raw.get("location_id"),
                "location_id_encoded": location_id,
            },
            "last_event_id": signature,
            "last_event_at": event_at.isoformat() if event_at else SERVER_TIMESTAMP,
            "last_event_delta": applied_delta,
            "last_event_direction": event.event_direction or direction_of(applied_delta),
            "updated_at": SERVER_TIMESTAMP,
        }
        if event.event_ref_path:
            fields["last_event_ref"] = event.event_ref_path
            fields["event_refs"] = ArrayUnion((event.event_ref_path,))
        return fields
