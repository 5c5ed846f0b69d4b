"""Denormalised inventory views kept next to the ledger.

- bin view:  ``bin_inventory/{w}__{loc}/skus/{sku}``
- SKU view:  ``sku_inventory/{sku}/bins/{w}__{loc}``
- SKU total: ``sku_totals/{sku}``

The bin and SKU views carry the same event signature as the ledger and skip
repeated deliveries on their own.
"""

from __future__ import annotations

import logging
from typing import Any

from shipledger.inventory.ledger import event_signature
from shipledger.inventory.models import InventoryChangeEvent
from shipledger.storage import SERVER_TIMESTAMP, DocumentStore, Increment, Transaction
from shipledger.storage import paths
from shipledger.utils import to_int, to_plain_text

logger = logging.getLogger(__name__)


async def _upsert_snapshot(
    store: DocumentStore, path: str, event: InventoryChangeEvent, extra: dict[str, Any]
) -> bool:
    signature = event_signature(event)

    async def _upsert(tx: Transaction) -> bool:
        prev = await tx.get(path)
        if prev and prev.get("last_event_id") == signature:
            return False

        # Baseline: stored on_hand, else the event's previous_on_hand, else 0
        current = to_int((prev or {}).get("on_hand"))
        if current is None:
            current = event.previous_on_hand or 0
        if event.new_on_hand is not None:
            next_on_hand = event.new_on_hand
        else:
            next_on_hand = current + (event.delta or 0)

        tx.set(
            path,
            {
                **extra,
                "warehouse_uuid": event.warehouse_uuid,
                "location_name": event.location_name,
                "sku": event.sku,
                "on_hand": next_on_hand,
                "updatedAt": SERVER_TIMESTAMP,
                "last_event_id": signature,
                "last_reason": event.reason,
                "last_reason_text": to_plain_text(event.reason),
                "last_source": event.source,
                "lot_id": event.lot_id,
                "lot_uuid": event.lot_uuid,
                "lot_expiration": event.lot_expiration,
            },
            merge=True,
        )
        return True

    return await store.run_transaction(_upsert)


async def upsert_bin_snapshot(store: DocumentStore, event: InventoryChangeEvent) -> bool:
    """Update the per-bin view; False when the event was already applied."""
    if not event.sku or not event.warehouse_uuid or not event.location_name:
        return False
    path = paths.bin_snapshot_doc(event.warehouse_uuid, event.location_name, event.sku)
    return await _upsert_snapshot(store, path, event, {})


async def upsert_sku_snapshot(store: DocumentStore, event: InventoryChangeEvent) -> bool:
    """Update the per-SKU view; False when the event was already applied."""
    if not event.sku or not event.warehouse_uuid or not event.location_name:
        return False
    path = paths.sku_snapshot_doc(event.warehouse_uuid, event.location_name, event.sku)
    extra = {"binKey": paths.bin_key(event.warehouse_uuid, event.location_name)}
    return await _upsert_snapshot(store, path, event, extra)


async def bump_sku_total(store: DocumentStore, sku: str, applied_delta: int) -> None:
    """Add a ledger-applied delta to the SKU's running total across locations."""
    if not sku or not applied_delta:
        return
    await store.set(
        paths.sku_total_doc(sku),
        {
            "sku": sku,
            "total_on_hand": Increment(applied_delta),
            "updatedAt": SERVER_TIMESTAMP,
        },
        merge=True,
    )
