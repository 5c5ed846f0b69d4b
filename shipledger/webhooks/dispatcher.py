"""Webhook dispatcher: routes ShipHero payloads to their handlers by ``webhook_type``.

"Inventory Change" feeds the inventory ledger; the other known types feed the
daily analytics counters or are logged. Handler errors propagate to the work
queue, which logs them.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from shipledger import analytics
from shipledger.clients.shiphero import ShipHeroClient
from shipledger.clients.shopify import ShopifyClient
from shipledger.inventory.ledger import InventoryLedger
from shipledger.inventory.models import InventoryChangeEvent, direction_of
from shipledger.inventory.snapshots import bump_sku_total, upsert_bin_snapshot, upsert_sku_snapshot
from shipledger.storage import SERVER_TIMESTAMP, DocumentStore
from shipledger.storage import paths
from shipledger.utils import DEFAULT_TZ, to_int, today_ymd
from shipledger.webhooks.normalize import (
    normalize_packed_out,
    normalize_shipment_update,
    normalize_tote_cleared,
)

logger = logging.getLogger(__name__)

INVENTORY_CHANGE = "Inventory Change"
INVENTORY_UPDATE = "Inventory Update"
TOTE_CLEARED = "Tote Cleared"
ORDER_PACKED_OUT = "Order Packed Out"
SHIPMENT_UPDATE = "Shipment Update"
ORDER_CANCELED = "Order Canceled"


class WebhookDispatcher:
    """Maps webhook types to handler coroutines."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: InventoryLedger,
        shiphero: ShipHeroClient | None = None,
        shopify: ShopifyClient | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._shiphero = shiphero
        self._shopify = shopify
        self._handlers: dict[str, Callable[[dict], Awaitable[None]]] = {
            INVENTORY_CHANGE: self.handle_inventory_change,
            INVENTORY_UPDATE: self.handle_inventory_update,
            TOTE_CLEARED: self.handle_tote_cleared,
            ORDER_PACKED_OUT: self.handle_order_packed_out,
            SHIPMENT_UPDATE: self.handle_shipment_update,
            ORDER_CANCELED: self.handle_order_canceled,
        }

    @property
    def webhook_types(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, payload: dict) -> bool:
        """Run the handler for ``payload``; False when the type is not handled."""
        webhook_type = payload.get("webhook_type")
        handler = self._handlers.get(webhook_type)
        if handler is None:
            logger.warning("Unhandled webhook_type: %s", webhook_type)
            return False
        logger.info("Processing webhook: %s", webhook_type)
        await handler(payload)
        logger.info("Webhook processed successfully: %s", webhook_type)
        return True

    async def handle_inventory_change(self, payload: dict) -> None:
        """Log the raw change, then apply it to the ledger and the snapshot views."""
        delta = to_int(payload.get("quantity")) or 0
        previous_on_hand = to_int(payload.get("previous_on_hand")) or 0
        ymd = today_ymd(DEFAULT_TZ, payload.get("timestamp"))

        record = {
            "webhook_type": payload.get("webhook_type") or INVENTORY_CHANGE,
            "account_uuid": payload.get("account_uuid"),
            "account_id": payload.get("account_id"),
            "warehouse_id": payload.get("warehouse_id"),
            "warehouse_uuid": payload.get("warehouse_uuid"),
            "user_id": payload.get("user_id"),
            "user_uuid": payload.get("user_uuid"),
            "sku": payload.get("sku"),
            "location_name": payload.get("location_name"),
            "delta": delta,
            "previous_on_hand": previous_on_hand,
            "new_on_hand": previous_on_hand + delta,
            "direction": direction_of(delta),
            "timestamp": payload.get("timestamp"),
            "reason": payload.get("reason"),
            "source": payload.get("source"),
            "lot_id": payload.get("lot_id"),
            "lot_uuid": payload.get("lot_uuid"),
            "lot_expiration": payload.get("lot_expiration"),
            "createdAt": SERVER_TIMESTAMP,
        }

        event_ref_path = None
        try:
            event_ref_path = await self._store.add(paths.inventory_changes_collection(ymd), record)
        except Exception:
            logger.error(
                "Failed to save inventory change: sku=%s ymd=%s", payload.get("sku"), ymd,
                exc_info=True,
            )

        event = InventoryChangeEvent.from_webhook(payload, event_ref_path=event_ref_path)
        result = await self._ledger.apply(event)

        if not result.duplicate:
            await upsert_bin_snapshot(self._store, event)
            await upsert_sku_snapshot(self._store, event)
            await bump_sku_total(self._store, event.sku, result.applied_delta)

    async def handle_inventory_update(self, payload: dict) -> None:
        """Log each item's ShipHero totals next to its ShipHero locations and Shopify variant.

        Items are processed one after another; a failed lookup is logged and
        the next item continues.
        """
        inventory = payload.get("inventory") or []
        logger.info(
            "Inventory Update received for %d item(s) (account_id=%s)",
            len(inventory),
            payload.get("account_id"),
        )
        for index, item in enumerate(inventory, start=1):
            sku = item.get("sku")
            warehouse = item.get("updated_warehouse") or {}
            logger.info(
                "Item %d: %s on_hand=%s available=%s backorder=%s at %s",
                index,
                sku,
                item.get("on_hand"),
                item.get("inventory"),
                item.get("backorder_quantity"),
                warehouse.get("identifier", "unknown"),
            )
            if not sku:
                continue

            if self._shiphero is not None:
                try:
                    product = await self._shiphero.get_product_locations(sku)
                    bins = _location_quantities(product)
                    logger.info("ShipHero locations for %s: %s", sku, bins or "none")
                except Exception:
                    logger.warning("ShipHero location lookup failed for %s", sku, exc_info=True)

            if self._shopify is not None and self._shopify.configured:
                try:
                    variant = await self._shopify.find_variant_by_sku(sku)
                    if variant is None:
                        logger.info("No Shopify variant for %s", sku)
                    else:
                        logger.info(
                            "Shopify %s (%s): inventoryQuantity=%s vs ShipHero on_hand=%s",
                            sku,
                            variant.get("displayName"),
                            variant.get("inventoryQuantity"),
                            item.get("on_hand"),
                        )
                except Exception:
                    logger.warning("Shopify variant lookup failed for %s", sku, exc_info=True)

    async def handle_tote_cleared(self, payload: dict) -> None:
        items, orders = await analytics.process_tote_cleared(self._store, normalize_tote_cleared(payload))
        logger.info("Tote cleared: tote=%s items+%d orders+%d", payload.get("tote_id"), items, orders)

    async def handle_order_packed_out(self, payload: dict) -> None:
        await analytics.process_order_packed_out(self._store, normalize_packed_out(payload))

    async def handle_shipment_update(self, payload: dict) -> None:
        labels, new_order = await analytics.process_shipment_update(
            self._store, normalize_shipment_update(payload)
        )
        logger.info(
            "Shipment update: order=%s labels+%d new_order=%s",
            payload.get("order_number"),
            labels,
            new_order,
        )

    async def handle_order_canceled(self, payload: dict) -> None:
        logger.info(
            "ORDER CANCELED: %s (order_id=%s) reason=%s by=%s warehouse=%s at=%s",
            payload.get("order_number"),
            payload.get("order_id"),
            payload.get("cancel_reason") or "No reason provided",
            payload.get("canceled_by_name"),
            payload.get("warehouse_name"),
            payload.get("canceled_at"),
        )


def _location_quantities(product: dict | None) -> dict[str, int]:
    """Flatten a ShipHero product's per-location quantities into {location: qty}."""
    quantities: dict[str, int] = {}
    for warehouse_product in (product or {}).get("warehouse_products") or []:
        edges = ((warehouse_product or {}).get("locations") or {}).get("edges") or []
        for edge in edges:
            node = edge.get("node") or {}
            name = (node.get("location") or {}).get("name")
            if name:
                quantities[name] = quantities.get(name, 0) + (to_int(node.get("quantity")) or 0)
    return quantities
