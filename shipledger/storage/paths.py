"""Document paths for every persisted record."""

from __future__ import annotations

from shipledger.utils import safe_seg

DEAD_LETTER_COLLECTION = "inventory_events_unknown_location"
IDEMPOTENCY_EVENTS_COLLECTION = "idempotency_events"


def locations_collection(warehouse_id: str) -> str:
    return f"warehouses/{safe_seg(warehouse_id)}/locations"


def location_doc(warehouse_id: str, location_id_encoded: str) -> str:
    return f"{locations_collection(warehouse_id)}/{location_id_encoded}"


def item_doc(warehouse_id: str, location_id_encoded: str, item_id: str) -> str:
    return f"{location_doc(warehouse_id, location_id_encoded)}/items/{item_id}"


def alias_doc(warehouse_id: str, location_name: str) -> str:
    return f"warehouses/{safe_seg(warehouse_id)}/locations_by_name/{safe_seg(location_name)}"


def inventory_changes_collection(ymd: str) -> str:
    return f"inventory_changes/{ymd}/data"


def bin_key(warehouse_id: str, location_name: str) -> str:
    return f"{safe_seg(warehouse_id)}__{safe_seg(location_name)}"


def bin_snapshot_doc(warehouse_id: str, location_name: str, sku: str) -> str:
    return f"bin_inventory/{bin_key(warehouse_id, location_name)}/skus/{safe_seg(sku)}"


def sku_snapshot_doc(warehouse_id: str, location_name: str, sku: str) -> str:
    return f"sku_inventory/{safe_seg(sku)}/bins/{bin_key(warehouse_id, location_name)}"


def sku_total_doc(sku: str) -> str:
    return f"sku_totals/{safe_seg(sku)}"
