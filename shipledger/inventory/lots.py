"""Lot identity normalization.

A lot arrives either as a raw ``lot_id`` or as ShipHero's opaque ``lot_uuid``,
which is base64 of ``"Lot:<id>"``. Only ``decode_lot_uuid`` knows that scheme.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from shipledger.utils import safe_seg

logger = logging.getLogger(__name__)

_LOT_PREFIX = "Lot:"


def decode_lot_uuid(lot_uuid: str | None) -> str | None:
    """Decode an opaque lot reference; None when it cannot be decoded."""
    if not lot_uuid:
        return None
    value = str(lot_uuid).strip()
    try:
        raw = base64.b64decode(value + "=" * (-len(value) % 4), validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        logger.debug("Undecodable lot_uuid %r treated as no lot", lot_uuid)
        return None
    return raw[len(_LOT_PREFIX):] if raw.startswith(_LOT_PREFIX) else raw


def normalize_lot_key(lot_id: Any = None, lot_uuid: str | None = None) -> str | None:
    """Canonical lot key: the raw id when present, else the decoded reference."""
    if lot_id is not None and str(lot_id).strip():
        return str(lot_id).strip()
    decoded = decode_lot_uuid(lot_uuid)
    if decoded and decoded.strip():
        return decoded.strip()
    return None


def item_key(sku: str, lot_key: str | None) -> str:
    """Document id of an item: the SKU, suffixed with the lot when there is one."""
    if lot_key:
        return f"{safe_seg(sku)}__lot_{safe_seg(lot_key)}"
    return safe_seg(sku)
