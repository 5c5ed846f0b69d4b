"""Inventory change event and apply result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from shipledger.errors import EventValidationError
from shipledger.utils import to_int

Direction = Literal["increase", "decrease", "none"]


def direction_of(delta: int) -> Direction:
    if delta > 0:
        return "increase"
    if delta < 0:
        return "decrease"
    return "none"


class InventoryChangeEvent(BaseModel):
    """One inventory change for a SKU (optionally a lot) at a named location."""

    model_config = ConfigDict(frozen=True)

    warehouse_uuid: str = ""
    location_name: str = ""
    sku: str = ""
    delta: int | None = None
    new_on_hand: int | None = None
    previous_on_hand: int | None = None
    lot_id: str | int | None = None
    lot_uuid: str | None = None
    lot_name: str | None = None
    lot_expiration: str | None = None
    product_name: str | None = None
    event_ref_path: str | None = None
    event_direction: Direction | None = None
    event_timestamp: str | None = None
    source: str | None = None
    reason: str | None = None

    @field_validator("warehouse_uuid", "location_name", "sku", mode="before")
    @classmethod
    def _strip_identity(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("delta", "new_on_hand", "previous_on_hand", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> int | None:
        return to_int(value)

    @field_validator("event_timestamp", "lot_expiration", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return None if value is None or value == "" else str(value)

    @classmethod
    def from_webhook(cls, payload: dict, event_ref_path: str | None = None) -> InventoryChangeEvent:
        """Build an event from a ShipHero "Inventory Change" webhook body.

        ShipHero sends the signed change as ``quantity``; ``new_on_hand`` is
        honoured as an absolute restatement only when present.
        """
        delta = to_int(payload.get("quantity")) or 0
        return cls(
            warehouse_uuid=payload.get("warehouse_uuid"),
            location_name=payload.get("location_name"),
            sku=payload.get("sku"),
            delta=delta,
            new_on_hand=payload.get("new_on_hand"),
            previous_on_hand=payload.get("previous_on_hand"),
            lot_id=payload.get("lot_id"),
            lot_uuid=payload.get("lot_uuid"),
            lot_name=payload.get("lot_name"),
            lot_expiration=payload.get("lot_expiration"),
            product_name=payload.get("product_name"),
            event_ref_path=event_ref_path,
            event_direction=direction_of(delta) if payload.get("new_on_hand") is None else None,
            event_timestamp=payload.get("timestamp"),
            source=payload.get("source"),
            reason=payload.get("reason"),
        )

    def ensure_complete(self) -> None:
        """Raise EventValidationError unless warehouse, location and SKU are set."""
        missing = [
            name
            for name in ("warehouse_uuid", "location_name", "sku")
            if not getattr(self, name)
        ]
        if missing:
            raise EventValidationError(missing)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one event to an item ledger."""

    location_id: str
    item_id: str
    previous_quantity: int
    next_quantity: int
    applied_delta: int
    duplicate: bool = False
