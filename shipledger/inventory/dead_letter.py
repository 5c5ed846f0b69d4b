"""Dead-letter records for inventory events whose location could not be resolved."""

from __future__ import annotations

import logging

from shipledger.inventory.models import InventoryChangeEvent
from shipledger.storage import SERVER_TIMESTAMP, DocumentStore
from shipledger.storage.paths import DEAD_LETTER_COLLECTION

logger = logging.getLogger(__name__)


class DeadLetterSink:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def record(self, event: InventoryChangeEvent, reason: str) -> str:
        """Persist the unresolved event for manual replay; returns the record path."""
        path = await self._store.add(
            DEAD_LETTER_COLLECTION,
            {
                **event.model_dump(),
                "reason_unresolved": reason,
                "source_channel": "webhook",
                "created_at": SERVER_TIMESTAMP,
            },
        )
        logger.error(
            "Dead-lettered inventory event: warehouse=%s location=%r sku=%s path=%s",
            event.warehouse_uuid,
            event.location_name,
            event.sku,
            path,
        )
        return path
