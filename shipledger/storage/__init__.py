"""Transactional document store used for ledgers, aliases and counters.

Two backends share one contract:
- RedisDocumentStore: JSON documents in Redis, WATCH/MULTI/EXEC transactions
- MemoryDocumentStore: in-process, used for local runs and tests
"""

from __future__ import annotations

import logging
import os

from shipledger.storage.base import (
    SERVER_TIMESTAMP,
    ArrayUnion,
    DocumentStore,
    Increment,
    Transaction,
)
from shipledger.storage.memory import MemoryDocumentStore

logger = logging.getLogger(__name__)

_DOCUMENT_STORE = os.environ.get("DOCUMENT_STORE", "redis")

__all__ = [
    "SERVER_TIMESTAMP",
    "ArrayUnion",
    "DocumentStore",
    "Increment",
    "MemoryDocumentStore",
    "Transaction",
    "create_store",
]


def create_store(kind: str | None = None) -> DocumentStore:
    """Build the configured document store (``redis`` or ``memory``)."""
    kind = (kind or _DOCUMENT_STORE).lower()
    if kind == "memory":
        logger.warning("Using in-memory document store; data is lost on restart")
        return MemoryDocumentStore()
    if kind == "redis":
        from shipledger.storage.redis_store import RedisDocumentStore

        return RedisDocumentStore()
    raise ValueError(f"Unknown DOCUMENT_STORE: {kind}")
