"""Document store contract, write sentinels and the optimistic transaction runner.

Paths alternate collection and document segments:
``warehouses/{w}/locations/{loc}`` is a document in collection
``warehouses/{w}/locations``.

Write sentinels are resolved against the stored document at commit time:
- Increment(n): add n to the numeric field (missing counts as 0)
- ArrayUnion(values): append values not already present
- SERVER_TIMESTAMP: commit time as an ISO-8601 UTC string
"""

from __future__ import annotations

import abc
import copy
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from shipledger.errors import TransactionConflictError, TransactionOrderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSACTION_MAX_ATTEMPTS = int(os.environ.get("TRANSACTION_MAX_ATTEMPTS", "5"))


@dataclass(frozen=True)
class Increment:
    amount: int | float


@dataclass(frozen=True)
class ArrayUnion:
    values: tuple


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class CommitConflict(Exception):
    """A read document changed before commit. Internal to the runner."""


def server_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    segments = path.strip("/").split("/")
    if len(segments) % 2 != 0 or not all(segments):
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def apply_write(existing: dict | None, data: dict, merge: bool) -> dict:
    """Return the document that results from writing ``data`` over ``existing``."""
    base = copy.deepcopy(existing) if merge and existing else {}
    return _resolve(base, data, merge)


def _resolve(target: dict, data: dict, merge: bool) -> dict:
    for key, value in data.items():
        current = target.get(key)
        if isinstance(value, Increment):
            start = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            target[key] = start + value.amount
        elif isinstance(value, ArrayUnion):
            items = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in items:
                    items.append(item)
            target[key] = items
        elif value is SERVER_TIMESTAMP:
            target[key] = server_timestamp()
        elif isinstance(value, dict):
            nested = dict(current) if merge and isinstance(current, dict) else {}
            target[key] = _resolve(nested, value, merge)
        else:
            target[key] = copy.deepcopy(value)
    return target


class Transaction(abc.ABC):
    """Read-then-write unit of work.

    All reads must happen before the first write; writes are buffered until
    the runner commits them.
    """

    def __init__(self) -> None:
        self._writes: list[tuple[str, dict, bool]] = []

    async def get(self, path: str) -> dict | None:
        if self._writes:
            raise TransactionOrderError(f"Read of {path} after a write in the same transaction")
        doc = await self._read(path)
        return copy.deepcopy(doc)

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        split_path(path)
        self._writes.append((path, data, merge))

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)

    @abc.abstractmethod
    async def _read(self, path: str) -> dict | None:
        """Read a document and register it for conflict detection."""

    @abc.abstractmethod
    async def commit(self) -> None:
        """Apply buffered writes atomically or raise CommitConflict."""


class DocumentStore(abc.ABC):
    """Hierarchical JSON document store with optimistic transactions."""

    def __init__(self, max_attempts: int | None = None) -> None:
        self.max_attempts = max_attempts or TRANSACTION_MAX_ATTEMPTS

    @abc.abstractmethod
    async def get(self, path: str) -> dict | None:
        ...

    @abc.abstractmethod
    async def list(self, collection: str) -> list[tuple[str, dict]]:
        """All (document id, document) pairs directly under a collection."""

    @abc.abstractmethod
    async def _attempt(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` in a fresh transaction and commit it once."""

    async def set(self, path: str, data: dict, merge: bool = False) -> None:
        async def _write(tx: Transaction) -> None:
            tx.set(path, data, merge=merge)

        await self.run_transaction(_write)

    async def add(self, collection: str, data: dict) -> str:
        """Create a document with a generated id; returns its path."""
        path = f"{collection.strip('/')}/{new_document_id()}"
        await self.set(path, data)
        return path

    async def where(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[tuple[str, dict]]:
        """Documents in ``collection`` whose ``field`` equals ``value``."""
        matches = [(doc_id, doc) for doc_id, doc in await self.list(collection) if doc.get(field) == value]
        return matches[:limit] if limit is not None else matches

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        """Run ``fn`` transactionally, retrying it on conflicting concurrent writes."""
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await self._attempt(fn)
            except CommitConflict:
                logger.warning("Transaction conflict, attempt %d/%d", attempt, attempts)
        raise TransactionConflictError(attempts)

    async def close(self) -> None:
        return None
