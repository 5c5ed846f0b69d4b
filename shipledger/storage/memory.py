"""In-process document store with version-checked optimistic transactions."""

from __future__ import annotations

import copy
import logging
from typing import Awaitable, Callable, TypeVar

from shipledger.storage.base import (
    CommitConflict,
    DocumentStore,
    Transaction,
    apply_write,
    split_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _MemoryTransaction(Transaction):
    def __init__(self, store: MemoryDocumentStore) -> None:
        super().__init__()
        self._store = store
        self._read_versions: dict[str, int] = {}

    async def _read(self, path: str) -> dict | None:
        split_path(path)
        self._read_versions[path] = self._store._versions.get(path, 0)
        return self._store._docs.get(path)

    async def commit(self) -> None:
        # No await below: validation and apply happen in one event-loop step
        for path, version in self._read_versions.items():
            if self._store._versions.get(path, 0) != version:
                raise CommitConflict(path)
        for path, data, merge in self._writes:
            self._store._write(path, data, merge)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store. Every committed write bumps the document version."""

    def __init__(self, max_attempts: int | None = None) -> None:
        super().__init__(max_attempts)
        self._docs: dict[str, dict] = {}
        self._versions: dict[str, int] = {}

    def _write(self, path: str, data: dict, merge: bool) -> None:
        self._docs[path] = apply_write(self._docs.get(path), data, merge)
        self._versions[path] = self._versions.get(path, 0) + 1

    async def get(self, path: str) -> dict | None:
        split_path(path)
        return copy.deepcopy(self._docs.get(path))

    async def list(self, collection: str) -> list[tuple[str, dict]]:
        collection = collection.strip("/")
        found = []
        for path, doc in self._docs.items():
            parent, doc_id = split_path(path)
            if parent == collection:
                found.append((doc_id, copy.deepcopy(doc)))
        return sorted(found, key=lambda item: item[0])

    async def _attempt(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        tx = _MemoryTransaction(self)
        result = await fn(tx)
        await tx.commit()
        return result

    def dump(self) -> dict[str, dict]:
        """Snapshot of every stored document keyed by path."""
        return copy.deepcopy(self._docs)
