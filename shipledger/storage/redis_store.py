"""Redis-backed document store.

Each document is a JSON string at ``{prefix}{path}``; the ids of a
collection are kept in the set ``{prefix}{collection}#ids`` so collections
can be listed without SCAN. Transactions WATCH every document they read or
write and commit through MULTI/EXEC; a WatchError means another writer got
there first and the runner retries.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Awaitable, Callable, TypeVar

import redis.asyncio as redis
from redis.exceptions import WatchError

from shipledger.storage.base import (
    CommitConflict,
    DocumentStore,
    Transaction,
    apply_write,
    split_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6381/0")
_KEY_PREFIX = os.environ.get("REDIS_KEY_PREFIX", "shipledger:")


class _RedisTransaction(Transaction):
    def __init__(self, store: RedisDocumentStore, pipe) -> None:
        super().__init__()
        self._store = store
        self._pipe = pipe
        self._snapshot: dict[str, dict | None] = {}

    async def _read(self, path: str) -> dict | None:
        split_path(path)
        key = self._store.doc_key(path)
        await self._pipe.watch(key)
        raw = await self._pipe.get(key)
        doc = json.loads(raw) if raw else None
        self._snapshot[path] = doc
        return doc

    async def commit(self) -> None:
        if not self._writes:
            await self._pipe.unwatch()
            return
        # Written-but-unread documents are watched too so increments stay atomic
        for path, _, _ in self._writes:
            if path not in self._snapshot:
                await self._read(path)

        staged: dict[str, dict] = {}
        for path, data, merge in self._writes:
            current = staged[path] if path in staged else self._snapshot[path]
            staged[path] = apply_write(current, data, merge)

        self._pipe.multi()
        for path, doc in staged.items():
            collection, doc_id = split_path(path)
            self._pipe.set(self._store.doc_key(path), json.dumps(doc, default=str))
            self._pipe.sadd(self._store.index_key(collection), doc_id)
        try:
            await self._pipe.execute()
        except WatchError as e:
            raise CommitConflict(str(e)) from e


class RedisDocumentStore(DocumentStore):
    """Document store on top of a Redis server."""

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str | None = None,
        client: redis.Redis | None = None,
        max_attempts: int | None = None,
    ) -> None:
        super().__init__(max_attempts)
        self._redis = client or redis.from_url(redis_url or _REDIS_URL, decode_responses=True)
        self._prefix = _KEY_PREFIX if key_prefix is None else key_prefix

    def doc_key(self, path: str) -> str:
        return f"{self._prefix}{path.strip('/')}"

    def index_key(self, collection: str) -> str:
        return f"{self._prefix}{collection.strip('/')}#ids"

    async def get(self, path: str) -> dict | None:
        split_path(path)
        raw = await self._redis.get(self.doc_key(path))
        return json.loads(raw) if raw else None

    async def list(self, collection: str) -> list[tuple[str, dict]]:
        collection = collection.strip("/")
        ids = sorted(await self._redis.smembers(self.index_key(collection)))
        if not ids:
            return []
        raws = await self._redis.mget([self.doc_key(f"{collection}/{doc_id}") for doc_id in ids])
        return [(doc_id, json.loads(raw)) for doc_id, raw in zip(ids, raws) if raw]

    async def _attempt(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._redis.pipeline(transaction=True) as pipe:
            tx = _RedisTransaction(self, pipe)
            result = await fn(tx)
            await tx.commit()
            return result

    async def close(self) -> None:
        await self._redis.aclose()
