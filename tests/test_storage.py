"""Tests for the document store contract (in-memory backend) and write sentinels."""

from __future__ import annotations

import pytest

from shipledger.errors import TransactionConflictError, TransactionOrderError
from shipledger.storage import SERVER_TIMESTAMP, ArrayUnion, Increment, MemoryDocumentStore
from shipledger.storage.base import apply_write, split_path


class TestApplyWrite:
    def test_increment_missing_field_starts_at_zero(self):
        assert apply_write(None, {"n": Increment(3)}, merge=True) == {"n": 3}

    def test_increment_existing_field(self):
        assert apply_write({"n": 2}, {"n": Increment(-5)}, merge=True) == {"n": -3}

    def test_array_union_skips_existing_values(self):
        doc = apply_write({"refs": ["a"]}, {"refs": ArrayUnion(("a", "b"))}, merge=True)
        assert doc == {"refs": ["a", "b"]}

    def test_merge_keeps_untouched_fields(self):
        doc = apply_write({"a": 1, "b": 2}, {"b": 3}, merge=True)
        assert doc == {"a": 1, "b": 3}

    def test_nested_merge(self):
        doc = apply_write({"s": {"x": 1, "y": 1}}, {"s": {"y": Increment(1)}}, merge=True)
        assert doc == {"s": {"x": 1, "y": 2}}

    def test_overwrite_drops_old_fields(self):
        assert apply_write({"a": 1}, {"b": 2}, merge=False) == {"b": 2}

    def test_server_timestamp_resolved(self):
        doc = apply_write(None, {"at": SERVER_TIMESTAMP}, merge=False)
        assert isinstance(doc["at"], str) and doc["at"].endswith("+00:00")

    def test_existing_document_not_mutated(self):
        existing = {"s": {"x": 1}}
        apply_write(existing, {"s": {"x": 2}}, merge=True)
        assert existing == {"s": {"x": 1}}


class TestSplitPath:
    def test_document_path(self):
        assert split_path("warehouses/w/locations/l") == ("warehouses/w/locations", "l")

    def test_collection_path_rejected(self):
        with pytest.raises(ValueError):
            split_path("warehouses/w/locations")

    def test_empty_segment_rejected(self):
        with pytest.raises(ValueError):
            split_path("warehouses//locations/l")


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_set_get(self, store):
        await store.set("a/1", {"x": 1})
        assert await store.get("a/1") == {"x": 1}
        assert await store.get("a/2") is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        await store.set("a/1", {"x": [1]})
        doc = await store.get("a/1")
        doc["x"].append(2)
        assert await store.get("a/1") == {"x": [1]}

    @pytest.mark.asyncio
    async def test_add_generates_id(self, store):
        path = await store.add("events", {"k": "v"})
        assert path.startswith("events/")
        assert await store.get(path) == {"k": "v"}

    @pytest.mark.asyncio
    async def test_list_only_direct_children(self, store):
        await store.set("c/1", {"n": 1})
        await store.set("c/2", {"n": 2})
        await store.set("c/1/sub/x", {"n": 3})
        assert [doc_id for doc_id, _ in await store.list("c")] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_where(self, store):
        await store.set("c/1", {"name": "A"})
        await store.set("c/2", {"name": "B"})
        await store.set("c/3", {"name": "B"})
        assert [d for d, _ in await store.where("c", "name", "B")] == ["2", "3"]
        assert len(await store.where("c", "name", "B", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_transaction_commits_all_writes(self, store):
        async def fn(tx):
            await tx.get("a/1")
            tx.set("a/1", {"x": 1})
            tx.set("b/1", {"y": 2})
            return "done"

        assert await store.run_transaction(fn) == "done"
        assert await store.get("a/1") == {"x": 1}
        assert await store.get("b/1") == {"y": 2}

    @pytest.mark.asyncio
    async def test_read_after_write_rejected(self, store):
        async def fn(tx):
            tx.set("a/1", {"x": 1})
            await tx.get("a/1")

        with pytest.raises(TransactionOrderError):
            await store.run_transaction(fn)
        assert await store.get("a/1") is None

    @pytest.mark.asyncio
    async def test_conflicting_write_retries_with_fresh_read(self, store):
        await store.set("counter/c", {"n": 0})
        calls = []

        async def fn(tx):
            doc = await tx.get("counter/c")
            calls.append(doc["n"])
            if len(calls) == 1:
                # Concurrent writer lands between our read and our commit
                await store.set("counter/c", {"n": 10})
            tx.set("counter/c", {"n": doc["n"] + 1})

        await store.run_transaction(fn)
        assert calls == [0, 10]
        assert await store.get("counter/c") == {"n": 11}

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self):
        store = MemoryDocumentStore(max_attempts=3)
        await store.set("counter/c", {"n": 0})

        async def fn(tx):
            await tx.get("counter/c")
            await store.set("counter/c", {"n": Increment(1)}, merge=True)
            tx.set("counter/c", {"n": -1})

        with pytest.raises(TransactionConflictError) as exc_info:
            await store.run_transaction(fn)
        assert exc_info.value.attempts == 3
        assert await store.get("counter/c") == {"n": 3}

    @pytest.mark.asyncio
    async def test_exception_in_fn_discards_writes(self, store):
        async def fn(tx):
            tx.set("a/1", {"x": 1})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await store.run_transaction(fn)
        assert await store.get("a/1") is None
