"""Tests for location resolution: alias cache, exact, case-insensitive, JIT fetch."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from shipledger.errors import GraphQLError, LocationNotFoundError
from shipledger.inventory.locations import LocationResolver
from shipledger.storage import paths

WAREHOUSE = "V2FyZWhvdXNlOjEyMzQ="


async def _seed_location(store, doc_id: str, name: str, location_id: str | None = None) -> None:
    await store.set(
        paths.location_doc(WAREHOUSE, doc_id),
        {"name": name, "_raw": {"location_id": location_id or doc_id}},
    )


class TestAliasCache:
    @pytest.mark.asyncio
    async def test_alias_hit_returns_stored_id(self, store, resolver, shiphero):
        await store.set(
            paths.alias_doc(WAREHOUSE, "A-01-02"),
            {"name": "A-01-02", "location_id_encoded": "loc-7"},
        )
        assert await resolver.resolve(WAREHOUSE, "A-01-02") == "loc-7"
        shiphero.get_location.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_alias_with_raw_location_id_only(self, store, resolver):
        await store.set(paths.alias_doc(WAREHOUSE, "B-1"), {"location_id": "TG9j/1"})
        assert await resolver.resolve(WAREHOUSE, "B-1") == "TG9j%2F1"


class TestLocalLookup:
    @pytest.mark.asyncio
    async def test_exact_match_writes_alias(self, store, resolver, shiphero):
        await _seed_location(store, "loc-1", "A-01-02", location_id="TG9jOjE=")
        assert await resolver.resolve(WAREHOUSE, "A-01-02") == "loc-1"

        alias = await store.get(paths.alias_doc(WAREHOUSE, "A-01-02"))
        assert alias["location_id_encoded"] == "loc-1"
        assert alias["location_id"] == "TG9jOjE="
        shiphero.get_location.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exact_match_preferred_over_case_variant(self, store, resolver):
        await _seed_location(store, "loc-0", "a-01-02")
        await _seed_location(store, "loc-1", "A-01-02")
        assert await resolver.resolve(WAREHOUSE, "A-01-02") == "loc-1"

    @pytest.mark.asyncio
    async def test_case_insensitive_match(self, store, resolver, shiphero):
        await _seed_location(store, "loc-2", "Bin-7")
        assert await resolver.resolve(WAREHOUSE, "BIN-7") == "loc-2"

        alias = await store.get(paths.alias_doc(WAREHOUSE, "BIN-7"))
        assert alias["location_id_encoded"] == "loc-2"
        shiphero.get_location.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_warehouse_not_matched(self, store, resolver):
        await store.set(paths.location_doc("other-wh", "loc-9"), {"name": "A-01-02"})
        with pytest.raises(LocationNotFoundError):
            await resolver.resolve(WAREHOUSE, "A-01-02")


class TestRemoteFetch:
    @pytest.mark.asyncio
    async def test_jit_creates_location_and_alias(self, store, resolver, shiphero, remote_location):
        shiphero.get_location.return_value = remote_location

        location_id = await resolver.resolve(WAREHOUSE, "A-01-02")

        assert location_id == "TG9jYXRpb246OTk5"
        location = await store.get(paths.location_doc(WAREHOUSE, location_id))
        assert location["name"] == "A-01-02"
        assert location["zone"] == "A"
        assert location["pickable"] is True
        assert location["qty_total"] == 0
        assert location["items_count"] == 0
        assert location["_raw"]["location_id"] == remote_location.id
        alias = await store.get(paths.alias_doc(WAREHOUSE, "A-01-02"))
        assert alias["location_id_encoded"] == location_id

    @pytest.mark.asyncio
    async def test_second_resolution_uses_alias_without_remote_call(
        self, resolver, shiphero, remote_location
    ):
        shiphero.get_location.return_value = remote_location

        first = await resolver.resolve(WAREHOUSE, "A-01-02")
        second = await resolver.resolve(WAREHOUSE, "A-01-02")

        assert first == second
        assert shiphero.get_location.await_count == 1
        shiphero.get_location.assert_awaited_with(WAREHOUSE, "A-01-02")

    @pytest.mark.asyncio
    async def test_remote_miss_raises(self, resolver, shiphero):
        with pytest.raises(LocationNotFoundError) as exc_info:
            await resolver.resolve(WAREHOUSE, "NOPE")
        assert exc_info.value.location_name == "NOPE"
        shiphero.get_location.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remote_error_is_a_miss(self, resolver, shiphero):
        shiphero.get_location.side_effect = GraphQLError(["not authorized"])
        with pytest.raises(LocationNotFoundError):
            await resolver.resolve(WAREHOUSE, "A-01-02")

    @pytest.mark.asyncio
    async def test_transient_errors_retried_then_succeed(self, store, shiphero, remote_location):
        shiphero.get_location.side_effect = [httpx.ConnectError("down"), remote_location]
        resolver = LocationResolver(store, shiphero, fetch_timeout=1.0, fetch_retries=1)

        assert await resolver.resolve(WAREHOUSE, "A-01-02") == "TG9jYXRpb246OTk5"
        assert shiphero.get_location.await_count == 2

    @pytest.mark.asyncio
    async def test_hanging_fetch_times_out(self, store, shiphero):
        async def hang(*args):
            await asyncio.sleep(10)

        shiphero.get_location = AsyncMock(side_effect=hang)
        resolver = LocationResolver(store, shiphero, fetch_timeout=0.01, fetch_retries=1)

        with pytest.raises(LocationNotFoundError):
            await resolver.resolve(WAREHOUSE, "A-01-02")
        assert shiphero.get_location.await_count == 2

    @pytest.mark.asyncio
    async def test_no_remote_client(self, store):
        with pytest.raises(LocationNotFoundError):
            await LocationResolver(store, None).resolve(WAREHOUSE, "A-01-02")
