"""Shared fixtures for the shipledger test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from shipledger.clients.shiphero import RemoteLocation
from shipledger.inventory.dead_letter import DeadLetterSink
from shipledger.inventory.ledger import InventoryLedger
from shipledger.inventory.locations import LocationResolver
from shipledger.storage import MemoryDocumentStore

WAREHOUSE = "V2FyZWhvdXNlOjEyMzQ="


@pytest.fixture()
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture()
def shiphero() -> MagicMock:
    """ShipHero client double whose location lookup finds nothing by default."""
    client = MagicMock()
    client.get_location = AsyncMock(return_value=None)
    client.get_product_locations = AsyncMock(return_value=None)
    client.aclose = AsyncMock()
    return client


@pytest.fixture()
def resolver(store, shiphero) -> LocationResolver:
    return LocationResolver(store, shiphero, fetch_timeout=1.0, fetch_retries=0)


@pytest.fixture()
def ledger(store, resolver) -> InventoryLedger:
    return InventoryLedger(store, resolver, DeadLetterSink(store))


@pytest.fixture()
def remote_location() -> RemoteLocation:
    return RemoteLocation(
        id="TG9jYXRpb246OTk5",
        name="A-01-02",
        warehouse_id=WAREHOUSE,
        zone="A",
        pickable=True,
        sellable=True,
        created_at="2024-05-01T10:00:00",
    )
