"""Location name -> internal location id resolution.

Lookup order, first hit wins:
1. alias document ``locations_by_name/{name}``
2. exact ``name`` match among the warehouse's location documents
3. case-insensitive match among the same documents
4. just-in-time fetch from ShipHero; the location and its alias are created
   together in one transaction

Steps 2-4 (re)write the alias so the next lookup is a single read.
"""

from __future__ import annotations

import asyncio
import logging
import os

import httpx

from shipledger.clients.shiphero import RemoteLocation, ShipHeroClient
from shipledger.errors import LocationNotFoundError
from shipledger.storage import SERVER_TIMESTAMP, DocumentStore, Transaction
from shipledger.storage import paths
from shipledger.utils import safe_seg

logger = logging.getLogger(__name__)

_FETCH_TIMEOUT = float(os.environ.get("LOCATION_FETCH_TIMEOUT", "10"))
_FETCH_RETRIES = int(os.environ.get("LOCATION_FETCH_RETRIES", "2"))


class LocationResolver:
    """Resolve warehouse location names, caching the answer as an alias."""

    def __init__(
        self,
        store: DocumentStore,
        shiphero: ShipHeroClient | None = None,
        fetch_timeout: float | None = None,
        fetch_retries: int | None = None,
    ):
        self._store = store
        self._shiphero = shiphero
        self._fetch_timeout = fetch_timeout or _FETCH_TIMEOUT
        self._fetch_retries = _FETCH_RETRIES if fetch_retries is None else fetch_retries

    async def resolve(self, warehouse_id: str, location_name: str) -> str:
        """Return the encoded location id for ``location_name``.

        Raises:
            LocationNotFoundError: no alias, no local match, nothing remote.
        """
        alias_path = paths.alias_doc(warehouse_id, location_name)
        alias = await self._store.get(alias_path)
        if alias:
            cached = alias.get("location_id_encoded") or (
                safe_seg(alias["location_id"]) if alias.get("location_id") else None
            )
            if cached:
                return cached

        collection = paths.locations_collection(warehouse_id)
        exact = await self._store.where(collection, "name", location_name, limit=1)
        if exact:
            doc_id, doc = exact[0]
            await self._write_alias(alias_path, location_name, doc_id, doc)
            return doc_id

        wanted = location_name.upper()
        for doc_id, doc in await self._store.list(collection):
            if str(doc.get("name") or "").upper() == wanted:
                logger.info(
                    "Location %r matched %r case-insensitively (warehouse=%s)",
                    location_name,
                    doc.get("name"),
                    warehouse_id,
                )
                await self._write_alias(alias_path, location_name, doc_id, doc)
                return doc_id

        remote = await self._fetch_remote(warehouse_id, location_name)
        if remote is not None:
            return await self._create_from_remote(warehouse_id, location_name, remote)

        raise LocationNotFoundError(warehouse_id, location_name)

    async def _write_alias(self, alias_path: str, name: str, doc_id: str, doc: dict) -> None:
        await self._store.set(
            alias_path,
            {
                "name": name,
                "location_id": (doc.get("_raw") or {}).get("location_id"),
                "location_id_encoded": doc_id,
                "updated_at": SERVER_TIMESTAMP,
            },
            merge=True,
        )

    async def _fetch_remote(self, warehouse_id: str, location_name: str) -> RemoteLocation | None:
        """Ask ShipHero for the location; every failure here counts as a miss."""
        if self._shiphero is None:
            return None
        for attempt in range(self._fetch_retries + 1):
            try:
                return await asyncio.wait_for(
                    self._shiphero.get_location(warehouse_id, location_name),
                    timeout=self._fetch_timeout,
                )
            except (asyncio.TimeoutError, httpx.TransportError) as e:
                logger.warning(
                    "JIT location fetch attempt %d/%d failed for %r (%s)",
                    attempt + 1,
                    self._fetch_retries + 1,
                    location_name,
                    type(e).__name__,
                )
            except Exception:
                logger.warning(
                    "JIT location fetch failed for %r in warehouse %s",
                    location_name,
                    warehouse_id,
                    exc_info=True,
                )
                return None
        return None

    async def _create_from_remote(
        self, warehouse_id: str, location_name: str, remote: RemoteLocation
    ) -> str:
        location_id_encoded = safe_seg(remote.id)
        location_path = paths.location_doc(warehouse_id, location_id_encoded)
        alias_path = paths.alias_doc(warehouse_id, location_name)

        async def _create(tx: Transaction) -> None:
            existing = await tx.get(location_path)
            location = {
                "name": remote.name,
                "zone": remote.zone,
                "pickable": remote.pickable,
                "sellable": remote.sellable,
                "created_at": remote.created_at,
                "_raw": {"location_id": remote.id, "warehouse_id": warehouse_id},
                "source": "jit",
                "updated_at": SERVER_TIMESTAMP,
            }
            if existing is None:
                location["qty_total"] = 0
                location["items_count"] = 0
            tx.set(location_path, location, merge=True)
            tx.set(
                alias_path,
                {
                    "name": location_name,
                    "location_id": remote.id,
                    "location_id_encoded": location_id_encoded,
                    "updated_at": SERVER_TIMESTAMP,
                },
                merge=True,
            )

        await self._store.run_transaction(_create)
        logger.info(
            "Created location %r (%s) from ShipHero for warehouse %s",
            location_name,
            remote.id,
            warehouse_id,
        )
        return location_id_encoded
