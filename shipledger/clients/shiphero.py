"""ShipHero public GraphQL API client.

One client lives for the whole process and owns the bearer token. Tokens
come from the refresh-token endpoint; a missing or expired token is refreshed
before the call, and a 401 answer triggers one refresh-and-retry.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import httpx
from pydantic import BaseModel

from shipledger.clients.retry import retry_with_backoff
from shipledger.errors import AuthenticationError, GraphQLError

logger = logging.getLogger(__name__)

_API_URL = os.environ.get("SHIPHERO_API_URL", "https://public-api.shiphero.com/graphql")
_AUTH_URL = os.environ.get("SHIPHERO_AUTH_URL", "https://public-api.shiphero.com/auth/refresh")
_REFRESH_TOKEN = os.environ.get("SHIPHERO_REFRESH_TOKEN", "")
_TIMEOUT = float(os.environ.get("SHIPHERO_TIMEOUT", "30"))

# Refresh this many seconds before the advertised expiry
_EXPIRY_SKEW_SECONDS = 60

LOCATION_BY_NAME_QUERY = """
query LocationByName($warehouse_id: String, $name: String) {
  locations(warehouse_id: $warehouse_id, name: $name) {
    request_id
    complexity
    data(first: 5) {
      edges {
        node {
          id
          legacy_id
          warehouse_id
          name
          zone
          pickable
          sellable
          created_at
        }
      }
    }
  }
}
"""

PRODUCT_LOCATIONS_QUERY = """
query ProductLocations($sku: String!) {
  product(sku: $sku) {
    request_id
    data {
      id
      sku
      name
      warehouse_products {
        warehouse_id
        on_hand
        locations {
          edges {
            node {
              location {
                type { name }
                name
              }
              quantity
            }
          }
        }
      }
    }
  }
}
"""


class RemoteLocation(BaseModel):
    """A location node as returned by the ShipHero ``locations`` query."""

    id: str
    name: str
    warehouse_id: str | None = None
    legacy_id: int | None = None
    zone: str | None = None
    pickable: bool | None = None
    sellable: bool | None = None
    created_at: str | None = None


class ShipHeroClient:
    """Authenticated ShipHero GraphQL client."""

    def __init__(
        self,
        refresh_token: str | None = None,
        api_url: str | None = None,
        auth_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._refresh_token = refresh_token if refresh_token is not None else _REFRESH_TOKEN
        self._api_url = api_url or _API_URL
        self._auth_url = auth_url or _AUTH_URL
        self._http = http or httpx.AsyncClient(timeout=timeout or _TIMEOUT)
        self._access_token: str | None = None
        self._token_expiry: float = 0.0

    async def refresh_access_token(self) -> str:
        """Exchange the refresh token for a new access token."""
        if not self._refresh_token:
            raise AuthenticationError("SHIPHERO_REFRESH_TOKEN not set")

        response = await self._http.post(
            self._auth_url,
            json={"refresh_token": self._refresh_token},
        )
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Token refresh failed: {response.status_code} {response.text[:200]}"
            )
        data = response.json()
        self._access_token = data["access_token"]
        self._token_expiry = time.time() + float(data.get("expires_in", 0)) - _EXPIRY_SKEW_SECONDS
        logger.info("ShipHero access token refreshed (expires_in=%s)", data.get("expires_in"))
        return self._access_token

    async def _valid_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expiry:
            return self._access_token
        return await self.refresh_access_token()

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def _post(self, query: str, variables: dict) -> httpx.Response:
        token = await self._valid_access_token()
        response = await self._http.post(
            self._api_url,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code == 401:
            logger.info("ShipHero answered 401, refreshing token once")
            token = await self.refresh_access_token()
            response = await self._http.post(
                self._api_url,
                json={"query": query, "variables": variables},
                headers={"Authorization": f"Bearer {token}"},
            )
        response.raise_for_status()
        return response

    async def execute(self, query: str, variables: dict | None = None) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` member."""
        response = await self._post(query, variables or {})
        body = response.json()
        if body.get("errors"):
            raise GraphQLError([e.get("message", "") for e in body["errors"]])
        return body.get("data") or {}

    async def get_location(self, warehouse_id: str, name: str) -> RemoteLocation | None:
        """Look up a location by its exact name inside a warehouse."""
        data = await self.execute(
            LOCATION_BY_NAME_QUERY, {"warehouse_id": warehouse_id, "name": name}
        )
        edges = ((data.get("locations") or {}).get("data") or {}).get("edges") or []
        for edge in edges:
            node = edge.get("node") or {}
            if node.get("name") == name:
                return RemoteLocation.model_validate(node)
        return None

    async def get_product_locations(self, sku: str) -> dict | None:
        """Product record with per-warehouse location quantities, or None."""
        data = await self.execute(PRODUCT_LOCATIONS_QUERY, {"sku": sku})
        return (data.get("product") or {}).get("data")

    async def aclose(self) -> None:
        await self._http.aclose()
