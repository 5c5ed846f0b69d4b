"""Shopify GraphQL Admin API client (read-only lookups used for enrichment)."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from shipledger.clients.retry import retry_with_backoff
from shipledger.errors import GraphQLError

logger = logging.getLogger(__name__)

_SHOP_URL = os.environ.get("SHOPIFY_SHOP_URL", "")
_ACCESS_TOKEN = os.environ.get("SHOPIFY_ACCESS_TOKEN", "")
_API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2025-01")

VARIANT_BY_SKU_QUERY = """
query ProductVariants($query: String!) {
  productVariants(first: 1, query: $query) {
    nodes {
      id
      displayName
      inventoryQuantity
      sku
      title
    }
  }
}
"""


class ShopifyClient:
    def __init__(
        self,
        shop_url: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        self._shop_url = shop_url or _SHOP_URL
        self._access_token = access_token or _ACCESS_TOKEN
        self._api_version = api_version or _API_VERSION
        self._http = http or httpx.AsyncClient(timeout=30.0)

    @property
    def configured(self) -> bool:
        return bool(self._shop_url and self._access_token)

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def _post(self, query: str, variables: dict) -> httpx.Response:
        endpoint = f"https://{self._shop_url}/admin/api/{self._api_version}/graphql.json"
        response = await self._http.post(
            endpoint,
            json={"query": query, "variables": variables},
            headers={"X-Shopify-Access-Token": self._access_token},
        )
        response.raise_for_status()
        return response

    async def execute(self, query: str, variables: dict | None = None) -> dict[str, Any]:
        """Execute a Shopify GraphQL Admin API request."""
        if not self.configured:
            raise GraphQLError(["SHOPIFY_SHOP_URL and SHOPIFY_ACCESS_TOKEN must be set"])
        body = (await self._post(query, variables or {})).json()
        if body.get("errors"):
            raise GraphQLError([e.get("message", "") for e in body["errors"]])
        return body.get("data") or {}

    async def find_variant_by_sku(self, sku: str) -> dict | None:
        """First product variant whose SKU matches, or None."""
        data = await self.execute(VARIANT_BY_SKU_QUERY, {"query": f"sku:{sku}"})
        nodes = (data.get("productVariants") or {}).get("nodes") or []
        return nodes[0] if nodes else None

    async def aclose(self) -> None:
        await self._http.aclose()
