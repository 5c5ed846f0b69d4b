"""Remote GraphQL clients (ShipHero warehouse API, Shopify Admin API)."""
