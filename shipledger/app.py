"""Service entry point: builds the object graph once and serves the webhook API.

    shipledger                      # uvicorn on $PORT (default 3000)
    uvicorn shipledger.app:create_app --factory
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shipledger import __version__
from shipledger.clients.shiphero import ShipHeroClient
from shipledger.clients.shopify import ShopifyClient
from shipledger.inventory.dead_letter import DeadLetterSink
from shipledger.inventory.ledger import InventoryLedger
from shipledger.inventory.locations import LocationResolver
from shipledger.storage import DocumentStore, create_store
from shipledger.webhooks.dispatcher import WebhookDispatcher
from shipledger.webhooks.handlers import register_webhook_routes
from shipledger.webhooks.queue import WorkQueue

logger = logging.getLogger(__name__)

_WORK_QUEUE_CONCURRENCY = int(os.environ.get("WORK_QUEUE_CONCURRENCY", "8"))
_LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
_PORT = int(os.environ.get("PORT", "3000"))


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or _LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    # Let in-flight webhook jobs finish before closing their connections
    await app.state.work_queue.join()
    await app.state.shiphero.aclose()
    await app.state.shopify.aclose()
    await app.state.store.close()
    logger.info("shipledger shut down")


def create_app(
    *,
    store: DocumentStore | None = None,
    shiphero: ShipHeroClient | None = None,
    shopify: ShopifyClient | None = None,
    work_queue: WorkQueue | None = None,
    webhook_secret: str | None = None,
) -> FastAPI:
    """Build the FastAPI app and the process-lifetime collaborators it uses."""
    store = store or create_store()
    shiphero = shiphero or ShipHeroClient()
    shopify = shopify or ShopifyClient()

    resolver = LocationResolver(store, shiphero)
    ledger = InventoryLedger(store, resolver, DeadLetterSink(store))

    app = FastAPI(title="shipledger", version=__version__, lifespan=_lifespan)
    app.state.store = store
    app.state.shiphero = shiphero
    app.state.shopify = shopify
    app.state.ledger = ledger
    app.state.dispatcher = WebhookDispatcher(store, ledger, shiphero=shiphero, shopify=shopify)
    app.state.work_queue = work_queue or WorkQueue(concurrency=_WORK_QUEUE_CONCURRENCY)
    app.state.webhook_secret = webhook_secret

    register_webhook_routes(app)
    return app


def main() -> None:
    import uvicorn

    configure_logging()
    logger.info("Starting shipledger %s on port %d", __version__, _PORT)
    uvicorn.run("shipledger.app:create_app", factory=True, host="0.0.0.0", port=_PORT)


if __name__ == "__main__":
    main()
