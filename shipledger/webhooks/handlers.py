"""Webhook HTTP handlers: FastAPI route handlers for inbound ShipHero webhooks.

Each request:
1. Reads raw body (needed for HMAC verification)
2. Verifies the x-shiphero-hmac-sha256 signature
3. Parses the JSON payload
4. Pushes processing onto the work queue
5. Returns 200 immediately; ShipHero retries only on non-200

Security contract:
- Return 401 only for signature failures
- Never return error details to the webhook caller
- Log all webhook activity for audit trail
"""

from __future__ import annotations

import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from shipledger.webhooks.verification import SIGNATURE_HEADER, verify_shiphero

logger = logging.getLogger(__name__)

# Webhook receive counter for monitoring (simple in-memory for now)
_webhook_counts: dict[str, int] = {}

_SUCCESS = {"code": "200", "Status": "Success"}
_INVALID_SIGNATURE = {"code": "401", "Status": "Invalid signature"}
_ERROR = {"code": "500", "Status": "Error"}


def _log_webhook(webhook_type: str, status: str, **fields: object) -> None:
    """Audit log for webhook activity."""
    _webhook_counts[webhook_type] = _webhook_counts.get(webhook_type, 0) + 1
    extra = " ".join(f"{key}={value}" for key, value in fields.items())
    logger.info(
        "WEBHOOK_AUDIT type=%s status=%s count=%d %s",
        webhook_type,
        status,
        _webhook_counts[webhook_type],
        extra,
    )


def _job_label(payload: dict) -> str:
    """Context for failure logs: enough to find and replay the delivery."""
    parts = [str(payload.get("webhook_type"))]
    for key in ("warehouse_uuid", "location_name", "sku", "order_number", "timestamp"):
        if payload.get(key) is not None:
            parts.append(f"{key}={payload[key]}")
    return " ".join(parts)


async def _handle_shiphero_webhook(request: Request) -> JSONResponse:
    start = time.time()
    state = request.app.state
    try:
        body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)

        if not verify_shiphero(body, signature, secret=state.webhook_secret):
            _log_webhook("unknown", "signature_failed", has_signature=bool(signature), size=len(body))
            return JSONResponse(_INVALID_SIGNATURE, status_code=401)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            _log_webhook("unknown", "invalid_json", size=len(body))
            return JSONResponse(_SUCCESS, status_code=200)
        if not isinstance(payload, dict):
            _log_webhook("unknown", "invalid_json", size=len(body))
            return JSONResponse(_SUCCESS, status_code=200)

        webhook_type = str(payload.get("webhook_type"))
        dispatcher = state.dispatcher
        state.work_queue.push(lambda: dispatcher.dispatch(payload), label=_job_label(payload))
    except Exception:
        logger.exception("Webhook endpoint error")
        return JSONResponse(_ERROR, status_code=500)

    elapsed_ms = (time.time() - start) * 1000
    _log_webhook(webhook_type, "queued", ms=f"{elapsed_ms:.1f}")
    return JSONResponse(_SUCCESS, status_code=200)


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook and health routes on the FastAPI app.

    Expects ``app.state`` to carry ``dispatcher``, ``work_queue`` and
    ``webhook_secret``.
    """

    @app.post("/webhooks/shiphero")
    async def shiphero_webhook(request: Request):
        """Receive ShipHero webhooks (signature-verified)."""
        return await _handle_shiphero_webhook(request)

    @app.get("/healthz")
    async def healthz():
        return PlainTextResponse("ok")

    @app.get("/webhooks/status")
    async def webhook_status():
        """Webhook receive counts and queue depth."""
        queue = app.state.work_queue
        return {
            "counts": dict(_webhook_counts),
            "queue": {"active": queue.active, "pending": queue.pending},
        }

    logger.info("Webhook routes registered: /webhooks/shiphero")
