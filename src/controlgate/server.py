"""Stub HTTP backend (aiohttp.web).

Every route succeeds for well-formed input. Nothing is persisted here: the
execution log lives client-side in the LogStore.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from controlgate.config import GateConfig

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", GateConfig)


async def _json_object(request: web.Request) -> dict[str, Any]:
    body = await request.json()
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


async def get_config(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response(
        {
            "name": config.app.name,
            "domain": config.app.domain,
            "description": config.app.description,
            "mode": "client-side",
            "features": {
                "offlineMode": True,
                "localStorage": True,
                "piWallet": True,
                "testnet": True,
            },
        }
    )


async def get_health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response(
        {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": config.app.name,
            "mode": "offline",
            "message": "App is running in client-side mode with local storage",
        }
    )


async def get_logs(request: web.Request) -> web.Response:
    return web.json_response({"logs": [], "message": "Using client-side local storage. Backend is optional."})


async def post_log(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except ValueError as exc:
        logger.error("Error processing log: %s", exc)
        return web.json_response({"error": "Failed to process log"}, status=500)
    logger.info("Log received: %s", body)
    return web.json_response({"success": True, "message": "Log received (stored client-side)"})


async def approve_payment(request: web.Request) -> web.Response:
    try:
        body = await _json_object(request)
    except ValueError as exc:
        logger.error("Payment approval error: %s", exc)
        return web.json_response({"success": False, "error": "Failed to approve payment"}, status=500)
    payment_id = body.get("paymentId")
    logger.info("Payment approval requested: %s", payment_id)
    return web.json_response({"success": True, "paymentId": payment_id, "message": "Payment approved for testnet"})


async def complete_payment(request: web.Request) -> web.Response:
    try:
        body = await _json_object(request)
    except ValueError as exc:
        logger.error("Payment completion error: %s", exc)
        return web.json_response({"success": False, "error": "Failed to complete payment"}, status=500)
    payment_id = body.get("paymentId")
    txid = body.get("txid")
    logger.info("Payment completion requested: %s (txid %s)", payment_id, txid)
    return web.json_response(
        {"success": True, "paymentId": payment_id, "txid": txid, "message": "Payment completed for testnet"}
    )


def create_app(config: GateConfig | None = None) -> web.Application:
    app = web.Application()
    app[CONFIG_KEY] = config or GateConfig.default()
    app.router.add_get("/api/config", get_config)
    app.router.add_get("/api/health", get_health)
    app.router.add_get("/api/logs", get_logs)
    app.router.add_post("/api/logs", post_log)
    app.router.add_post("/api/payments/approve", approve_payment)
    app.router.add_post("/api/payments/complete", complete_payment)
    return app


def run(config: GateConfig | None = None, host: str | None = None, port: int | None = None) -> None:
    config = config or GateConfig.default()
    web.run_app(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        print=None,
    )
