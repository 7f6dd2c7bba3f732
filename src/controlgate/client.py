"""BackendClient — optional HTTP mirror of the local log and payment flow.

The app works fully offline. Every call here degrades to ``False`` with a
warning when the backend is unreachable or answers with an error.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from controlgate.logs import ExecutionLog

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=10)


class BackendClient:
    """Thin aiohttp client for the stub server.

    The session is created lazily on first use and reused across calls.
    Call ``close()`` to release the connection pool.
    """

    def __init__(self, base_url: str, *, timeout: aiohttp.ClientTimeout | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> bool:
        url = f"{self._base_url}{path}"
        kwargs: dict[str, Any] = {}
        if payload is not None:
            kwargs["data"] = json.dumps(payload)
            kwargs["headers"] = {"Content-Type": "application/json"}
        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as resp:
                resp.raise_for_status()
                return True
        except Exception as exc:
            logger.warning("Backend %s %s failed, continuing in local-only mode: %s", method, url, exc)
            return False

    async def health(self) -> bool:
        return await self._request("GET", "/api/health")

    async def post_log(self, log: ExecutionLog) -> bool:
        return await self._request("POST", "/api/logs", log.to_dict())

    async def approve_payment(self, payment_id: str) -> bool:
        return await self._request("POST", "/api/payments/approve", {"paymentId": payment_id})

    async def complete_payment(self, payment_id: str, txid: str) -> bool:
        return await self._request("POST", "/api/payments/complete", {"paymentId": payment_id, "txid": txid})

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
