"""System status probe for storage, wallet and backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from controlgate.client import BackendClient
from controlgate.storage import StorageBackend
from controlgate.wallet import WalletProvider

logger = logging.getLogger(__name__)

PROBE_KEY = "__storage_test__"


class Availability(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Connectivity(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class SystemStatus:
    storage: Availability
    wallet: Availability
    backend: Connectivity

    def to_dict(self) -> dict[str, str]:
        return {"storage": str(self.storage), "wallet": str(self.wallet), "backend": str(self.backend)}


async def _probe_storage(backend: StorageBackend) -> Availability:
    try:
        await backend.set(PROBE_KEY, "test")
        await backend.delete(PROBE_KEY)
    except Exception as exc:
        logger.warning("Storage probe failed: %s", exc)
        return Availability.UNAVAILABLE
    return Availability.AVAILABLE


async def check_status(
    backend: StorageBackend,
    wallet_provider: WalletProvider | None,
    client: BackendClient | None = None,
) -> SystemStatus:
    """Probe each collaborator. Never raises.

    Without a *client* the backend is reported offline.
    """
    storage = await _probe_storage(backend)
    wallet_ok = wallet_provider is not None and wallet_provider.available
    wallet = Availability.AVAILABLE if wallet_ok else Availability.UNAVAILABLE
    online = client is not None and await client.health()
    return SystemStatus(
        storage=storage,
        wallet=wallet,
        backend=Connectivity.ONLINE if online else Connectivity.OFFLINE,
    )
