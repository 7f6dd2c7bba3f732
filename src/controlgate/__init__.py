"""ControlGate — policy-checked, wallet-signed smart contract calls."""

from __future__ import annotations

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("controlgate")
except Exception:  # pragma: no cover (editable installs, test envs)
    __version__ = "0.0.0-dev"

from pathlib import Path

from controlgate.client import BackendClient
from controlgate.config import GateConfig, StorageConfig, load_config, load_config_string
from controlgate.evaluation import PolicyCheck, PolicyCheckResult
from controlgate.logs import ExecutionLog, LogStatus
from controlgate.policy import evaluate, evaluate_with_progress
from controlgate.request import ContractRequest, RequestStatus, create_draft, create_reference_id
from controlgate.status import SystemStatus, check_status
from controlgate.storage import FileBackend, MemoryBackend, QuotaExceededError, StorageBackend, StorageError
from controlgate.store import LogStore
from controlgate.validation import ValidationResult, validate, validate_draft, validate_for_execution
from controlgate.wallet import (
    SandboxWalletProvider,
    SignedTransaction,
    SigningCancelled,
    WalletError,
    WalletNotConnected,
    WalletProvider,
    WalletSession,
)
from controlgate.workflow import (
    ExecutionPhase,
    Page,
    Step,
    TransitionError,
    ValidationFailed,
    Workflow,
    WorkflowState,
)

__all__ = [
    "__version__",
    "ControlGate",
    "ControlGateConfigError",
    "GateConfig",
    "load_config",
    "load_config_string",
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "StorageError",
    "QuotaExceededError",
    "ContractRequest",
    "RequestStatus",
    "create_draft",
    "create_reference_id",
    "PolicyCheck",
    "PolicyCheckResult",
    "evaluate",
    "evaluate_with_progress",
    "ExecutionLog",
    "LogStatus",
    "LogStore",
    "ValidationResult",
    "validate",
    "validate_draft",
    "validate_for_execution",
    "WalletProvider",
    "WalletSession",
    "SandboxWalletProvider",
    "SignedTransaction",
    "WalletError",
    "WalletNotConnected",
    "SigningCancelled",
    "Workflow",
    "WorkflowState",
    "Step",
    "Page",
    "ExecutionPhase",
    "TransitionError",
    "ValidationFailed",
    "BackendClient",
    "SystemStatus",
    "check_status",
]


def _make_backend(storage: StorageConfig) -> StorageBackend:
    if storage.path:
        return FileBackend(storage.path, quota_bytes=storage.quota_bytes)
    return MemoryBackend(quota_bytes=storage.quota_bytes)


class ControlGate:
    """Application root. Owns the backend, log store, wallet session and workflow.

    Nothing is shared through module globals: build one ControlGate per
    user context. Call ``start()`` before use to load persisted logs and a
    saved wallet connection, and ``close()`` when done.
    """

    def __init__(
        self,
        config: GateConfig | None = None,
        *,
        backend: StorageBackend | None = None,
        wallet_provider: WalletProvider | None = None,
        client: BackendClient | None = None,
    ):
        self.config = config or GateConfig.default()
        self.backend = backend or _make_backend(self.config.storage)
        self.store = LogStore(self.backend, self.config.namespace)

        if wallet_provider is None:
            if not self.config.wallet.sandbox:
                raise ControlGateConfigError("A wallet provider is required when wallet.sandbox is false")
            wallet_provider = SandboxWalletProvider(username=self.config.wallet.username)

        if client is None and self.config.backend_url:
            client = BackendClient(self.config.backend_url)
        self.client = client

        self.wallet = WalletSession(
            wallet_provider,
            self.backend,
            amount=self.config.wallet.amount,
            signing_timeout=self.config.wallet.signing_timeout,
            approver=self.client,
        )
        self.workflow = Workflow(
            self.store,
            self.wallet,
            policy_ticks=self.config.policy.ticks,
            policy_interval=self.config.policy.tick_interval,
            submit_delay=self.config.execution.submit_delay,
        )
        if self.client is not None:
            self.workflow.add_log_listener(self.client.post_log)

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs) -> ControlGate:
        """Build a ControlGate from a YAML config file.

        Raises:
            ControlGateConfigError: If the config is invalid.
        """
        return cls(load_config(path), **kwargs)

    @classmethod
    def from_yaml_string(cls, content: str | bytes, **kwargs) -> ControlGate:
        return cls(load_config_string(content), **kwargs)

    async def start(self) -> ControlGate:
        await self.store.load()
        await self.wallet.restore()
        return self

    async def status(self) -> SystemStatus:
        return await check_status(self.backend, self.wallet.provider, self.client)

    async def close(self) -> None:
        self.store.close()
        if self.client is not None:
            await self.client.close()

    async def __aenter__(self) -> ControlGate:
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class ControlGateConfigError(Exception):
    """Raised for configuration/load-time errors (invalid YAML, schema failures, etc.)."""

    pass
