"""Configuration loader — parse YAML, validate against JSON Schema."""

from __future__ import annotations

import importlib.resources as _resources
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from controlgate.policy import DEFAULT_TICK_INTERVAL, DEFAULT_TICKS
from controlgate.storage import DEFAULT_QUOTA_BYTES
from controlgate.store import DEFAULT_NAMESPACE
from controlgate.wallet import DEFAULT_PAYMENT_AMOUNT

MAX_CONFIG_SIZE = 1_048_576  # 1 MB

# Lazy-loaded schema singleton
_schema_cache: dict | None = None


def _get_schema() -> dict:
    """Load and cache the JSON Schema for validation."""
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = (
            _resources.files("controlgate").joinpath("controlgate-config.schema.json").read_text(encoding="utf-8")
        )
        _schema_cache = json.loads(schema_text)
    return _schema_cache


@dataclass(frozen=True)
class AppInfo:
    name: str = "SmartContract Control Gate"
    description: str = "A simple control gate for smart contract calls with policy checks and execution logging"
    domain: str = "smartcontract.pi"


@dataclass(frozen=True)
class StorageConfig:
    """``path`` None keeps everything in memory."""

    path: str | None = None
    quota_bytes: int | None = DEFAULT_QUOTA_BYTES


@dataclass(frozen=True)
class WalletConfig:
    sandbox: bool = True  # testnet
    username: str = "sandbox-user"
    amount: float = DEFAULT_PAYMENT_AMOUNT
    signing_timeout: float | None = None


@dataclass(frozen=True)
class PolicyConfig:
    ticks: int = DEFAULT_TICKS
    tick_interval: float = DEFAULT_TICK_INTERVAL


@dataclass(frozen=True)
class ExecutionConfig:
    submit_delay: float = 1.5


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass(frozen=True)
class GateConfig:
    app: AppInfo = field(default_factory=AppInfo)
    namespace: str = DEFAULT_NAMESPACE
    storage: StorageConfig = field(default_factory=StorageConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    backend_url: str | None = None
    server: ServerConfig = field(default_factory=ServerConfig)
    source: str | None = None

    @classmethod
    def default(cls) -> GateConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> GateConfig:
        """Build a config from an already-validated mapping."""
        return cls(
            app=AppInfo(**data.get("app", {})),
            namespace=data.get("namespace", DEFAULT_NAMESPACE),
            storage=StorageConfig(**data.get("storage", {})),
            wallet=WalletConfig(**data.get("wallet", {})),
            policy=PolicyConfig(**data.get("policy", {})),
            execution=ExecutionConfig(**data.get("execution", {})),
            backend_url=data.get("backend_url"),
            server=ServerConfig(**data.get("server", {})),
            source=source,
        )

    def to_dict(self) -> dict[str, Any]:
        from dataclasses import asdict

        data = asdict(self)
        data.pop("source")
        return data


def _validate_schema(data: dict) -> None:
    from controlgate import ControlGateConfigError

    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as e:
        raise ControlGateConfigError(f"Schema validation failed: {e.message}") from e


def _parse(raw_bytes: bytes, source: str | None) -> GateConfig:
    from controlgate import ControlGateConfigError

    try:
        data = yaml.safe_load(raw_bytes)
    except yaml.YAMLError as e:
        raise ControlGateConfigError(f"YAML parse error: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ControlGateConfigError("YAML document must be a mapping")

    _validate_schema(data)
    return GateConfig.from_dict(data, source=source)


def load_config(source: str | Path) -> GateConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ControlGateConfigError: If the file is too large, not valid YAML,
            or fails schema validation.
        FileNotFoundError: If the file does not exist.
    """
    from controlgate import ControlGateConfigError

    path = Path(source)

    file_size = path.stat().st_size
    if file_size > MAX_CONFIG_SIZE:
        raise ControlGateConfigError(f"Config file too large ({file_size} bytes, max {MAX_CONFIG_SIZE})")

    return _parse(path.read_bytes(), str(path))


def load_config_string(content: str | bytes) -> GateConfig:
    """Like :func:`load_config` but takes YAML content directly."""
    from controlgate import ControlGateConfigError

    raw_bytes = content.encode("utf-8") if isinstance(content, str) else content
    if len(raw_bytes) > MAX_CONFIG_SIZE:
        raise ControlGateConfigError(f"Config content too large ({len(raw_bytes)} bytes, max {MAX_CONFIG_SIZE})")
    return _parse(raw_bytes, None)
