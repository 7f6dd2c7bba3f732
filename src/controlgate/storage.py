"""StorageBackend protocol + MemoryBackend and FileBackend implementations."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Browsers give each origin roughly 5 MB of local storage.
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class StorageError(Exception):
    """Raised when the backend cannot read or write a key."""


class QuotaExceededError(StorageError):
    """Raised when a write would push the backend past its byte quota."""


@dataclass(frozen=True)
class StorageEvent:
    """Change notification for a single key.

    ``new_value`` is None when the key was removed. ``origin`` identifies the
    writer so that a subscriber can skip its own writes.
    """

    key: str
    old_value: str | None
    new_value: str | None
    origin: str | None = None


StorageListener = Callable[[StorageEvent], Any]


class StorageBackend(Protocol):
    """Protocol for the local key-value store.

    Requirements:
    - get/set/delete for string values
    - subscribe() delivers a StorageEvent for every mutation, tagged with the
      writer's origin. Last write wins; nothing is merged.
    """

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, *, origin: str | None = None) -> None: ...
    async def delete(self, key: str, *, origin: str | None = None) -> None: ...
    def subscribe(self, listener: StorageListener) -> Callable[[], None]: ...


class _NotifyingBackend:
    """Listener bookkeeping shared by the concrete backends."""

    def __init__(self) -> None:
        self._listeners: list[StorageListener] = []

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Storage listener %s raised", getattr(listener, "__name__", "anonymous"))


def _size_of(data: dict[str, str]) -> int:
    # localStorage counts UTF-16 code units for keys and values
    return sum(2 * (len(k) + len(v)) for k, v in data.items())


class MemoryBackend(_NotifyingBackend):
    """In-memory storage for development and testing.

    WARNING: State lost on restart.
    Suitable for: local dev, tests, single-process scripts.

    ``quota_bytes`` caps the total stored size; ``None`` means unlimited.
    """

    def __init__(self, quota_bytes: int | None = None):
        super().__init__()
        self._data: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str, *, origin: str | None = None) -> None:
        if self.quota_bytes is not None:
            projected = {**self._data, key: value}
            if _size_of(projected) > self.quota_bytes:
                raise QuotaExceededError(
                    f"Writing '{key}' would use {_size_of(projected)} bytes (quota {self.quota_bytes})"
                )
        old = self._data.get(key)
        self._data[key] = value
        self._notify(StorageEvent(key, old, value, origin))

    async def delete(self, key: str, *, origin: str | None = None) -> None:
        old = self._data.pop(key, None)
        if old is not None:
            self._notify(StorageEvent(key, old, None, origin))


class FileBackend(_NotifyingBackend):
    """Persist every key in a single JSON document on disk.

    The whole document is rewritten on each mutation. Change notifications
    reach subscribers of this instance only; another process sees the new
    state on its next read.
    """

    def __init__(self, path: str | Path, quota_bytes: int | None = DEFAULT_QUOTA_BYTES):
        super().__init__()
        self._path = Path(path).expanduser()
        self.quota_bytes = quota_bytes

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self._path} does not hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(data), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            raise StorageError(f"Cannot write {self._path}: {exc}") from exc

    async def get(self, key: str) -> str | None:
        return self._read().get(key)

    async def set(self, key: str, value: str, *, origin: str | None = None) -> None:
        data = self._read()
        old = data.get(key)
        data[key] = value
        if self.quota_bytes is not None and _size_of(data) > self.quota_bytes:
            raise QuotaExceededError(f"Writing '{key}' would use {_size_of(data)} bytes (quota {self.quota_bytes})")
        self._write(data)
        self._notify(StorageEvent(key, old, value, origin))

    async def delete(self, key: str, *, origin: str | None = None) -> None:
        data = self._read()
        if key not in data:
            return
        old = data.pop(key)
        self._write(data)
        self._notify(StorageEvent(key, old, None, origin))
