"""LogStore — versioned execution log persisted in a StorageBackend."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from controlgate.logs import ExecutionLog, dump_logs, parse_logs
from controlgate.storage import QuotaExceededError, StorageBackend, StorageError, StorageEvent

logger = logging.getLogger(__name__)

STORAGE_VERSION = "v1"
DEFAULT_NAMESPACE = "smartcontract"

LogListener = Callable[[tuple[ExecutionLog, ...]], Any]


class LogStore:
    """Most-recent-first collection of ExecutionLogs.

    Persisted as one JSON array under ``<namespace>_execution_logs``, next to
    a schema-version marker under ``<namespace>_storage_version``. A marker
    that does not match STORAGE_VERSION discards the whole collection.

    Corrupt data is never propagated: it loads as an empty collection.

    Writes made by another LogStore on the same backend arrive through the
    backend's change channel and replace this store's in-memory state
    wholesale. Last writer wins.
    """

    def __init__(self, backend: StorageBackend, namespace: str = DEFAULT_NAMESPACE):
        self._backend = backend
        self._origin = str(uuid.uuid4())
        self._logs: tuple[ExecutionLog, ...] = ()
        self._listeners: list[LogListener] = []
        self._loaded = False
        self.logs_key = f"{namespace}_execution_logs"
        self.version_key = f"{namespace}_storage_version"
        self._unsubscribe: Callable[[], None] | None = backend.subscribe(self._on_storage_event)

    @property
    def logs(self) -> tuple[ExecutionLog, ...]:
        return self._logs

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def origin(self) -> str:
        return self._origin

    def subscribe(self, listener: LogListener) -> Callable[[], None]:
        """Register *listener* for in-memory state changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> tuple[ExecutionLog, ...]:
        """Read the persisted collection, migrating on version mismatch."""
        try:
            version = await self._backend.get(self.version_key)
            if version != STORAGE_VERSION:
                logger.info(
                    "Storage version mismatch (%s != %s), clearing old data",
                    version,
                    STORAGE_VERSION,
                )
                await self._backend.delete(self.logs_key, origin=self._origin)
                await self._backend.set(self.version_key, STORAGE_VERSION, origin=self._origin)

            raw = await self._backend.get(self.logs_key)
        except StorageError as exc:
            logger.error("Failed to load logs from storage: %s", exc)
            raw = None

        self._set_logs(self._parse(raw) if raw else ())
        self._loaded = True
        logger.info("Loaded %d logs from storage", len(self._logs))
        return self._logs

    async def append(self, log: ExecutionLog) -> bool:
        """Prepend *log* and persist the collection.

        On quota exhaustion the oldest half is dropped and the write retried
        once. Returns False when nothing could be persisted; the in-memory
        state is then left untouched.
        """
        new_logs = (log, *self._logs)
        try:
            await self._backend.set(self.logs_key, dump_logs(new_logs), origin=self._origin)
        except QuotaExceededError:
            logger.warning("Storage quota exceeded, removing oldest logs")
            reduced = new_logs[: len(new_logs) // 2]
            try:
                await self._backend.set(self.logs_key, dump_logs(reduced), origin=self._origin)
            except StorageError as exc:
                logger.error("Failed to save logs even after reduction: %s", exc)
                return False
            self._set_logs(reduced)
            return True
        except StorageError as exc:
            logger.error("Failed to save logs to storage: %s", exc)
            return False

        self._set_logs(new_logs)
        logger.debug("Saved %d logs to storage", len(new_logs))
        return True

    async def clear(self) -> None:
        """Remove every entry and the persisted key."""
        try:
            await self._backend.delete(self.logs_key, origin=self._origin)
        except StorageError as exc:
            logger.error("Failed to clear logs: %s", exc)
        self._set_logs(())
        logger.info("Cleared all logs from storage")

    def close(self) -> None:
        """Detach from the backend change channel."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _parse(self, raw: str) -> tuple[ExecutionLog, ...]:
        try:
            return tuple(parse_logs(raw))
        except ValueError as exc:
            logger.error("Failed to parse logs, discarding: %s", exc)
            return ()

    def _set_logs(self, logs: tuple[ExecutionLog, ...]) -> None:
        self._logs = logs
        for listener in list(self._listeners):
            try:
                listener(logs)
            except Exception:
                logger.exception("Log listener %s raised", getattr(listener, "__name__", "anonymous"))

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self.logs_key or event.origin == self._origin:
            return
        logger.info("Logs updated by another context, reloading")
        self._set_logs(self._parse(event.new_value) if event.new_value else ())
