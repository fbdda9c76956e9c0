"""
Handler registry: instrument key -> ticker callback.
Thread-safe; the receive loop only reads.
"""

import logging
from typing import Dict, FrozenSet, Optional

from tickerfeed.errors import ConfigurationError
from tickerfeed.protocols.handler import TickerHandler
from tickerfeed.util.locks import ReadWriteLock

logger = logging.getLogger("handler_registry")


class HandlerRegistry:
    """Owns the key -> handler mapping behind a reader/writer lock."""

    def __init__(self):
        self._handlers: Dict[str, TickerHandler] = {}
        self._lock = ReadWriteLock()

    def register(self, key: str, handler: TickerHandler) -> None:
        """Bind handler to key, replacing any earlier binding."""
        if not key or not key.strip():
            raise ConfigurationError("Instrument key must be non-empty")
        if not callable(handler):
            raise ConfigurationError(
                f"Handler for {key!r} is not callable",
                details={"key": key, "handler_type": type(handler).__name__},
            )

        with self._lock.write_locked():
            replaced = key in self._handlers
            self._handlers[key] = handler

        if replaced:
            logger.info(f"[handler_registry] Replaced handler for {key}")
        else:
            logger.debug(f"[handler_registry] Registered handler for {key}")

    def lookup(self, key: str) -> Optional[TickerHandler]:
        with self._lock.read_locked():
            return self._handlers.get(key)

    def keys(self) -> FrozenSet[str]:
        with self._lock.read_locked():
            return frozenset(self._handlers)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._handlers)

    def __contains__(self, key: object) -> bool:
        with self._lock.read_locked():
            return key in self._handlers
