"""
Caller-facing ticker feed client.

Register one handler per instrument key, then await run(). Each run() is a
fresh session with its own sequence state; there is no reconnection.

    client = TickerFeedClient(load_feed_config())
    client.register("BTC-USD", on_btc)
    result = await client.run()
"""

import logging
from typing import Optional

from tickerfeed.config import FeedConfig
from tickerfeed.protocols.decoder import EnvelopeDecoder
from tickerfeed.protocols.handler import TickerHandler
from tickerfeed.services.connection_manager import (
    ConnectionManager,
    ConnectionState,
    Connector,
    SessionResult,
)
from tickerfeed.services.handler_registry import HandlerRegistry

logger = logging.getLogger("ticker_client")


class TickerFeedClient:
    """Registry-backed client for the ticker channel."""

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        registry: Optional[HandlerRegistry] = None,
        decoder: Optional[EnvelopeDecoder] = None,
        connector: Optional[Connector] = None,
    ):
        self.config = config or FeedConfig()
        self.registry = registry or HandlerRegistry()
        self._decoder = decoder
        self._connector = connector
        self._session: Optional[ConnectionManager] = None
        self._stop_requested = False

    @property
    def session(self) -> Optional[ConnectionManager]:
        """The current or most recent session."""
        return self._session

    def register(self, key: str, handler: TickerHandler) -> None:
        """Bind handler to an instrument key; must happen before run()."""
        if self._session is not None and self._session.state is ConnectionState.STREAMING:
            logger.warning(f"[ticker_client] {key} registered mid-session, it is not subscribed until the next run()")
        self.registry.register(key, handler)

    async def run(self) -> SessionResult:
        """Run one session and return its terminal result."""
        self._session = ConnectionManager(
            self.registry,
            config=self.config,
            decoder=self._decoder,
            connector=self._connector,
        )
        if self._stop_requested:
            self._stop_requested = False
            self._session.stop()
        return await self._session.run()

    def stop(self) -> None:
        """Ask the running session to stop; before the first run() it applies to that run."""
        if self._session is None:
            self._stop_requested = True
        elif self._session.state is ConnectionState.CLOSED:
            logger.debug("[ticker_client] Stop requested after session ended, ignoring")
        else:
            self._session.stop()
