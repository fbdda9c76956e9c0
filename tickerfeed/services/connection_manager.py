"""
Ticker feed connection manager.
One WebSocket session: connect, subscribe, stream, close. No reconnection.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from tickerfeed.config import DecodeFailurePolicy, FeedConfig
from tickerfeed.errors import (
    ConfigurationError,
    DecodeError,
    SubscriptionMismatch,
    TickerFeedError,
    TransportError,
    UnroutableEvent,
    create_structured_error_response,
)
from tickerfeed.observability.metrics import (
    FeedStats,
    record_session_end,
    record_ws_connect,
    record_ws_message,
    snapshot,
)
from tickerfeed.protocols.decoder import EnvelopeDecoder
from tickerfeed.protocols.transport import FeedTransport
from tickerfeed.schemas.market import SubscribeRequest
from tickerfeed.services.decoder import JsonEnvelopeDecoder
from tickerfeed.services.dispatcher import Dispatcher
from tickerfeed.services.handler_registry import HandlerRegistry
from tickerfeed.services.sequence_tracker import SequenceTracker
from tickerfeed.services.subscription_verifier import SubscriptionVerifier
from tickerfeed.util.async_tools import AsyncTimeoutError, timeout

logger = logging.getLogger("ticker_ws")

Connector = Callable[[str, float], Awaitable[FeedTransport]]

# Bound on how much of a bad frame ends up in the logs
LOG_FRAME_CHARS = 200


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    CLOSED = "closed"


class SessionStatus(str, Enum):
    CLOSED = "closed"      # peer closed cleanly
    STOPPED = "stopped"    # stop() requested locally
    FAILED = "failed"


@dataclass
class SessionResult:
    """Terminal outcome of one run()."""
    status: SessionStatus
    reason: str
    error: Optional[TickerFeedError] = None
    last_sequence: Optional[int] = None
    stats: FeedStats = field(default_factory=FeedStats)

    @property
    def ok(self) -> bool:
        return self.status is not SessionStatus.FAILED


async def websockets_connector(url: str, close_timeout: float) -> FeedTransport:
    """Open a client connection with the websockets library."""
    return await websockets.connect(url, close_timeout=close_timeout)


class ConnectionManager:
    """Drives one session against the ticker feed.

    State machine: DISCONNECTED -> CONNECTING -> SUBSCRIBING -> STREAMING -> CLOSED.

    The task awaiting run() is the only one touching sequence state. Handlers
    are invoked inline on that task; a blocking handler stalls reads.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        config: Optional[FeedConfig] = None,
        decoder: Optional[EnvelopeDecoder] = None,
        connector: Optional[Connector] = None,
    ):
        self.registry = registry
        self.config = config or FeedConfig()
        self.decoder = decoder or JsonEnvelopeDecoder()
        self.connector = connector or websockets_connector

        self.stats = FeedStats()
        self.tracker = SequenceTracker()
        self._state = ConnectionState.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._connected_at: Optional[float] = None
        self._last_frame_ts = 0.0

    @property
    def state(self) -> ConnectionState:
        return self._state

    def stop(self) -> None:
        """Request shutdown; run() returns once the frame in hand is dispatched."""
        if not self._stop_event.is_set():
            logger.info("[ticker_ws] Stop requested")
        self._stop_event.set()

    async def run(self) -> SessionResult:
        """Run the session to completion and return its terminal result."""
        if self._state is not ConnectionState.DISCONNECTED:
            return self._finish(
                SessionStatus.FAILED,
                ConfigurationError(f"Session already used (state={self._state.value})"),
            )

        keys = self.registry.keys()
        if not keys:
            return self._finish(
                SessionStatus.FAILED,
                ConfigurationError("No handlers registered, nothing to subscribe to"),
            )

        if self._stop_event.is_set():
            return self._finish(SessionStatus.STOPPED, reason="Stopped before connecting")

        self._state = ConnectionState.CONNECTING
        logger.info(f"[ticker_ws] Connecting to {self.config.ws_url}")
        try:
            ws = await self.connector(self.config.ws_url, self.config.close_timeout_s)
        except asyncio.CancelledError:
            self._state = ConnectionState.CLOSED
            record_session_end("cancelled")
            raise
        except Exception as e:
            return self._finish(
                SessionStatus.FAILED,
                TransportError(f"Failed to connect to {self.config.ws_url}: {e}",
                               details={"url": self.config.ws_url}),
            )

        self._connected_at = time.time()
        record_ws_connect(self.config.ws_url)
        logger.info("[ticker_ws] Connected to ticker feed")

        try:
            return await self._session(ws, keys)
        except asyncio.CancelledError:
            logger.warning("[ticker_ws] Session cancelled, unread frames discarded")
            record_session_end("cancelled")
            raise
        finally:
            await self._close(ws)
            self._state = ConnectionState.CLOSED

    async def _session(self, ws: FeedTransport, keys: FrozenSet[str]) -> SessionResult:
        dispatcher = Dispatcher(
            self.registry,
            SubscriptionVerifier(keys, channel=self.config.channel),
            tracker=self.tracker,
            unroutable_policy=self.config.unroutable_policy,
            stats=self.stats,
        )

        self._state = ConnectionState.SUBSCRIBING
        request = SubscribeRequest(product_ids=sorted(keys), channel=self.config.channel)
        payload = request.model_dump_json()
        logger.debug(f"[ticker_ws] Subscribing to {payload}")
        try:
            await ws.send(payload)
        except Exception as e:
            return self._finish(
                SessionStatus.FAILED,
                TransportError(f"Failed to send subscription: {e}"),
            )
        logger.info(f"[ticker_ws] Subscribed to {self.config.channel} for {len(keys)} instruments")

        self._state = ConnectionState.STREAMING
        while True:
            try:
                frame = await self._next_frame(ws)
            except ConnectionClosedOK:
                logger.warning("[ticker_ws] Connection closed by server")
                return self._finish(SessionStatus.CLOSED, reason="Connection closed by server")
            except ConnectionClosed as e:
                return self._finish(
                    SessionStatus.FAILED,
                    TransportError(f"Connection closed abnormally: {e}", details=_close_details(e)),
                )
            except Exception as e:
                return self._finish(
                    SessionStatus.FAILED,
                    TransportError(f"Error receiving message: {e}"),
                )

            if frame is None:
                return self._finish(
                    SessionStatus.STOPPED,
                    reason="Stopped on request; in-hand frame dispatched, unread frames discarded",
                )

            self.stats.frames_received += 1
            self._last_frame_ts = time.time()

            if not isinstance(frame, str):
                self.stats.frames_skipped += 1
                record_ws_message("binary")
                logger.debug(f"[ticker_ws] Received non-text message ({len(frame)} bytes)")
                continue

            try:
                envelope = self.decoder.decode(frame)
            except DecodeError as e:
                self.stats.decode_errors += 1
                record_ws_message("decode_error")
                logger.error(f"[ticker_ws] Failed to parse message '{frame[:LOG_FRAME_CHARS]}': {e.message}")
                if self.config.decode_policy is DecodeFailurePolicy.ABORT:
                    return self._finish(SessionStatus.FAILED, e)
                continue

            record_ws_message("envelope")
            try:
                dispatcher.process(envelope)
            except (SubscriptionMismatch, UnroutableEvent) as e:
                return self._finish(SessionStatus.FAILED, e)

    async def _next_frame(self, ws: FeedTransport) -> Optional[Union[str, bytes]]:
        """Next frame from the transport, or None once stop() has been called."""
        if self._stop_event.is_set():
            return None

        recv_task = asyncio.ensure_future(ws.recv())
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {recv_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stop_task.cancel()
            if not recv_task.done():
                recv_task.cancel()

        # A frame that arrived together with the stop request still gets dispatched
        if recv_task in done:
            return recv_task.result()
        return None

    async def _close(self, ws: FeedTransport) -> None:
        try:
            await timeout(ws.close(), self.config.close_timeout_s)
        except AsyncTimeoutError:
            logger.warning(f"[ticker_ws] Close timed out after {self.config.close_timeout_s}s")
        except Exception as e:
            logger.warning(f"[ticker_ws] Error closing connection: {e}")

    def _finish(
        self,
        status: SessionStatus,
        error: Optional[TickerFeedError] = None,
        reason: Optional[str] = None,
    ) -> SessionResult:
        self._state = ConnectionState.CLOSED
        result = SessionResult(
            status=status,
            reason=reason or (error.message if error else status.value),
            error=error,
            last_sequence=self.tracker.last_sequence,
            stats=self.stats,
        )
        record_session_end(status.value)

        if error is not None:
            logger.error(json.dumps({
                "evt": "ticker_session_failed",
                **create_structured_error_response(error),
                "stats": self.stats.as_dict(),
            }))
        else:
            logger.info(f"[ticker_ws] Session {status.value}: {result.reason}")
            logger.debug(f"[ticker_ws] {json.dumps(snapshot(self.stats))}")
        return result

    def last_frame_s_ago(self) -> float:
        """Get seconds since last frame."""
        if self._last_frame_ts == 0:
            return 999.0
        return time.time() - self._last_frame_ts

    def get_health_metrics(self) -> Dict[str, Any]:
        """Get session health metrics."""
        return {
            "state": self._state.value,
            "url": self.config.ws_url,
            "connected_s": round(time.time() - self._connected_at, 1) if self._connected_at else 0.0,
            "last_frame_s_ago": round(self.last_frame_s_ago(), 1),
            "last_sequence": self.tracker.last_sequence,
            "symbols": sorted(self.registry.keys()),
            **self.stats.as_dict(),
        }


def _close_details(exc: ConnectionClosed) -> Dict[str, Any]:
    rcvd = getattr(exc, "rcvd", None)
    if rcvd is None:
        return {"code": None, "reason": ""}
    return {"code": rcvd.code, "reason": rcvd.reason}
