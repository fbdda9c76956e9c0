"""
Pytest Configuration
Fake WebSocket transport, frame builders and test environment isolation.
"""

import asyncio
import inspect
import json
import os
import pytest
from typing import Any, Dict, List, Optional, Sequence

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from tickerfeed.config import FeedConfig
from tickerfeed.observability.metrics import get_metrics

# Sentinel: recv() blocks until cancelled
BLOCK = object()

TICKER_FIELDS = (
    "best_bid", "best_ask", "best_bid_quantity", "best_ask_quantity",
    "high_24_h", "low_24_h", "high_52_w", "low_52_w",
    "price_percent_chg_24_h", "volume_24_h",
)


def ticker_payload(product_id: str, price: str = "100.00", ticker_type: str = "update") -> Dict[str, Any]:
    payload = {field: "0" for field in TICKER_FIELDS}
    payload.update({"product_id": product_id, "price": price, "type": ticker_type})
    return payload


def ticker_event(*tickers: Dict[str, Any], event_type: str = "update") -> Dict[str, Any]:
    return {"type": event_type, "tickers": list(tickers)}


def subscriptions_event(keys: Sequence[str], channel: str = "ticker") -> Dict[str, Any]:
    return {"subscriptions": {channel: list(keys)}}


def envelope(sequence_num: int, *events: Dict[str, Any], channel: str = "ticker") -> Dict[str, Any]:
    return {
        "channel": channel,
        "client_id": "",
        "sequence_num": sequence_num,
        "timestamp": "2024-01-01T00:00:00Z",
        "events": list(events),
    }


def frame(sequence_num: int, *events: Dict[str, Any], channel: str = "ticker") -> str:
    return json.dumps(envelope(sequence_num, *events, channel=channel))


def clean_close() -> ConnectionClosedOK:
    return ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye"), True)


def abnormal_close() -> ConnectionClosedError:
    return ConnectionClosedError(Close(1011, "internal error"), None)


class FakeWebSocket:
    """Scripted transport: recv() replays frames, raising any exception in the script.

    Once the script is exhausted the peer closes cleanly.
    """

    def __init__(self, script: Optional[List[Any]] = None, send_error: Optional[Exception] = None):
        self.script = list(script or [])
        self.sent: List[str] = []
        self.send_error = send_error
        self.closed = False
        self.recv_calls = 0
        self.blocked = asyncio.Event()

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def recv(self):
        self.recv_calls += 1
        if not self.script:
            raise clean_close()
        item = self.script.pop(0)
        if item is BLOCK:
            self.blocked.set()
            await asyncio.Future()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    @property
    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(m) for m in self.sent]


class FakeConnector:
    """Stands in for websockets.connect; records every attempt."""

    def __init__(self, ws: Optional[FakeWebSocket] = None, error: Optional[Exception] = None):
        self.ws = ws or FakeWebSocket()
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, url: str, close_timeout: float) -> FakeWebSocket:
        self.calls.append((url, close_timeout))
        if self.error is not None:
            raise self.error
        return self.ws


@pytest.fixture
def feed_config() -> FeedConfig:
    return FeedConfig(ws_url="wss://feed.test/ws", close_timeout_s=1.0)


@pytest.fixture
def recorder():
    """Handler factory that records the tickers it receives."""
    class Recorder:
        def __init__(self):
            self.calls = {}

        def handler_for(self, key: str):
            self.calls.setdefault(key, [])

            def _handler(ticker):
                self.calls[key].append(ticker)
            return _handler

    return Recorder()


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture(autouse=True)
def setup_test_env():
    """Keep TICKERFEED_* variables from the host out of the tests."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("TICKERFEED_")}
    for key in saved:
        os.environ.pop(key)

    yield

    for key in [k for k in os.environ if k.startswith("TICKERFEED_")]:
        os.environ.pop(key)
    os.environ.update(saved)


# Pytest configuration
def pytest_collection_modifyitems(config, items):
    """Mark async tests."""
    for item in items:
        if inspect.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)
