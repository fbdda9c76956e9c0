"""
Connection manager tests against a scripted WebSocket transport.
Covers the state machine, terminal results, policies, stop and cancellation.
"""

import asyncio
import dataclasses
import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from tickerfeed.config import DecodeFailurePolicy, UnroutablePolicy
from tickerfeed.errors import (
    ConfigurationError,
    DecodeError,
    SubscriptionMismatch,
    TransportError,
    UnroutableEvent,
)
from tickerfeed.services.connection_manager import (
    ConnectionManager,
    ConnectionState,
    SessionStatus,
    websockets_connector,
)
from tickerfeed.services.handler_registry import HandlerRegistry

from conftest import (
    BLOCK,
    FakeConnector,
    FakeWebSocket,
    abnormal_close,
    clean_close,
    frame,
    subscriptions_event,
    ticker_event,
    ticker_payload,
)


@pytest.fixture
def registry(recorder):
    registry = HandlerRegistry()
    registry.register("BTC-USD", recorder.handler_for("BTC-USD"))
    registry.register("ETH-USD", recorder.handler_for("ETH-USD"))
    return registry


def _manager(registry, script, config, **overrides):
    ws = FakeWebSocket(script)
    connector = FakeConnector(ws)
    cfg = dataclasses.replace(config, **overrides)
    return ConnectionManager(registry, config=cfg, connector=connector), ws, connector


async def _wait_blocked(ws: FakeWebSocket):
    await asyncio.wait_for(ws.blocked.wait(), timeout=1.0)


@pytest.mark.asyncio
class TestConnectionManager:
    """Test one feed session end to end."""

    async def test_empty_registry_fails_without_connecting(self, feed_config):
        connector = FakeConnector()
        manager = ConnectionManager(HandlerRegistry(), config=feed_config, connector=connector)

        result = await manager.run()

        assert not result.ok
        assert isinstance(result.error, ConfigurationError)
        assert connector.calls == []
        assert manager.state is ConnectionState.CLOSED

    async def test_subscription_request(self, registry, feed_config):
        manager, ws, connector = _manager(registry, [], feed_config)

        await manager.run()

        assert connector.calls == [("wss://feed.test/ws", 1.0)]
        assert ws.sent_json == [{
            "type": "subscribe",
            "product_ids": ["BTC-USD", "ETH-USD"],
            "channel": "ticker",
        }]
        assert ws.closed

    async def test_snapshot_then_update(self, registry, recorder, feed_config):
        script = [
            frame(0, ticker_event(ticker_payload("BTC-USD", "65000.00", "snapshot"), event_type="snapshot")),
            frame(1, ticker_event(ticker_payload("ETH-USD", "3200.00", "update"))),
        ]
        manager, ws, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert result.status is SessionStatus.CLOSED
        assert [t.price for t in recorder.calls["BTC-USD"]] == ["65000.00"]
        assert [t.price for t in recorder.calls["ETH-USD"]] == ["3200.00"]
        assert result.stats.sequence_gapped == 0
        assert result.stats.sequence_regressed == 0
        assert result.stats.unroutable_events == 0
        assert result.stats.decode_errors == 0
        assert result.last_sequence == 1

    async def test_duplicate_sequence_never_reaches_handlers(self, registry, recorder, feed_config):
        script = [
            frame(0, ticker_event(ticker_payload("BTC-USD", "65000.00"))),
            frame(0, ticker_event(ticker_payload("BTC-USD", "1.00"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert [t.price for t in recorder.calls["BTC-USD"]] == ["65000.00"]
        assert result.stats.sequence_regressed == 1

    async def test_gap_dispatches_and_advances(self, registry, recorder, feed_config):
        script = [
            frame(0, ticker_event(ticker_payload("BTC-USD", "65000.00"))),
            frame(5, ticker_event(ticker_payload("ETH-USD", "3200.00"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert len(recorder.calls["ETH-USD"]) == 1
        assert result.stats.sequence_gapped == 1
        assert result.last_sequence == 5
        assert manager.tracker.last_sequence == 5

    async def test_subscription_ack_verified(self, registry, feed_config):
        script = [frame(0, subscriptions_event(["BTC-USD", "ETH-USD"]), channel="subscriptions")]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok

    async def test_subscription_mismatch_is_fatal(self, registry, recorder, feed_config):
        script = [
            frame(0, subscriptions_event(["BTC-USD"]), channel="subscriptions"),
            frame(1, ticker_event(ticker_payload("BTC-USD"))),
        ]
        manager, ws, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.status is SessionStatus.FAILED
        assert isinstance(result.error, SubscriptionMismatch)
        assert result.error.missing == ["ETH-USD"]
        assert recorder.calls["BTC-USD"] == []
        assert ws.closed

    async def test_unroutable_dropped_by_default(self, registry, recorder, feed_config):
        script = [
            frame(0, ticker_event(ticker_payload("SOL-USD"))),
            frame(1, ticker_event(ticker_payload("BTC-USD"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert result.stats.unroutable_events == 1
        assert len(recorder.calls["BTC-USD"]) == 1

    async def test_unroutable_abort_policy(self, registry, recorder, feed_config):
        script = [
            frame(0, ticker_event(ticker_payload("SOL-USD"))),
            frame(1, ticker_event(ticker_payload("BTC-USD"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config, unroutable_policy=UnroutablePolicy.ABORT)

        result = await manager.run()

        assert result.status is SessionStatus.FAILED
        assert isinstance(result.error, UnroutableEvent)
        assert recorder.calls["BTC-USD"] == []

    async def test_decode_failure_skipped_by_default(self, registry, recorder, feed_config):
        script = [
            "{not json",
            frame(0, ticker_event(ticker_payload("BTC-USD"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert result.stats.decode_errors == 1
        assert result.stats.frames_received == 2
        assert len(recorder.calls["BTC-USD"]) == 1

    async def test_decode_failure_abort_policy(self, registry, recorder, feed_config):
        script = [
            "{not json",
            frame(0, ticker_event(ticker_payload("BTC-USD"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config, decode_policy=DecodeFailurePolicy.ABORT)

        result = await manager.run()

        assert result.status is SessionStatus.FAILED
        assert isinstance(result.error, DecodeError)
        assert recorder.calls["BTC-USD"] == []

    async def test_binary_frames_skipped(self, registry, recorder, feed_config):
        script = [b"\x00\x01", frame(0, ticker_event(ticker_payload("BTC-USD")))]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert result.stats.frames_skipped == 1
        assert len(recorder.calls["BTC-USD"]) == 1

    async def test_clean_close_is_success(self, registry, recorder, feed_config):
        script = [frame(0, ticker_event(ticker_payload("BTC-USD"))), clean_close(), frame(1)]
        manager, ws, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert result.status is SessionStatus.CLOSED
        assert result.error is None
        assert result.reason == "Connection closed by server"
        assert len(recorder.calls["BTC-USD"]) == 1
        assert ws.script == [frame(1)]
        assert ws.closed

    async def test_abnormal_close_is_transport_error(self, registry, feed_config):
        script = [frame(0), abnormal_close()]
        manager, ws, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.status is SessionStatus.FAILED
        assert isinstance(result.error, TransportError)
        assert result.error.details["code"] == 1011
        assert ws.closed

    async def test_receive_error_is_transport_error(self, registry, feed_config):
        manager, _, _ = _manager(registry, [OSError("connection reset")], feed_config)

        result = await manager.run()

        assert isinstance(result.error, TransportError)
        assert "connection reset" in result.reason

    async def test_connect_failure(self, registry, feed_config):
        connector = FakeConnector(error=OSError("refused"))
        manager = ConnectionManager(registry, config=feed_config, connector=connector)

        result = await manager.run()

        assert result.status is SessionStatus.FAILED
        assert isinstance(result.error, TransportError)
        assert result.error.details["url"] == "wss://feed.test/ws"
        assert manager.state is ConnectionState.CLOSED

    async def test_send_failure(self, registry, feed_config):
        ws = FakeWebSocket(send_error=OSError("broken pipe"))
        manager = ConnectionManager(registry, config=feed_config, connector=FakeConnector(ws))

        result = await manager.run()

        assert isinstance(result.error, TransportError)
        assert ws.recv_calls == 0
        assert ws.closed

    async def test_stop_while_streaming(self, registry, recorder, feed_config):
        script = [frame(0, ticker_event(ticker_payload("BTC-USD"))), BLOCK]
        manager, ws, _ = _manager(registry, script, feed_config)

        task = asyncio.create_task(manager.run())
        await _wait_blocked(ws)
        assert manager.state is ConnectionState.STREAMING

        manager.stop()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.ok
        assert result.status is SessionStatus.STOPPED
        assert "unread frames discarded" in result.reason
        assert len(recorder.calls["BTC-USD"]) == 1
        assert ws.closed
        assert manager.state is ConnectionState.CLOSED

    async def test_stop_before_run(self, registry, feed_config):
        manager, ws, connector = _manager(registry, [], feed_config)
        manager.stop()

        result = await manager.run()

        assert result.status is SessionStatus.STOPPED
        assert connector.calls == []

    async def test_external_cancellation_closes_transport(self, registry, feed_config):
        manager, ws, _ = _manager(registry, [BLOCK], feed_config)

        task = asyncio.create_task(manager.run())
        await _wait_blocked(ws)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert ws.closed
        assert manager.state is ConnectionState.CLOSED

    async def test_session_is_single_use(self, registry, feed_config):
        manager, _, _ = _manager(registry, [], feed_config)
        await manager.run()

        result = await manager.run()

        assert isinstance(result.error, ConfigurationError)

    async def test_health_metrics(self, registry, feed_config):
        manager, _, _ = _manager(registry, [frame(0)], feed_config)
        await manager.run()

        health = manager.get_health_metrics()

        assert health["state"] == "closed"
        assert health["last_sequence"] == 0
        assert health["frames_received"] == 1
        assert health["symbols"] == ["BTC-USD", "ETH-USD"]
        json.dumps(health)

    async def test_handler_error_does_not_end_session(self, feed_config):
        registry = HandlerRegistry()
        failing = Mock(side_effect=ValueError("handler bug"))
        registry.register("BTC-USD", failing)
        script = [
            frame(0, ticker_event(ticker_payload("BTC-USD", "1.00"))),
            frame(1, ticker_event(ticker_payload("BTC-USD", "2.00"))),
        ]
        manager, _, _ = _manager(registry, script, feed_config)

        result = await manager.run()

        assert result.ok
        assert failing.call_count == 2
        assert result.stats.handler_errors == 2


@pytest.mark.asyncio
async def test_websockets_connector_passes_close_timeout():
    transport = AsyncMock()
    with patch(
        "tickerfeed.services.connection_manager.websockets.connect",
        new=AsyncMock(return_value=transport),
    ) as connect:
        ws = await websockets_connector("wss://feed.test/ws", 2.0)

    assert ws is transport
    connect.assert_awaited_once_with("wss://feed.test/ws", close_timeout=2.0)
