"""
tickerfeed - push-protocol client for a WebSocket ticker feed.
Connects, subscribes, checks sequence continuity and routes tickers to handlers.
"""

from .client import TickerFeedClient
from .config import DecodeFailurePolicy, FeedConfig, UnroutablePolicy, load_feed_config
from .errors import (
    ConfigurationError,
    DecodeError,
    SequenceRegressed,
    SubscriptionMismatch,
    TickerFeedError,
    TransportError,
    UnroutableEvent,
)
from .schemas.market import Envelope, SubscriptionEvent, Ticker, TickerEvent
from .services.connection_manager import ConnectionState, SessionResult, SessionStatus
from .services.sequence_tracker import SequenceStatus

__all__ = [
    "TickerFeedClient",
    "FeedConfig",
    "load_feed_config",
    "UnroutablePolicy",
    "DecodeFailurePolicy",
    "TickerFeedError",
    "ConfigurationError",
    "DecodeError",
    "SequenceRegressed",
    "SubscriptionMismatch",
    "TransportError",
    "UnroutableEvent",
    "Envelope",
    "SubscriptionEvent",
    "Ticker",
    "TickerEvent",
    "ConnectionState",
    "SessionResult",
    "SessionStatus",
    "SequenceStatus",
]
