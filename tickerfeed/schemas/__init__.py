from .market import (
    Envelope,
    Event,
    SubscribeRequest,
    SubscriptionEvent,
    Ticker,
    TickerEvent,
)

__all__ = [
    "Envelope",
    "Event",
    "SubscribeRequest",
    "SubscriptionEvent",
    "Ticker",
    "TickerEvent",
]
