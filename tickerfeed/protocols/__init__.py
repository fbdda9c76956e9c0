"""
Protocols
Lightweight Protocols for interface clarity and decoupling.
"""

from .decoder import EnvelopeDecoder
from .handler import TickerHandler
from .transport import FeedTransport

__all__ = [
    "EnvelopeDecoder",
    "TickerHandler",
    "FeedTransport",
]
