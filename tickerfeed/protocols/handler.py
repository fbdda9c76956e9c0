"""
Ticker Handler Protocol
A handler consumes one Ticker and returns nothing.
"""

from typing import Protocol

from tickerfeed.schemas.market import Ticker


class TickerHandler(Protocol):
    """Callback invoked on the receive loop for each routed Ticker."""

    def __call__(self, ticker: Ticker) -> None:
        ...
