"""
Feed Transport Protocol
The slice of a WebSocket client connection the connection manager relies on.
"""

from typing import Protocol, Union
from abc import abstractmethod


class FeedTransport(Protocol):
    """Protocol for an open streaming connection."""

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send one text frame."""
        ...

    @abstractmethod
    async def recv(self) -> Union[str, bytes]:
        """Receive one frame; raises ConnectionClosed when the peer closes."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        ...
