"""
Envelope Decoder Protocol
Defines the interface for turning a raw text frame into an Envelope.
"""

from typing import Protocol
from abc import abstractmethod

from tickerfeed.schemas.market import Envelope


class EnvelopeDecoder(Protocol):
    """Protocol for wire payload decoding."""

    @abstractmethod
    def decode(self, frame: str) -> Envelope:
        """Parse one frame, raising DecodeError if it is malformed."""
        ...
