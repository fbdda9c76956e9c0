"""
Centralized Exceptions
Error taxonomy for the ticker feed session and structured error rendering.
"""

import re
from typing import Dict, Any, List, Optional


class TickerFeedError(Exception):
    """Base exception for the ticker feed."""

    def __init__(self, message: str, error_code: str = "UNKNOWN", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(TickerFeedError):
    """Invalid configuration, e.g. no handlers registered before connect."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


class DecodeError(TickerFeedError):
    """A frame could not be parsed into an Envelope."""

    def __init__(self, message: str = "Failed to decode frame", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DECODE_ERROR", details)


class SequenceRegressed(TickerFeedError):
    """Incoming sequence number is not ahead of the last one seen."""

    def __init__(self, received: int, last_seen: Optional[int]):
        self.received = received
        self.last_seen = last_seen
        super().__init__(
            f"Sequence regressed: received {received}, last seen {last_seen}",
            "SEQUENCE_REGRESSED",
            {"received": received, "last_seen": last_seen},
        )


class SubscriptionMismatch(TickerFeedError):
    """Server acknowledged subscriptions differ from the registered handlers."""

    def __init__(
        self,
        message: str = "Subscription mismatch",
        missing: Optional[List[str]] = None,
        unexpected: Optional[List[str]] = None,
    ):
        self.missing = sorted(missing or [])
        self.unexpected = sorted(unexpected or [])
        super().__init__(message, "SUBSCRIPTION_MISMATCH", {
            "missing": self.missing,
            "unexpected": self.unexpected,
        })


class UnroutableEvent(TickerFeedError):
    """A ticker arrived for a key with no registered handler."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(
            f"No handler registered for {product_id!r}",
            "UNROUTABLE_EVENT",
            {"product_id": product_id},
        )


class TransportError(TickerFeedError):
    """The connection failed or closed abnormally."""

    def __init__(self, message: str = "Transport error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSPORT_ERROR", details)


def sanitize_error_message(message: str) -> str:
    """Sanitize error messages to prevent information leakage."""
    sensitive_patterns = [
        "password", "secret", "token", "private",
        "api_key", "access_token", "refresh_token"
    ]

    sanitized = message
    for pattern in sensitive_patterns:
        sanitized = re.sub(re.escape(pattern), "***", sanitized, flags=re.IGNORECASE)

    return sanitized


def create_structured_error_response(error: Exception) -> Dict[str, Any]:
    """Create structured error payload for logging."""
    if isinstance(error, TickerFeedError):
        return {
            "error_type": error.error_code,
            "message": sanitize_error_message(error.message),
            "details": error.details,
        }
    else:
        return {
            "error_type": "UNKNOWN_ERROR",
            "message": sanitize_error_message(str(error)),
            "details": {},
        }
