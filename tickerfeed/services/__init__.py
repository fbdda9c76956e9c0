from .connection_manager import ConnectionManager, ConnectionState, SessionResult, SessionStatus
from .decoder import JsonEnvelopeDecoder
from .dispatcher import DispatchReport, Dispatcher
from .handler_registry import HandlerRegistry
from .sequence_tracker import SequenceStatus, SequenceTracker
from .subscription_verifier import SubscriptionVerifier

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "SessionResult",
    "SessionStatus",
    "JsonEnvelopeDecoder",
    "DispatchReport",
    "Dispatcher",
    "HandlerRegistry",
    "SequenceStatus",
    "SequenceTracker",
    "SubscriptionVerifier",
]
