"""
Observability metrics for the ticker feed.
Per-session counters plus a process-wide counter/gauge registry.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Any
import json


@dataclass
class FeedStats:
    """Counters for one session; owned by the receive loop."""
    frames_received: int = 0
    frames_skipped: int = 0
    decode_errors: int = 0
    envelopes_processed: int = 0
    sequence_regressed: int = 0
    sequence_gapped: int = 0
    tickers_dispatched: int = 0
    unroutable_events: int = 0
    handler_errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


# Simple metrics tracking without Prometheus dependency
class SimpleMetrics:
    """Simple metrics tracking for observability."""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, str]]) -> str:
        return f"{name}{json.dumps(labels or {}, sort_keys=True)}"

    def inc_counter(self, name: str, labels: Dict[str, str] = None, value: int = 1):
        """Increment a counter."""
        key = self._key(name, labels)
        self.counters[key] = self.counters.get(key, 0) + value

    def set_gauge(self, name: str, value: float, labels: Dict[str, str] = None):
        """Set a gauge value."""
        self.gauges[self._key(name, labels)] = value

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        return self.counters.get(self._key(name, labels), 0)

    def get_gauge(self, name: str, labels: Dict[str, str] = None) -> Optional[float]:
        return self.gauges.get(self._key(name, labels))

    def get_metrics(self) -> str:
        """Get metrics in text format."""
        lines: List[str] = []
        for key, value in self.counters.items():
            lines.append(f"# TYPE {key.split('{')[0]} counter")
            lines.append(f"{key} {value}")
        for key, value in self.gauges.items():
            lines.append(f"# TYPE {key.split('{')[0]} gauge")
            lines.append(f"{key} {value}")
        return "\n".join(lines)

    def reset(self):
        self.counters.clear()
        self.gauges.clear()


# Global metrics instance
_metrics = SimpleMetrics()


def get_metrics() -> SimpleMetrics:
    return _metrics


def record_ws_connect(url: str):
    """Record a WebSocket connection being opened."""
    _metrics.inc_counter("ws_connects", {"url": url})


def record_ws_message(kind: str):
    """Record WebSocket frame received, by outcome."""
    _metrics.inc_counter("ws_messages", {"kind": kind})


def record_sequence_anomaly(status: str):
    """Record a regressed or gapped sequence number."""
    _metrics.inc_counter("sequence_anomalies", {"status": status})


def record_session_end(status: str):
    """Record how a session terminated."""
    _metrics.inc_counter("sessions_ended", {"status": status})


def record_last_sequence(sequence_num: int):
    _metrics.set_gauge("last_sequence_num", float(sequence_num))


def snapshot(stats: FeedStats) -> Dict[str, Any]:
    """Merge session counters into a plain dict for logs."""
    return {"session": stats.as_dict(), "global": dict(_metrics.counters)}
