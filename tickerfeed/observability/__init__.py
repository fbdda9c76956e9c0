from .logs import setup_logging
from .metrics import FeedStats, SimpleMetrics, get_metrics

__all__ = ["setup_logging", "FeedStats", "SimpleMetrics", "get_metrics"]
