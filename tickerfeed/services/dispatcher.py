"""
Envelope dispatcher: sequence check, subscription reconciliation and
per-instrument routing of tickers to registered handlers.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from tickerfeed.config import UnroutablePolicy
from tickerfeed.errors import SequenceRegressed, UnroutableEvent
from tickerfeed.observability.metrics import (
    FeedStats,
    record_last_sequence,
    record_sequence_anomaly,
)
from tickerfeed.schemas.market import Envelope, SubscriptionEvent, Ticker, TickerEvent
from tickerfeed.services.handler_registry import HandlerRegistry
from tickerfeed.services.sequence_tracker import SequenceStatus, SequenceTracker
from tickerfeed.services.subscription_verifier import SubscriptionVerifier

logger = logging.getLogger("ticker_dispatcher")


@dataclass
class DispatchReport:
    """What happened to one envelope."""
    sequence_num: int
    status: SequenceStatus
    delivered: int = 0
    unroutable: List[str] = field(default_factory=list)
    handler_errors: int = 0
    subscription_checked: bool = False

    @property
    def discarded(self) -> bool:
        return self.status is SequenceStatus.REGRESSED


class Dispatcher:
    """Routes decoded envelopes; one instance per connection.

    Handlers run synchronously on the caller's task, so a slow handler stalls
    the receive loop. Tickers for a key are delivered in stream order.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        verifier: SubscriptionVerifier,
        tracker: Optional[SequenceTracker] = None,
        unroutable_policy: UnroutablePolicy = UnroutablePolicy.DROP,
        stats: Optional[FeedStats] = None,
    ):
        self.registry = registry
        self.verifier = verifier
        self.tracker = tracker or SequenceTracker()
        self.unroutable_policy = unroutable_policy
        self.stats = stats or FeedStats()

    def process(self, envelope: Envelope) -> DispatchReport:
        """Process one envelope.

        Raises:
            SubscriptionMismatch: the acknowledgment disagrees with the registry.
            UnroutableEvent: a ticker has no handler and the policy is ABORT.
        """
        last_seen = self.tracker.last_sequence
        status = self.tracker.check(envelope.sequence_num)
        report = DispatchReport(sequence_num=envelope.sequence_num, status=status)

        if status is SequenceStatus.REGRESSED:
            self.stats.sequence_regressed += 1
            record_sequence_anomaly(status.value)
            err = SequenceRegressed(envelope.sequence_num, last_seen)
            logger.warning(f"[dispatcher] {err.message}, discarding envelope @ {envelope.timestamp}")
            return report

        if status is SequenceStatus.GAPPED:
            self.stats.sequence_gapped += 1
            record_sequence_anomaly(status.value)
            logger.warning(
                f"[dispatcher] Sequence gap: expected "
                f"{(last_seen or 0) + 1}, got {envelope.sequence_num}"
            )

        record_last_sequence(envelope.sequence_num)
        self.stats.envelopes_processed += 1
        logger.debug(f"[dispatcher] Got new message #{envelope.sequence_num} @ {envelope.timestamp}")

        for event in envelope.events:
            if isinstance(event, SubscriptionEvent):
                if self.verifier.verify(event.subscriptions):
                    report.subscription_checked = True
            elif isinstance(event, TickerEvent):
                for ticker in event.tickers:
                    self._route(ticker, report)

        return report

    def _route(self, ticker: Ticker, report: DispatchReport) -> None:
        handler = self.registry.lookup(ticker.product_id)
        if handler is None:
            self.stats.unroutable_events += 1
            report.unroutable.append(ticker.product_id)
            if self.unroutable_policy is UnroutablePolicy.ABORT:
                raise UnroutableEvent(ticker.product_id)
            logger.warning(f"[dispatcher] No handler for {ticker.product_id}, dropping ticker")
            return

        try:
            handler(ticker.model_copy(deep=True))
        except Exception as e:
            self.stats.handler_errors += 1
            report.handler_errors += 1
            logger.exception(f"[dispatcher] Handler for {ticker.product_id} failed: {e}")
            return

        self.stats.tickers_dispatched += 1
        report.delivered += 1
