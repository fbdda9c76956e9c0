"""
Subscription acknowledgment reconciliation.
Checks the server's view of active subscriptions against the registered keys.
"""

import logging
from typing import Dict, FrozenSet, Iterable, List

from tickerfeed.config import DEFAULT_CHANNEL
from tickerfeed.errors import SubscriptionMismatch

logger = logging.getLogger("subscription_verifier")


class SubscriptionVerifier:
    """Verifies the first subscription acknowledgment on a connection."""

    def __init__(self, expected_keys: Iterable[str], channel: str = DEFAULT_CHANNEL):
        self.expected_keys: FrozenSet[str] = frozenset(expected_keys)
        self.channel = channel
        self._verified = False

    @property
    def verified(self) -> bool:
        return self._verified

    def verify(self, subscriptions: Dict[str, List[str]]) -> bool:
        """Reconcile an acknowledgment; returns False if one was already checked.

        Raises:
            SubscriptionMismatch: channel missing, key count differs, or a
                registered key is not subscribed.
        """
        if self._verified:
            logger.debug(f"[subscriptions] Ignoring later acknowledgment: {subscriptions}")
            return False

        if self.channel not in subscriptions:
            raise SubscriptionMismatch(
                f"Acknowledgment has no {self.channel!r} channel "
                f"(channels: {sorted(subscriptions)})",
                missing=list(self.expected_keys),
            )

        subscribed = subscriptions[self.channel]
        subscribed_set = set(subscribed)
        missing = self.expected_keys - subscribed_set
        unexpected = subscribed_set - self.expected_keys

        if len(subscribed) != len(self.expected_keys) or missing or unexpected:
            raise SubscriptionMismatch(
                f"Subscribed {len(subscribed)} keys on {self.channel!r}, "
                f"expected {len(self.expected_keys)}",
                missing=list(missing),
                unexpected=list(unexpected),
            )

        self._verified = True
        logger.info(
            f"[subscriptions] All subscriptions acknowledged "
            f"({len(subscribed)}/{len(self.expected_keys)})"
        )
        return True
