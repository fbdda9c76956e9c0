"""
Sequence continuity check for one connection.
"""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger("sequence_tracker")


class SequenceStatus(str, Enum):
    ACCEPT = "accept"
    REGRESSED = "regressed"
    GAPPED = "gapped"


class SequenceTracker:
    """Tracks the last sequence number seen on a connection.

    State starts at 0, so a first envelope of 0 or 1 is ACCEPT. After that each
    envelope must be exactly one ahead of the previous one:

    - ``n <= last`` is REGRESSED (duplicates included); state is unchanged and
      the caller must discard the envelope.
    - ``n == last + 1`` is ACCEPT.
    - ``n > last + 1`` is GAPPED: messages were lost, but the stream moves on
      and the state advances to ``n``.

    A first envelope above 1 is GAPPED for the same reason.

    Not thread-safe; owned by the single task driving the receive loop.
    """

    def __init__(self):
        self._last: Optional[int] = None

    @property
    def last_sequence(self) -> Optional[int]:
        return self._last

    def check(self, sequence_num: int) -> SequenceStatus:
        last = self._last

        if last is None:
            self._last = sequence_num
            if sequence_num <= 1:
                return SequenceStatus.ACCEPT
            logger.debug(f"[sequence] First message at {sequence_num}, expected 0 or 1")
            return SequenceStatus.GAPPED

        if sequence_num <= last:
            return SequenceStatus.REGRESSED

        self._last = sequence_num
        if sequence_num != last + 1:
            return SequenceStatus.GAPPED
        return SequenceStatus.ACCEPT
