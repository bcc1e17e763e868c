"""
Frame Throttle
==============

Latest-wins rate limiter between the extractor and the broadcaster.

A frame is admitted when at least min_interval_ms have passed since the
last admitted frame. Rejected frames are dropped for good; nothing is
queued or replayed.
"""

import logging
from typing import Optional

from mjpeg_relay.stream.frame import Frame


logger = logging.getLogger(__name__)


class Throttler:
    """
    Stateful admission gate.

    Attributes:
        min_interval_ms: Minimum spacing between admitted frames
        last_admitted_ms: Timestamp of the last admission, None if never
        admitted: Number of frames admitted
        dropped: Number of frames rejected
    """

    def __init__(self, min_interval_ms: float) -> None:
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")

        self.min_interval_ms = min_interval_ms
        self.last_admitted_ms: Optional[float] = None
        self.admitted: int = 0
        self.dropped: int = 0

    def reset(self) -> None:
        """Forget the last admission so the next frame always passes."""
        self.last_admitted_ms = None

    def admit(self, frame: Frame, now_ms: float) -> bool:
        """
        Decide whether a frame may pass downstream.

        Args:
            frame: Candidate frame
            now_ms: Current time in milliseconds

        Returns:
            True if the frame is admitted, False if it is dropped.
        """
        if (
            self.last_admitted_ms is None
            or now_ms - self.last_admitted_ms >= self.min_interval_ms
        ):
            self.last_admitted_ms = now_ms
            self.admitted += 1
            return True

        self.dropped += 1
        return False

    def metrics(self) -> dict:
        """Export throttle counters."""
        return {
            "min_interval_ms": self.min_interval_ms,
            "admitted": self.admitted,
            "dropped": self.dropped,
        }
