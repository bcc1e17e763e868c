"""
Frame Data Model
=================

Internal frame representation for the relay pipeline.

A Frame is produced by the FrameExtractor and consumed once by the
throttle and broadcast stages. It is never retained.

Design Rules:
    - This is the ONLY frame format passed between pipeline stages
    - Does NOT decode or validate the JPEG payload
    - data is exactly the bytes from the start marker through the end marker
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    JPEG frame extracted from the upstream byte stream.

    It is immutable (frozen) to prevent accidental modification while
    the same object is handed to many subscribers.

    Attributes:
        data: Raw JPEG bytes, start marker through end marker inclusive
        session_id: Upstream session the frame was extracted from
        sequence: Per-session frame counter, starting at 0
    """

    data: bytes
    session_id: int = 0
    sequence: int = 0

    @property
    def size(self) -> int:
        """Payload size in bytes."""
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(session_id={self.session_id}, "
            f"sequence={self.sequence}, "
            f"size={self.size})"
        )
