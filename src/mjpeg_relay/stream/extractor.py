"""
Frame Extractor
===============

Stateful scanner that turns arbitrarily chunked upstream bytes into JPEG
frames using only the embedded start/end markers.

Scan rules (applied once per ingest call):
    1. Append the chunk to the accumulator
    2. Find the FIRST start marker (FF D8) and the FIRST end marker (FF D9)
       anywhere in the accumulator
    3. Both found and end > start: emit [start, end + 2), keep the tail
    4. Only start found: keep bytes from start onwards (cap 500 KiB)
    5. No start: keep waiting (cap 100 KiB)

Design Rules:
    - At most one frame per ingest call
    - Never raises; malformed input is handled by resetting the accumulator
    - The end marker search is not restricted to bytes after the start
      marker. An end marker that precedes the start marker simply delays
      emission until the next ingest call.
"""

import logging
from typing import List

from mjpeg_relay.stream.frame import Frame


logger = logging.getLogger(__name__)


START_MARKER = b"\xff\xd8"
END_MARKER = b"\xff\xd9"

# Accumulator caps
MAX_PARTIAL_FRAME_BYTES = 500 * 1024
MAX_GARBAGE_BYTES = 100 * 1024


class FrameExtractor:
    """
    Marker-based JPEG frame scanner.

    One extractor belongs to exactly one upstream session. A reconnect
    must create a new extractor so that no bytes leak across sessions.

    Attributes:
        session_id: Session the emitted frames are tagged with
        frames_emitted: Number of frames emitted so far
        partial_resets: Times an unterminated frame exceeded the cap
        garbage_resets: Times markerless data exceeded the cap

    Example:
        extractor = FrameExtractor()
        for chunk in chunks:
            for frame in extractor.ingest(chunk):
                handle(frame)
    """

    def __init__(
        self,
        session_id: int = 0,
        max_partial_bytes: int = MAX_PARTIAL_FRAME_BYTES,
        max_garbage_bytes: int = MAX_GARBAGE_BYTES,
    ) -> None:
        self.session_id = session_id
        self.max_partial_bytes = max_partial_bytes
        self.max_garbage_bytes = max_garbage_bytes

        self._buffer = bytearray()
        self.frames_emitted: int = 0
        self.partial_resets: int = 0
        self.garbage_resets: int = 0

    @property
    def pending(self) -> int:
        """Bytes held in the accumulator, not yet resolved into a frame."""
        return len(self._buffer)

    def reset(self) -> None:
        """Drop all accumulated bytes."""
        self._buffer = bytearray()

    def ingest(self, chunk: bytes) -> List[Frame]:
        """
        Feed one chunk of upstream bytes.

        Args:
            chunk: Raw bytes as received from the upstream connection

        Returns:
            List with the extracted frame, or an empty list.
        """
        self._buffer += chunk
        buf = self._buffer

        start = buf.find(START_MARKER)
        end = buf.find(END_MARKER)

        if start != -1 and end != -1 and end > start:
            stop = end + len(END_MARKER)
            frame = Frame(
                data=bytes(buf[start:stop]),
                session_id=self.session_id,
                sequence=self.frames_emitted,
            )
            self.frames_emitted += 1
            self._buffer = buf[stop:]
            return [frame]

        if start != -1:
            # Unterminated frame, discard leading bytes
            self._buffer = buf[start:]
            if len(self._buffer) > self.max_partial_bytes:
                self._buffer = bytearray()
                self.partial_resets += 1
                logger.debug("Reset buffer: partial frame too large")
        elif len(buf) > self.max_garbage_bytes:
            self._buffer = bytearray()
            self.garbage_resets += 1
            logger.debug("Reset buffer: no frame markers found")

        return []

    def metrics(self) -> dict:
        """
        Get extractor metrics for observability.

        Returns:
            Dict with pending bytes, frames emitted and reset counters
        """
        return {
            "pending_bytes": self.pending,
            "frames_emitted": self.frames_emitted,
            "partial_resets": self.partial_resets,
            "garbage_resets": self.garbage_resets,
        }
