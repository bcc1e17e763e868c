"""
Subscriber Handle
=================

Transport-independent handle for one live subscriber.

This module provides:
    - SubscriberState: explicit liveness state set by the transport hooks
    - SubscriberOutbox: bounded queue of pending payloads (drops oldest)
    - Subscriber: identity-hashed handle with a non-blocking send

Design Rules:
    - send() never blocks and never awaits
    - A full outbox drops its oldest payload, so a slow subscriber only
      ever falls behind by at most maxsize frames
    - The handle does NOT own the socket; the transport drains the outbox
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Optional

from mjpeg_relay.errors import SendError


logger = logging.getLogger(__name__)


_subscriber_ids = itertools.count(1)


class SubscriberState(str, Enum):
    """
    Liveness of a subscriber as reported by the transport.

    Attributes:
        OPEN: Connected, frames may be queued
        CLOSED: Disconnected, sends are refused
    """

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SubscriberOutbox:
    """
    Bounded payload queue with a drop-oldest policy.

    Sits between the broadcaster (producer, synchronous) and the
    transport writer (consumer, async).

    Attributes:
        maxsize: Maximum number of payloads held
        dropped_count: Payloads discarded to make room
    """

    def __init__(self, maxsize: int = 2) -> None:
        """
        Initialize outbox.

        Args:
            maxsize: Maximum payloads to hold. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum outbox size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of queued payloads."""
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Number of payloads dropped due to overflow."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        """Total payloads ever queued."""
        return self._total_put

    def put_nowait(self, payload: bytes) -> bool:
        """
        Queue a payload, dropping the oldest one if full.

        Returns:
            True if nothing was dropped, False if the oldest payload
            was discarded to make room.
        """
        self._total_put += 1
        dropped = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
                dropped = True
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(payload)
        return not dropped

    async def get(self) -> bytes:
        """Wait for the next payload."""
        return await self._queue.get()

    def clear(self) -> int:
        """
        Drop all queued payloads.

        Returns:
            Number of payloads cleared.
        """
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared


class Subscriber:
    """
    One connected frame consumer.

    Subscribers compare and hash by identity so that two connections from
    the same address are still distinct registry entries.

    Attributes:
        subscriber_id: Process-unique id for logging
        remote_address: Peer address as reported by the transport
        state: OPEN or CLOSED, written only by the transport hooks
        outbox: Pending payloads waiting for the transport writer
        sent_count: Payloads accepted by send()

    Example:
        subscriber = Subscriber(remote_address="10.0.0.7:51234")
        subscriber.mark_open()
        subscriber.send(frame.data)
        payload = await subscriber.outbox.get()
    """

    def __init__(
        self,
        remote_address: str = "unknown",
        queue_size: int = 2,
        subscriber_id: Optional[int] = None,
    ) -> None:
        self.subscriber_id = (
            subscriber_id if subscriber_id is not None else next(_subscriber_ids)
        )
        self.remote_address = remote_address
        self.state = SubscriberState.CLOSED
        self.outbox = SubscriberOutbox(maxsize=queue_size)
        self.sent_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.state is SubscriberState.OPEN

    def mark_open(self) -> None:
        """Transport hook: connection established."""
        self.state = SubscriberState.OPEN

    def mark_closed(self) -> None:
        """Transport hook: connection gone. Pending payloads are dropped."""
        self.state = SubscriberState.CLOSED
        self.outbox.clear()

    def send(self, payload: bytes) -> None:
        """
        Queue a payload without blocking.

        Args:
            payload: Binary message to deliver

        Raises:
            SendError: If the subscriber is closed
        """
        if self.state is not SubscriberState.OPEN:
            raise SendError(f"Subscriber {self.subscriber_id} is closed")

        if not self.outbox.put_nowait(payload):
            logger.debug(
                f"Subscriber {self.subscriber_id} lagging, dropped oldest frame "
                f"(total dropped: {self.outbox.dropped_count})"
            )
        self.sent_count += 1

    def __repr__(self) -> str:
        return (
            f"Subscriber(id={self.subscriber_id}, "
            f"remote={self.remote_address}, "
            f"state={self.state.value})"
        )
