"""
Frame Broadcaster
=================

Fans one admitted frame out to every open subscriber.

Design Rules:
    - Reads a registry snapshot taken at call time; later joiners miss it
    - A failing subscriber is logged and skipped, never removed
    - Never raises into the ingestion pipeline
"""

import logging

from mjpeg_relay.stream.frame import Frame
from mjpeg_relay.stream.registry import SubscriberRegistry


logger = logging.getLogger(__name__)


class Broadcaster:
    """
    Best-effort fan-out over a SubscriberRegistry.

    Attributes:
        registry: Registry shared with the transport layer
        frames_broadcast: Frames passed to broadcast()
        deliveries: Successful per-subscriber sends
        send_failures: Per-subscriber sends that raised
    """

    def __init__(self, registry: SubscriberRegistry) -> None:
        self.registry = registry
        self.frames_broadcast: int = 0
        self.deliveries: int = 0
        self.send_failures: int = 0

    def broadcast(self, frame: Frame) -> int:
        """
        Send a frame to all open subscribers.

        Args:
            frame: Frame to deliver as one binary message

        Returns:
            Number of subscribers the frame was handed to.
        """
        self.frames_broadcast += 1
        delivered = 0

        for subscriber in self.registry.snapshot():
            if not subscriber.is_open:
                continue
            try:
                subscriber.send(frame.data)
                delivered += 1
            except Exception as e:
                self.send_failures += 1
                logger.warning(f"Send to {subscriber} failed: {e}")

        self.deliveries += delivered
        return delivered

    def metrics(self) -> dict:
        """Export broadcast counters."""
        return {
            "subscribers": len(self.registry),
            "frames_broadcast": self.frames_broadcast,
            "deliveries": self.deliveries,
            "send_failures": self.send_failures,
        }
