"""
Stream Module
=============

Upstream ingestion, frame extraction and subscriber fan-out.

This module provides the relay pipeline components:
    - Frame: Immutable JPEG frame
    - FrameExtractor: Marker-based scanner over chunked bytes
    - Throttler: Latest-wins rate limiter
    - Subscriber / SubscriberRegistry: Connected consumers
    - Broadcaster: Best-effort fan-out to open subscribers
    - SubscriberServer: WebSocket listener feeding the registry
    - UpstreamReader: HTTP client with reconnection

Example:
    from mjpeg_relay.stream import (
        Broadcaster, SubscriberRegistry, Throttler, UpstreamReader,
    )

    registry = SubscriberRegistry()
    reader = UpstreamReader(
        url="http://192.168.0.109:81/stream",
        throttler=Throttler(min_interval_ms=100),
        broadcaster=Broadcaster(registry),
    )
    task = asyncio.create_task(reader.run())
"""

from mjpeg_relay.stream.frame import Frame
from mjpeg_relay.stream.extractor import FrameExtractor, START_MARKER, END_MARKER
from mjpeg_relay.stream.throttle import Throttler
from mjpeg_relay.stream.subscriber import Subscriber, SubscriberOutbox, SubscriberState
from mjpeg_relay.stream.registry import SubscriberRegistry
from mjpeg_relay.stream.broadcaster import Broadcaster
from mjpeg_relay.stream.server import SubscriberServer
from mjpeg_relay.stream.reader import (
    ReaderState,
    StreamOpener,
    StreamSession,
    UpstreamReader,
    UpstreamReaderMetrics,
    error_backoff_ms,
)


__all__ = [
    "Frame",
    "FrameExtractor",
    "START_MARKER",
    "END_MARKER",
    "Throttler",
    "Subscriber",
    "SubscriberOutbox",
    "SubscriberState",
    "SubscriberRegistry",
    "Broadcaster",
    "SubscriberServer",
    "ReaderState",
    "StreamOpener",
    "StreamSession",
    "UpstreamReader",
    "UpstreamReaderMetrics",
    "error_backoff_ms",
]
