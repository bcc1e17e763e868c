"""
Relay
=====

Owns the full pipeline for one upstream camera:

    UpstreamReader → FrameExtractor → Throttler → Broadcaster → subscribers
                                                       ↑
                         SubscriberServer ──── SubscriberRegistry

The Relay is an ordinary object. Whoever creates it (the FastAPI lifespan,
a script, a test) owns its lifecycle through start() and stop().
"""

import asyncio
import logging
from typing import Optional

from mjpeg_relay.config import Settings
from mjpeg_relay.stream import (
    Broadcaster,
    StreamOpener,
    SubscriberRegistry,
    SubscriberServer,
    Throttler,
    UpstreamReader,
)


logger = logging.getLogger(__name__)


# Seconds to wait for the reader task after stop() before cancelling it
READER_SHUTDOWN_TIMEOUT = 5.0


class Relay:
    """
    Camera stream relay.

    Attributes:
        registry: Connected subscribers
        server: WebSocket fan-out listener
        throttler: Frame rate gate
        broadcaster: Fan-out over the registry
        reader: Upstream reconnect loop
    """

    def __init__(
        self,
        upstream_url: str,
        min_frame_interval_ms: float = 100,
        broadcast_host: str = "0.0.0.0",
        broadcast_port: int = 3001,
        subscriber_queue_size: int = 2,
        connect_timeout: float = 10.0,
        open_stream: Optional[StreamOpener] = None,
    ) -> None:
        self.registry = SubscriberRegistry()
        self.server = SubscriberServer(
            self.registry,
            host=broadcast_host,
            port=broadcast_port,
            queue_size=subscriber_queue_size,
        )
        self.throttler = Throttler(min_interval_ms=min_frame_interval_ms)
        self.broadcaster = Broadcaster(self.registry)
        self.reader = UpstreamReader(
            url=upstream_url,
            throttler=self.throttler,
            broadcaster=self.broadcaster,
            connect_timeout=connect_timeout,
            open_stream=open_stream,
        )

        self._reader_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Relay":
        """Build a relay from loaded configuration."""
        return cls(
            upstream_url=settings.upstream.url,
            min_frame_interval_ms=settings.upstream.min_frame_interval_ms,
            broadcast_host=settings.broadcast.host,
            broadcast_port=settings.broadcast.port,
            subscriber_queue_size=settings.broadcast.subscriber_queue_size,
            connect_timeout=settings.upstream.connect_timeout_seconds,
        )

    @property
    def running(self) -> bool:
        return self._reader_task is not None and not self._reader_task.done()

    async def start(self) -> None:
        """Start the fan-out server and the upstream reader task."""
        if self.running:
            return

        await self.server.start()
        self._reader_task = asyncio.create_task(
            self.reader.run(),
            name="upstream_reader",
        )
        logger.info(f"Relay started: {self.reader.url} -> port {self.server.bound_port}")

    async def stop(self) -> None:
        """Stop reading upstream and close every subscriber connection."""
        logger.info("Relay stopping...")
        await self.reader.stop()

        if self._reader_task is not None:
            try:
                await asyncio.wait_for(self._reader_task, timeout=READER_SHUTDOWN_TIMEOUT)
            except asyncio.TimeoutError:
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass
            self._reader_task = None

        await self.server.stop()
        logger.info("Relay stopped")

    def metrics(self) -> dict:
        """Collect counters from every stage."""
        session = self.reader.session
        return {
            "reader_state": self.reader.state.value,
            "attempt": self.reader.attempt,
            "reader": self.reader.metrics.to_dict(),
            "extractor": session.extractor.metrics() if session else None,
            "throttle": self.throttler.metrics(),
            "broadcast": self.broadcaster.metrics(),
            "connections_total": self.server.connections_total,
        }
