"""
Upstream Reader
===============

HTTP client for the upstream MJPEG camera stream.

This module provides the UpstreamReader class which:
    - Opens a streaming GET on the camera URL
    - Feeds every received chunk through extractor -> throttle -> broadcast
    - Reconnects forever: 2s after a clean end, growing backoff after errors
    - Stops promptly on request, closing the active connection

State machine:
    IDLE → CONNECTING → STREAMING → {ENDED, FAILED} → CONNECTING → ...
    any state → STOPPED (on stop(), terminal)

Design Rules:
    - One StreamSession at a time, each with a fresh FrameExtractor
    - Chunks are processed one at a time, in arrival order
    - No error ever escapes run(); failures are logged and retried
    - The attempt counter is never reset, so the error backoff keeps
      growing over the process lifetime until it reaches the cap
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from enum import Enum
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

import httpx

from mjpeg_relay.errors import ConnectError, StreamReadError
from mjpeg_relay.stream.broadcaster import Broadcaster
from mjpeg_relay.stream.extractor import FrameExtractor
from mjpeg_relay.stream.throttle import Throttler


logger = logging.getLogger(__name__)


# Reconnect delays (milliseconds)
END_OF_STREAM_DELAY_MS = 2000
ERROR_BASE_DELAY_MS = 5000
ERROR_STEP_DELAY_MS = 1000
ERROR_MAX_DELAY_MS = 30000

DEFAULT_CONNECT_TIMEOUT = 10.0


ChunkStream = AsyncIterator[bytes]
StreamOpener = Callable[[], AsyncContextManager[ChunkStream]]


def error_backoff_ms(attempt: int) -> int:
    """
    Delay before reconnecting after a failed attempt.

    Args:
        attempt: Number of the attempt that failed (1-based)

    Returns:
        min(5000 + attempt * 1000, 30000)
    """
    return min(ERROR_BASE_DELAY_MS + attempt * ERROR_STEP_DELAY_MS, ERROR_MAX_DELAY_MS)


class ReaderState(str, Enum):
    """Lifecycle states of the UpstreamReader."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    ENDED = "ENDED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class StreamSession:
    """
    One upstream connection that reached STREAMING.

    Owns the extractor (and therefore the byte accumulator) for the
    lifetime of the connection.
    """

    __slots__ = ("session_id", "extractor", "started_at", "bytes_received", "chunks_received")

    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        self.extractor = FrameExtractor(session_id=session_id)
        self.started_at: float = time.time()
        self.bytes_received: int = 0
        self.chunks_received: int = 0


class UpstreamReaderMetrics:
    """Metrics for UpstreamReader observability."""

    __slots__ = (
        "attempts",
        "sessions",
        "clean_ends",
        "connect_errors",
        "read_errors",
        "bytes_received",
        "frames_extracted",
        "frames_admitted",
        "frames_throttled",
        "partial_resets",
        "garbage_resets",
        "last_error",
    )

    def __init__(self) -> None:
        self.attempts: int = 0
        self.sessions: int = 0
        self.clean_ends: int = 0
        self.connect_errors: int = 0
        self.read_errors: int = 0
        self.bytes_received: int = 0
        self.frames_extracted: int = 0
        self.frames_admitted: int = 0
        self.frames_throttled: int = 0
        self.partial_resets: int = 0
        self.garbage_resets: int = 0
        self.last_error: Optional[str] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class UpstreamReader:
    """
    Reconnecting reader for the upstream camera stream.

    Attributes:
        url: Upstream MJPEG URL
        throttler: Gate between extraction and broadcast
        broadcaster: Fan-out for admitted frames
        state: Current ReaderState
        attempt: Connection attempts made so far (never reset)
        metrics: Operational metrics

    Example:
        reader = UpstreamReader(
            url="http://192.168.0.109:81/stream",
            throttler=Throttler(min_interval_ms=100),
            broadcaster=Broadcaster(registry),
        )

        task = asyncio.create_task(reader.run())

        # Later
        await reader.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        throttler: Throttler,
        broadcaster: Broadcaster,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        open_stream: Optional[StreamOpener] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize upstream reader.

        Args:
            url: Upstream MJPEG URL
            throttler: Admission gate for extracted frames
            broadcaster: Receives admitted frames
            connect_timeout: Seconds allowed to establish the connection
            open_stream: Factory for the chunk stream. Defaults to an
                httpx streaming GET on url.
            clock: Monotonic clock in seconds, used for throttling
        """
        self.url = url
        self.throttler = throttler
        self.broadcaster = broadcaster
        self.connect_timeout = connect_timeout

        self._open_stream: StreamOpener = open_stream or self._open_http_stream
        self._clock = clock

        # State
        self.state: ReaderState = ReaderState.IDLE
        self.attempt: int = 0
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._session: Optional[StreamSession] = None
        self._session_task: Optional[asyncio.Task] = None

        # Metrics
        self.metrics = UpstreamReaderMetrics()

    @property
    def streaming(self) -> bool:
        """Whether a session is currently receiving data."""
        return self.state is ReaderState.STREAMING

    @property
    def session(self) -> Optional[StreamSession]:
        """The active session, if any."""
        return self._session

    async def run(self) -> None:
        """
        Connect and relay until stop() is called.

        Calling run() while already running returns immediately.
        """
        if self._running or self.state is ReaderState.STOPPED:
            return

        self._running = True
        self._stop_event.clear()

        while self._running:
            self.attempt += 1
            self.metrics.attempts = self.attempt
            self._set_state(ReaderState.CONNECTING)
            logger.info(f"Connecting to MJPEG stream: {self.url} (attempt {self.attempt})")

            self._session_task = asyncio.create_task(
                self._stream_once(),
                name=f"upstream_session_{self.attempt}",
            )
            try:
                await self._session_task
            except asyncio.CancelledError:
                if self._running:
                    # The run task itself was cancelled
                    self._session_task.cancel()
                    self._finish()
                    raise
                break
            except Exception as e:
                if not self._running:
                    break
                self._set_state(ReaderState.FAILED)
                self.metrics.last_error = str(e)
                delay_ms = error_backoff_ms(self.attempt)
                logger.error(
                    f"Error connecting/reading MJPEG stream: {e}; "
                    f"reconnecting in {delay_ms / 1000:.1f}s"
                )
            else:
                if not self._running:
                    break
                self._set_state(ReaderState.ENDED)
                self.metrics.clean_ends += 1
                delay_ms = END_OF_STREAM_DELAY_MS
                logger.warning(
                    f"MJPEG stream ended; reconnecting in {delay_ms / 1000:.0f}s"
                )
            finally:
                self._session = None
                self._session_task = None

            if await self._wait(delay_ms / 1000.0):
                break

        self._finish()

    async def stop(self) -> None:
        """
        Stop relaying.

        Signals the run loop to exit and closes the active connection.
        STOPPED is terminal: the reader cannot be restarted.
        """
        logger.info("UpstreamReader stopping...")
        self._running = False
        self._stop_event.set()

        if self._session_task is not None and not self._session_task.done():
            self._session_task.cancel()

        if self.state is ReaderState.IDLE:
            self._set_state(ReaderState.STOPPED)

    async def _wait(self, delay: float) -> bool:
        """
        Sleep between attempts.

        Returns:
            True if stop() was requested during the wait.
        """
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _stream_once(self) -> None:
        """Open one connection and consume it until it ends."""
        async with AsyncExitStack() as stack:
            try:
                chunks = await stack.enter_async_context(self._open_stream())
            except Exception as e:
                self.metrics.connect_errors += 1
                raise ConnectError(f"{type(e).__name__}: {e}") from e

            self.metrics.sessions += 1
            session = StreamSession(session_id=self.metrics.sessions)
            self._session = session
            # Each session admits its first frame
            self.throttler.reset()
            self._set_state(ReaderState.STREAMING)
            logger.info(f"Connected to MJPEG stream (session {session.session_id})")

            try:
                async for chunk in chunks:
                    if not self._running:
                        break
                    self._process_chunk(session, chunk)
            except Exception as e:
                self.metrics.read_errors += 1
                raise StreamReadError(f"{type(e).__name__}: {e}") from e
            finally:
                self.metrics.partial_resets += session.extractor.partial_resets
                self.metrics.garbage_resets += session.extractor.garbage_resets

    def _process_chunk(self, session: StreamSession, chunk: bytes) -> None:
        """Run one chunk through extract -> throttle -> broadcast."""
        session.chunks_received += 1
        session.bytes_received += len(chunk)
        self.metrics.bytes_received += len(chunk)

        for frame in session.extractor.ingest(chunk):
            self.metrics.frames_extracted += 1
            if self.throttler.admit(frame, self._clock() * 1000.0):
                self.metrics.frames_admitted += 1
                self.broadcaster.broadcast(frame)
            else:
                self.metrics.frames_throttled += 1

    def http_timeout(self) -> httpx.Timeout:
        """Connect timeout only; an MJPEG body never finishes, so no read timeout."""
        return httpx.Timeout(self.connect_timeout, read=None)

    @asynccontextmanager
    async def _open_http_stream(self) -> AsyncIterator[ChunkStream]:
        """Streaming GET on the upstream URL, yielding raw body chunks."""
        async with httpx.AsyncClient(timeout=self.http_timeout()) as client:
            async with client.stream("GET", self.url) as response:
                response.raise_for_status()
                yield response.aiter_raw()

    def _set_state(self, state: ReaderState) -> None:
        if state is not self.state:
            logger.debug(f"UpstreamReader {self.state.value} -> {state.value}")
            self.state = state

    def _finish(self) -> None:
        self._running = False
        self._set_state(ReaderState.STOPPED)
        logger.info("UpstreamReader stopped")
