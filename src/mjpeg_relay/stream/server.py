"""
Subscriber Server
=================

WebSocket listener that subscribers connect to for live frames.

Each connection gets a Subscriber handle. The server:
    - marks it OPEN and adds it to the registry on connect
    - drains its outbox onto the socket as binary messages
    - marks it CLOSED and removes it from the registry on disconnect

Design Rules:
    - Runs on its own port, separate from the HTTP control plane
    - Inbound messages from subscribers are read and discarded
    - Owned by the Relay; started and stopped with it
"""

import asyncio
import logging
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed

from mjpeg_relay.stream.registry import SubscriberRegistry
from mjpeg_relay.stream.subscriber import Subscriber


logger = logging.getLogger(__name__)


def _format_address(address) -> str:
    if not address:
        return "unknown"
    if isinstance(address, (tuple, list)) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address)


class SubscriberServer:
    """
    WebSocket fan-out endpoint.

    Attributes:
        registry: Registry that connected subscribers are added to
        host: Bind host
        port: Bind port (0 picks a free port, see bound_port)
        queue_size: Outbox size for each subscriber

    Example:
        server = SubscriberServer(registry, port=3001)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        host: str = "0.0.0.0",
        port: int = 3001,
        queue_size: int = 2,
    ) -> None:
        self.registry = registry
        self.host = host
        self.port = port
        self.queue_size = queue_size

        self._server = None
        self.connections_total: int = 0

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when port=0."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def start(self) -> None:
        """Start listening. Calling start() twice is a no-op."""
        if self._server is not None:
            return

        self._server = await websockets.serve(self._handle, self.host, self.port)
        logger.info(f"WebSocket server started on port {self.bound_port}")

    async def stop(self) -> None:
        """Close the listener and all subscriber connections."""
        if self._server is None:
            return

        server = self._server
        self._server = None
        server.close()
        await server.wait_closed()
        logger.info("WebSocket server stopped")

    async def _handle(self, websocket) -> None:
        """Serve one subscriber connection until it closes."""
        address = _format_address(getattr(websocket, "remote_address", None))
        subscriber = Subscriber(remote_address=address, queue_size=self.queue_size)

        subscriber.mark_open()
        self.registry.add(subscriber)
        self.connections_total += 1
        logger.info(f"Client connected: {address}")

        writer = asyncio.create_task(
            self._write_loop(websocket, subscriber),
            name=f"subscriber_writer_{subscriber.subscriber_id}",
        )
        try:
            async for _ in websocket:
                pass
        except ConnectionClosed as e:
            logger.warning(f"WS client error ({address}): {e}")
        finally:
            subscriber.mark_closed()
            self.registry.remove(subscriber)
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"WS client error ({address}): {e}")
            logger.info(f"Client disconnected: {address}")

    async def _write_loop(self, websocket, subscriber: Subscriber) -> None:
        """Drain the subscriber's outbox onto the socket."""
        try:
            while subscriber.is_open:
                payload = await subscriber.outbox.get()
                await websocket.send(payload)
        except ConnectionClosed:
            pass
