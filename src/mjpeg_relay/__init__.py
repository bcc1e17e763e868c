"""
mjpeg-relay
===========

Relays a single MJPEG camera stream to any number of WebSocket subscribers.

The relay reads the camera's HTTP stream, cuts JPEG frames out of it by
their start/end markers, rate-limits them and pushes each admitted frame
as one binary WebSocket message to every connected subscriber.

Components:
    - stream: extraction, throttling, fan-out and upstream reconnection
    - relay: the Relay object tying the pipeline together
    - main: FastAPI control plane owning the Relay lifecycle

Example:
    from mjpeg_relay.relay import Relay

    relay = Relay(upstream_url="http://192.168.0.109:81/stream")
    await relay.start()
    ...
    await relay.stop()
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
