"""
Relay Errors
============

Exception hierarchy for the relay.

    RelayError
    ├── UpstreamError
    │   ├── ConnectError      upstream connection could not be established
    │   └── StreamReadError   upstream failed mid-stream
    └── SendError             a frame could not be handed to one subscriber

Upstream errors never escape the reader's reconnect loop and send errors
never escape the broadcaster. They exist so both can log and count
failures by kind.
"""


class RelayError(Exception):
    """Base class for all relay errors."""
    pass


class UpstreamError(RelayError):
    """Raised when the upstream camera stream is unavailable."""
    pass


class ConnectError(UpstreamError):
    """Raised when the upstream connection cannot be opened."""
    pass


class StreamReadError(UpstreamError):
    """Raised when reading from an open upstream connection fails."""
    pass


class SendError(RelayError):
    """Raised when a payload cannot be queued for a subscriber."""
    pass
