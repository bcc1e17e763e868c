"""
Test Configuration
==================

Pytest fixtures and test configuration for the relay.
"""

import pytest


RELAY_ENV_VARS = (
    "ESP32_MJPEG_URL",
    "CAMERA_THROTTLE_MS",
    "RELAY_CONNECT_TIMEOUT",
    "RELAY_WS_PORT",
    "RELAY_SUBSCRIBER_QUEUE",
    "RELAY_PORT",
    "PORT",
    "RELAY_LOG_LEVEL",
    "RELAY_CONFIG_PATH",
)


@pytest.fixture(autouse=True)
def clean_relay_env(monkeypatch):
    """Keep the host environment out of configuration tests."""
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_jpeg():
    """
    Factory for fake JPEG images.

    The body never contains 0xFF, so the only markers are the
    leading FF D8 and the trailing FF D9.
    """
    def _make(body_size: int = 64, seed: int = 0) -> bytes:
        body = bytes((seed + i) % 0xFF for i in range(body_size))
        return b"\xff\xd8" + body + b"\xff\xd9"

    return _make


@pytest.fixture
def sample_jpeg(make_jpeg):
    """Provide one small fake JPEG."""
    return make_jpeg(32)
