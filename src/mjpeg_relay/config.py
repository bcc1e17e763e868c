"""
Relay Configuration
===================

This module handles configuration loading for the relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    ESP32_MJPEG_URL         -> upstream.url
    RELAY_CONNECT_TIMEOUT   -> upstream.connect_timeout_seconds
    CAMERA_THROTTLE_MS      -> upstream.min_frame_interval_ms
    RELAY_WS_PORT           -> broadcast.port
    RELAY_SUBSCRIBER_QUEUE  -> broadcast.subscriber_queue_size
    RELAY_PORT              -> server.port
    PORT                    -> server.port (takes precedence)
    RELAY_LOG_LEVEL         -> logging.level
    RELAY_CONFIG_PATH       -> config file location

Example:
    from mjpeg_relay.config import settings

    print(settings.upstream.url)
    print(settings.broadcast.port)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


DEFAULT_UPSTREAM_URL = "http://192.168.0.109:81/stream"
DEFAULT_FRAME_INTERVAL_MS = 100  # 10 FPS


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="mjpeg-relay", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class UpstreamConfig(BaseModel):
    """Upstream camera stream configuration."""

    url: str = Field(
        default=DEFAULT_UPSTREAM_URL,
        description="HTTP URL of the MJPEG camera stream",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for establishing the upstream connection",
    )
    min_frame_interval_ms: int = Field(
        default=DEFAULT_FRAME_INTERVAL_MS,
        ge=0,
        description="Minimum milliseconds between relayed frames",
    )


class BroadcastConfig(BaseModel):
    """Subscriber fan-out configuration."""

    host: str = Field(default="0.0.0.0", description="WebSocket bind host")
    port: int = Field(default=3001, ge=0, le=65535, description="WebSocket bind port")
    subscriber_queue_size: int = Field(
        default=2,
        ge=1,
        description="Frames queued per subscriber before the oldest is dropped",
    )


class ServerConfig(BaseModel):
    """HTTP control plane configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the relay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, uses RELAY_CONFIG_PATH
            or searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("RELAY_CONFIG_PATH")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _positive_int(raw: str) -> Optional[int]:
    """Parse a positive integer, None if the value is unusable."""
    try:
        value = int(float(raw))
    except (ValueError, OverflowError):
        return None
    return value if value > 0 else None


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Upstream settings
    if env_url := os.environ.get("ESP32_MJPEG_URL"):
        config_data.setdefault("upstream", {})["url"] = env_url
    if env_timeout := os.environ.get("RELAY_CONNECT_TIMEOUT"):
        config_data.setdefault("upstream", {})["connect_timeout_seconds"] = float(env_timeout)
    if env_throttle := os.environ.get("CAMERA_THROTTLE_MS"):
        interval = _positive_int(env_throttle)
        if interval is not None:
            config_data.setdefault("upstream", {})["min_frame_interval_ms"] = interval
        else:
            logger.warning(f"Ignoring invalid CAMERA_THROTTLE_MS={env_throttle!r}")

    # Broadcast settings
    if env_ws_port := os.environ.get("RELAY_WS_PORT"):
        config_data.setdefault("broadcast", {})["port"] = int(env_ws_port)
    if env_queue := os.environ.get("RELAY_SUBSCRIBER_QUEUE"):
        config_data.setdefault("broadcast", {})["subscriber_queue_size"] = int(env_queue)

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
