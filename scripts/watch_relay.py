#!/usr/bin/env python3
"""
Relay Watch Script
==================

Standalone subscriber for checking a running relay end to end.

This script:
    1. Connects to the relay's WebSocket fan-out port
    2. Runs for a configurable duration
    3. Logs frame statistics every report interval
    4. Reports a final summary

Prerequisites:
    - The relay must be running and its upstream camera reachable

Usage:
    python scripts/watch_relay.py --duration 60
    python scripts/watch_relay.py --url ws://localhost:3001
"""

import argparse
import asyncio
import logging
import os
import sys
import time

import websockets
from websockets.exceptions import ConnectionClosed


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


class WatchStats:
    """Counters collected while watching."""

    def __init__(self) -> None:
        self.frames = 0
        self.bytes = 0
        self.malformed = 0
        self.disconnects = 0

    def record(self, message) -> None:
        if not isinstance(message, bytes):
            self.malformed += 1
            return
        self.frames += 1
        self.bytes += len(message)
        if not (message.startswith(b"\xff\xd8") and message.endswith(b"\xff\xd9")):
            self.malformed += 1


async def _receive(url: str, stats: WatchStats, stop: asyncio.Event) -> None:
    """Receive frames, reconnecting after disconnects until stopped."""
    while not stop.is_set():
        try:
            async with websockets.connect(url, max_size=None) as ws:
                logger.info(f"Subscribed to {url}")
                async for message in ws:
                    stats.record(message)
                    if stop.is_set():
                        break
        except (OSError, ConnectionClosed) as e:
            stats.disconnects += 1
            logger.warning(f"Connection lost: {e}; retrying in 2s")
            try:
                await asyncio.wait_for(stop.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                pass


async def run_watch(url: str, duration: int, report_interval: int) -> dict:
    """
    Watch the relay for a while.

    Args:
        url: WebSocket URL of the relay fan-out port
        duration: Watch duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final statistics dict
    """
    logger.info("=" * 60)
    logger.info(f"Watching relay: {url} for {duration}s")
    logger.info("=" * 60)

    stats = WatchStats()
    stop = asyncio.Event()
    receiver = asyncio.create_task(_receive(url, stats, stop))

    start_time = time.time()
    last_report_time = start_time
    last_frames = 0

    try:
        while time.time() - start_time < duration:
            await asyncio.sleep(0.5)

            since_report = time.time() - last_report_time
            if since_report >= report_interval:
                fps = (stats.frames - last_frames) / since_report
                logger.info(
                    f"Frames: {stats.frames}  FPS: {fps:.1f}  "
                    f"Malformed: {stats.malformed}  Disconnects: {stats.disconnects}"
                )
                last_report_time = time.time()
                last_frames = stats.frames
    finally:
        stop.set()
        receiver.cancel()
        try:
            await receiver
        except asyncio.CancelledError:
            pass

    total_time = time.time() - start_time
    avg_fps = stats.frames / total_time if total_time > 0 else 0
    avg_size = stats.bytes / stats.frames if stats.frames else 0

    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {stats.frames}")
    logger.info(f"Average FPS: {avg_fps:.1f}")
    logger.info(f"Average frame size: {avg_size / 1024:.1f} KiB")
    logger.info(f"Malformed messages: {stats.malformed}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames": stats.frames,
        "avg_fps": avg_fps,
        "malformed": stats.malformed,
        "disconnects": stats.disconnects,
    }


def main():
    parser = argparse.ArgumentParser(description="Watch a running MJPEG relay")
    parser.add_argument(
        "--url",
        type=str,
        default=f"ws://localhost:{os.environ.get('RELAY_WS_PORT', '3001')}",
        help="WebSocket URL of the relay fan-out port",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Watch duration in seconds (default: 60)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_watch(
        url=args.url,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames"] > 0 else 1)


if __name__ == "__main__":
    main()
