"""
Subscriber Registry
===================

Set of currently connected subscribers.

Mutations (connect/disconnect from the transport) are serialized by a lock
and publish a new immutable frozenset. Readers take the current frozenset
reference without locking, so a snapshot is never partially mutated.
"""

import logging
import threading
from typing import FrozenSet

from mjpeg_relay.stream.subscriber import Subscriber


logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """
    Copy-on-write subscriber set.

    The registry never probes liveness. Entries are removed only when the
    transport reports a disconnect.

    Example:
        registry = SubscriberRegistry()
        registry.add(subscriber)
        for sub in registry.snapshot():
            sub.send(payload)
        registry.remove(subscriber)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: FrozenSet[Subscriber] = frozenset()

    def add(self, subscriber: Subscriber) -> None:
        """Register a subscriber. Adding twice is a no-op."""
        with self._lock:
            self._subscribers = self._subscribers | {subscriber}
            count = len(self._subscribers)
        logger.debug(f"Registered {subscriber} ({count} total)")

    def remove(self, subscriber: Subscriber) -> None:
        """Unregister a subscriber. Unknown subscribers are ignored."""
        with self._lock:
            self._subscribers = self._subscribers - {subscriber}
            count = len(self._subscribers)
        logger.debug(f"Unregistered {subscriber} ({count} total)")

    def snapshot(self) -> FrozenSet[Subscriber]:
        """
        Get the subscribers that are open right now.

        Returns:
            Immutable set; later add/remove calls do not affect it.
        """
        current = self._subscribers
        return frozenset(sub for sub in current if sub.is_open)

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers
