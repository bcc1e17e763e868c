"""
Subscriber Registry and Handle Tests
====================================
"""

import threading

import pytest

from mjpeg_relay.errors import SendError
from mjpeg_relay.stream import (
    Subscriber,
    SubscriberOutbox,
    SubscriberRegistry,
    SubscriberState,
)


def open_subscriber(**kwargs) -> Subscriber:
    subscriber = Subscriber(**kwargs)
    subscriber.mark_open()
    return subscriber


class TestSubscriberOutbox:
    """Bounded drop-oldest queue."""

    def test_drops_oldest_when_full(self):
        outbox = SubscriberOutbox(maxsize=2)

        assert outbox.put_nowait(b"a")
        assert outbox.put_nowait(b"b")
        assert not outbox.put_nowait(b"c")

        assert outbox.size == 2
        assert outbox.dropped_count == 1
        assert outbox.total_put == 3
        assert outbox._queue.get_nowait() == b"b"
        assert outbox._queue.get_nowait() == b"c"

    def test_clear(self):
        outbox = SubscriberOutbox(maxsize=3)
        outbox.put_nowait(b"a")
        outbox.put_nowait(b"b")

        assert outbox.clear() == 2
        assert outbox.size == 0

    def test_maxsize_validated(self):
        with pytest.raises(ValueError):
            SubscriberOutbox(maxsize=0)


class TestSubscriber:
    """Handle state and non-blocking send."""

    def test_starts_closed(self):
        subscriber = Subscriber()
        assert subscriber.state is SubscriberState.CLOSED
        assert not subscriber.is_open

    def test_send_when_open_queues_payload(self):
        subscriber = open_subscriber(queue_size=4)
        subscriber.send(b"frame")

        assert subscriber.outbox.size == 1
        assert subscriber.sent_count == 1

    def test_send_when_closed_raises(self):
        subscriber = Subscriber()
        with pytest.raises(SendError):
            subscriber.send(b"frame")

    def test_send_never_blocks_on_slow_subscriber(self):
        subscriber = open_subscriber(queue_size=1)
        for i in range(100):
            subscriber.send(bytes([i]))

        assert subscriber.outbox.size == 1
        assert subscriber.outbox.dropped_count == 99

    def test_mark_closed_drops_pending(self):
        subscriber = open_subscriber(queue_size=4)
        subscriber.send(b"a")
        subscriber.mark_closed()

        assert subscriber.state is SubscriberState.CLOSED
        assert subscriber.outbox.size == 0

    def test_identity_semantics(self):
        a = Subscriber(remote_address="10.0.0.1:5000")
        b = Subscriber(remote_address="10.0.0.1:5000")

        assert a != b
        assert len({a, b}) == 2
        assert a.subscriber_id != b.subscriber_id


class TestSubscriberRegistry:
    """Copy-on-write subscriber set."""

    def test_add_remove(self):
        registry = SubscriberRegistry()
        subscriber = open_subscriber()

        registry.add(subscriber)
        registry.add(subscriber)
        assert len(registry) == 1
        assert subscriber in registry

        registry.remove(subscriber)
        registry.remove(subscriber)
        assert len(registry) == 0

    def test_snapshot_contains_only_open(self):
        registry = SubscriberRegistry()
        live = open_subscriber()
        gone = open_subscriber()
        registry.add(live)
        registry.add(gone)

        gone.mark_closed()

        assert registry.snapshot() == frozenset({live})
        # Closed but not yet disconnected subscribers stay registered
        assert len(registry) == 2

    def test_snapshot_is_isolated_from_later_mutation(self):
        registry = SubscriberRegistry()
        first = open_subscriber()
        registry.add(first)

        snapshot = registry.snapshot()
        registry.add(open_subscriber())
        registry.remove(first)

        assert snapshot == frozenset({first})

    def test_concurrent_mutation_and_snapshot(self):
        registry = SubscriberRegistry()
        errors = []
        stop = threading.Event()

        def churn():
            while not stop.is_set():
                subscriber = open_subscriber()
                registry.add(subscriber)
                registry.remove(subscriber)

        def read():
            try:
                for _ in range(2000):
                    for subscriber in registry.snapshot():
                        assert subscriber.is_open or subscriber.state is SubscriberState.CLOSED
            except Exception as e:
                errors.append(e)

        writers = [threading.Thread(target=churn) for _ in range(4)]
        readers = [threading.Thread(target=read) for _ in range(2)]
        for t in writers + readers:
            t.start()
        for t in readers:
            t.join()
        stop.set()
        for t in writers:
            t.join()

        assert errors == []
        assert len(registry) == 0
