"""
Broadcaster Tests
=================

Fan-out scoping and per-subscriber failure isolation.
"""

from mjpeg_relay.errors import SendError
from mjpeg_relay.stream import Broadcaster, Frame, Subscriber, SubscriberRegistry


class BrokenSubscriber(Subscriber):
    """Subscriber whose transport always fails."""

    def send(self, payload: bytes) -> None:
        raise SendError("socket buffer unavailable")


def connect(registry, subscriber_cls=Subscriber) -> Subscriber:
    subscriber = subscriber_cls(queue_size=8)
    subscriber.mark_open()
    registry.add(subscriber)
    return subscriber


def received(subscriber):
    payloads = []
    while subscriber.outbox.size:
        payloads.append(subscriber.outbox._queue.get_nowait())
    return payloads


class TestBroadcast:
    """Delivery to the registry snapshot."""

    def test_delivers_to_all_open_subscribers(self, sample_jpeg):
        registry = SubscriberRegistry()
        subscribers = [connect(registry) for _ in range(3)]

        delivered = Broadcaster(registry).broadcast(Frame(data=sample_jpeg))

        assert delivered == 3
        for subscriber in subscribers:
            assert received(subscriber) == [sample_jpeg]

    def test_late_subscriber_misses_frame(self, sample_jpeg):
        registry = SubscriberRegistry()
        broadcaster = Broadcaster(registry)
        early = connect(registry)

        broadcaster.broadcast(Frame(data=sample_jpeg))
        late = connect(registry)

        assert received(early) == [sample_jpeg]
        assert received(late) == []

    def test_failure_does_not_stop_others(self, sample_jpeg):
        registry = SubscriberRegistry()
        broadcaster = Broadcaster(registry)
        healthy = [connect(registry) for _ in range(2)]
        broken = connect(registry, BrokenSubscriber)

        delivered = broadcaster.broadcast(Frame(data=sample_jpeg))

        assert delivered == 2
        assert broadcaster.send_failures == 1
        for subscriber in healthy:
            assert received(subscriber) == [sample_jpeg]
        # Failures never unregister; only the transport does
        assert broken in registry

    def test_closed_subscriber_skipped(self, sample_jpeg):
        registry = SubscriberRegistry()
        broadcaster = Broadcaster(registry)
        closed = connect(registry)
        closed.mark_closed()

        assert broadcaster.broadcast(Frame(data=sample_jpeg)) == 0
        assert broadcaster.send_failures == 0

    def test_no_subscribers(self, sample_jpeg):
        broadcaster = Broadcaster(SubscriberRegistry())
        assert broadcaster.broadcast(Frame(data=sample_jpeg)) == 0
        assert broadcaster.metrics() == {
            "subscribers": 0,
            "frames_broadcast": 1,
            "deliveries": 0,
            "send_failures": 0,
        }
