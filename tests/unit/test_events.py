"""Tests for photobooth.core.events — the in-process event channel."""

from __future__ import annotations

from photobooth.core.events import PHOTO_ADDED, PHOTOS_CLEARED, EventBus, NullSink


class TestEventBus:
    """Verify subscription and fan-out."""

    def test_publish_reaches_subscribers_in_order(self):
        """Subscribers are called in subscription order with name and payload."""
        bus = EventBus()
        calls = []
        bus.subscribe(lambda name, payload: calls.append(("first", name, payload)))
        bus.subscribe(lambda name, payload: calls.append(("second", name, payload)))

        bus.publish(PHOTO_ADDED, {"filename": "a.jpg"})

        assert calls == [
            ("first", PHOTO_ADDED, {"filename": "a.jpg"}),
            ("second", PHOTO_ADDED, {"filename": "a.jpg"}),
        ]

    def test_missing_payload_is_empty_dict(self):
        """Publishing without a payload delivers {}."""
        bus = EventBus()
        seen = []
        bus.subscribe(lambda name, payload: seen.append(payload))
        bus.publish(PHOTOS_CLEARED)
        assert seen == [{}]

    def test_failing_subscriber_is_isolated(self):
        """A subscriber raising must not stop delivery or reach the publisher."""
        bus = EventBus()
        seen = []

        def broken(name, payload):
            raise RuntimeError("socket closed")

        bus.subscribe(broken)
        bus.subscribe(lambda name, payload: seen.append(name))

        bus.publish(PHOTO_ADDED, {})
        assert seen == [PHOTO_ADDED]

    def test_unsubscribe(self):
        """An unsubscribed callback receives nothing further."""
        bus = EventBus()
        seen = []
        callback = bus.subscribe(lambda name, payload: seen.append(name))
        bus.unsubscribe(callback)
        bus.unsubscribe(callback)
        bus.publish(PHOTO_ADDED, {})
        assert seen == []


def test_null_sink_accepts_events():
    """NullSink.publish is a no-op."""
    NullSink().publish(PHOTO_ADDED, {"filename": "a.jpg"})
