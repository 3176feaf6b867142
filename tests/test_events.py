"""Tests for the event bus."""

import pytest

from worktree_lens.services.events import DIFF_LOADED, STATUS_UPDATED, EventBus


class TestEventBus:
    def test_publish_reaches_subscribers_in_order(self):
        bus = EventBus()
        received = []
        bus.subscribe(STATUS_UPDATED, lambda p: received.append(("first", p)))
        bus.subscribe(STATUS_UPDATED, lambda p: received.append(("second", p)))

        bus.publish(STATUS_UPDATED, 42)

        assert received == [("first", 42), ("second", 42)]

    def test_topics_are_separate(self):
        bus = EventBus()
        received = []
        bus.subscribe(DIFF_LOADED, received.append)
        bus.publish(STATUS_UPDATED, 1)
        assert received == []

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(STATUS_UPDATED, received.append)
        unsubscribe()
        unsubscribe()  # Second call is harmless
        bus.publish(STATUS_UPDATED, 1)
        assert received == []

    def test_failing_subscriber_is_isolated(self, caplog):
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(STATUS_UPDATED, broken)
        bus.subscribe(STATUS_UPDATED, received.append)
        bus.publish(STATUS_UPDATED, "payload")

        assert received == ["payload"]
        assert "boom" in caplog.text

    def test_unknown_topic(self):
        with pytest.raises(ValueError):
            EventBus().subscribe("no_such_topic", lambda p: None)
