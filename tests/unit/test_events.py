"""Unit tests for change event models and dispatch."""

import pytest

from livesync.events import ChangeEvent, EventFilter, EventType, dispatch_event


class TestEventFilter:
    """Test EventFilter parsing and matching."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("*", EventFilter.ANY),
            ("any", EventFilter.ANY),
            ("INSERT", EventFilter.INSERT),
            ("update", EventFilter.UPDATE),
            (EventFilter.DELETE, EventFilter.DELETE),
        ],
    )
    def test_parse(self, raw, expected):
        """Test accepted filter spellings."""
        assert EventFilter.parse(raw) is expected

    def test_parse_unknown(self):
        """Test that unknown filters raise."""
        with pytest.raises(ValueError):
            EventFilter.parse("TRUNCATE")

    def test_matches(self):
        """Test filter matching."""
        assert EventFilter.ANY.matches(EventType.DELETE)
        assert EventFilter.UPDATE.matches(EventType.UPDATE)
        assert not EventFilter.INSERT.matches(EventType.UPDATE)

    def test_accepts_polled(self):
        """Test which filters receive polled records."""
        assert EventFilter.ANY.accepts_polled
        assert EventFilter.INSERT.accepts_polled
        assert EventFilter.UPDATE.accepts_polled
        assert not EventFilter.DELETE.accepts_polled


class TestChangeEvent:
    """Test ChangeEvent construction."""

    def test_synthesize(self):
        """Test the event built for polled records."""
        event = ChangeEvent.synthesize("widgets", {"id": 1})

        assert event.event_type is EventType.UPDATE
        assert event.after == {"id": 1}
        assert event.before is None
        assert event.synthesized

    @pytest.mark.parametrize(
        "payload",
        [
            {"eventType": "insert", "new": {"id": 1}},
            {"event_type": "INSERT", "after": {"id": 1}},
            {"type": "INSERT", "record": {"id": 1}},
        ],
    )
    def test_from_payload_shapes(self, payload):
        """Test the payload shapes transports commonly emit."""
        event = ChangeEvent.from_payload("widgets", payload)

        assert event.resource == "widgets"
        assert event.event_type is EventType.INSERT
        assert event.after == {"id": 1}
        assert event.before is None

    def test_from_payload_uses_channel_resource(self):
        """Test that the channel's resource wins over payload hints."""
        event = ChangeEvent.from_payload("widgets", {"type": "DELETE", "table": "other", "old": {"id": 1}})

        assert event.resource == "widgets"
        assert event.before == {"id": 1}
        assert event.after is None

    def test_from_payload_empty_images(self):
        """Test that empty record images are normalized to None."""
        event = ChangeEvent.from_payload("widgets", {"eventType": "DELETE", "new": {}, "old": {"id": 2}})

        assert event.after is None
        assert event.before == {"id": 2}

    @pytest.mark.parametrize("payload", [{"new": {"id": 1}}, {"eventType": "UPSERT"}])
    def test_from_payload_invalid(self, payload):
        """Test that payloads without a known event type raise."""
        with pytest.raises(ValueError):
            ChangeEvent.from_payload("widgets", payload)


class TestDispatch:
    """Test dispatch_event."""

    def test_delivers(self):
        """Test a successful delivery."""
        received = []
        event = ChangeEvent.synthesize("widgets", {"id": 1})

        assert dispatch_event(received.append, event, "poll")
        assert received == [event]

    def test_callback_error_contained(self):
        """Test that callback exceptions are reported, not raised."""
        def callback(event):
            raise KeyError("missing")

        assert not dispatch_event(callback, ChangeEvent.synthesize("widgets", {"id": 1}), "live")
