"""Tests for the event bus."""

from tally.events import ALL_EVENTS, STATUS_CHANGED, TIER_CHANGED, Event, EventBus, RecordingHandler


def test_emit_reaches_typed_and_wildcard_handlers():
    bus = EventBus()
    typed, everything = RecordingHandler(), RecordingHandler()
    bus.subscribe(STATUS_CHANGED, typed)
    bus.subscribe(ALL_EVENTS, everything)

    assert bus.emit(Event(STATUS_CHANGED, recipient_id="u1")) == 2
    assert bus.emit(Event(TIER_CHANGED, recipient_id="u1")) == 1

    assert [e.type for e in typed.events] == [STATUS_CHANGED]
    assert [e.type for e in everything.events] == [STATUS_CHANGED, TIER_CHANGED]


def test_failing_handler_is_isolated():
    bus = EventBus()
    survivor = RecordingHandler()

    def broken(event):
        raise ValueError("boom")

    bus.subscribe(STATUS_CHANGED, broken)
    bus.subscribe(STATUS_CHANGED, survivor)

    assert bus.emit(Event(STATUS_CHANGED)) == 1
    assert len(survivor.events) == 1


def test_unsubscribe():
    bus = EventBus()
    handler = RecordingHandler()
    bus.subscribe(STATUS_CHANGED, handler)
    bus.unsubscribe(STATUS_CHANGED, handler)
    bus.unsubscribe(STATUS_CHANGED, handler)

    assert bus.emit(Event(STATUS_CHANGED)) == 0
    assert handler.events == []
