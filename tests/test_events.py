from __future__ import annotations

from clubify_checkout.events import EventDispatcher


def test_listeners_run_by_priority_then_registration_order():
    events = EventDispatcher()
    order: list[str] = []
    events.listen("order.created", lambda event: order.append("low"), priority=-5)
    events.listen("order.created", lambda event: order.append("first"))
    events.listen("order.created", lambda event: order.append("high"), priority=10)
    events.listen("order.created", lambda event: order.append("second"))

    event = events.emit("order.created", {"resource_id": "o1"})

    assert order == ["high", "first", "second", "low"]
    assert event.name == "order.created"
    assert event.data == {"resource_id": "o1"}


def test_wildcard_listener_sees_every_event_after_specific_ones():
    events = EventDispatcher()
    seen: list[str] = []
    events.listen("*", lambda event: seen.append(f"any:{event.name}"))
    events.listen("payment.refunded", lambda event: seen.append("specific"))

    events.emit("payment.refunded")
    events.emit("order.updated")

    assert seen == ["specific", "any:payment.refunded", "any:order.updated"]
    assert events.has_listeners("anything") is True


def test_stop_propagation_skips_remaining_listeners():
    events = EventDispatcher()
    seen: list[str] = []

    def _stopper(event):
        seen.append("stopper")
        event.stop_propagation()

    events.listen("order.cancelled", _stopper, priority=1)
    events.listen("order.cancelled", lambda event: seen.append("late"))

    assert events.emit("order.cancelled").stopped is True
    assert seen == ["stopper"]


def test_remove_listener():
    events = EventDispatcher()
    calls = []

    def _listener(event):
        calls.append(event.name)

    events.listen("order.created", _listener)
    events.remove_listener("order.created", _listener)
    events.emit("order.created")

    assert calls == []
    assert events.has_listeners("order.created") is False


def test_listener_errors_propagate():
    events = EventDispatcher()

    def _broken(event):
        raise ValueError("listener bug")

    events.listen("order.created", _broken)
    try:
        events.emit("order.created")
    except ValueError as exc:
        assert "listener bug" in str(exc)
    else:
        raise AssertionError("Expected listener error to propagate")


def test_emit_copies_payload():
    events = EventDispatcher()
    payload = {"id": "o1"}
    event = events.emit("order.created", payload)
    event.data["id"] = "changed"
    assert payload == {"id": "o1"}
