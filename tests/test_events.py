"""Unit tests for the event emitter."""

import pytest

from image_compressor.events import EventEmitter, EventName, ResetEvent


class TestEventEmitter:
    """Test listener registration and delivery."""

    def test_listeners_run_in_order(self):
        events = EventEmitter()
        calls = []
        events.on("start", lambda p: calls.append(("first", p)))
        events.on(EventName.START, lambda p: calls.append(("second", p)))

        assert events.emit(EventName.START, 1) is True
        assert calls == [("first", 1), ("second", 1)]

    def test_emit_without_listeners(self):
        assert EventEmitter().emit("success", None) is False

    def test_decorator_registration(self):
        events = EventEmitter()
        seen = []

        @events.on("reset")
        def handle(payload):
            seen.append(payload.message)

        events.emit("reset", ResetEvent(message="done"))
        assert seen == ["done"]
        assert handle is not None

    def test_once(self):
        events = EventEmitter()
        seen = []
        events.once("error", seen.append)
        events.emit("error", 1)
        events.emit("error", 2)
        assert seen == [1]
        assert events.listener_count("error") == 0

    def test_off(self):
        events = EventEmitter()
        seen = []
        events.on("progress", seen.append)
        events.off("progress", seen.append)
        events.emit("progress", 1)
        assert seen == []

    def test_listener_errors_propagate(self):
        events = EventEmitter()

        def broken(payload):
            raise RuntimeError("listener failed")

        events.on("init", broken)
        with pytest.raises(RuntimeError, match="listener failed"):
            events.emit("init", None)

    def test_remove_all_listeners(self):
        events = EventEmitter()
        events.on("start", print)
        events.on("error", print)
        events.remove_all_listeners("start")
        assert events.listener_count("start") == 0
        assert events.listener_count("error") == 1
        events.remove_all_listeners()
        assert events.listener_count("error") == 0
