"""Tests for EventBus."""

from __future__ import annotations

import logging

from nodepulse.client.bus import EventBus


class TestSubscription:
    def test_emit_without_handlers_is_noop(self):
        EventBus().emit("metric", 1)

    def test_handlers_run_in_registration_order(self):
        bus = EventBus()
        calls: list[str] = []
        bus.on("metric", lambda p: calls.append(f"a:{p}"))
        bus.on("metric", lambda p: calls.append(f"b:{p}"))

        bus.emit("metric", 1)
        assert calls == ["a:1", "b:1"]

    def test_duplicate_registration_is_ignored(self):
        bus = EventBus()
        calls: list[object] = []
        bus.on("nodes", calls.append)
        bus.on("nodes", calls.append)

        bus.emit("nodes", ["NYC"])
        assert calls == [["NYC"]]
        assert bus.handler_count("nodes") == 1

    def test_off_removes_handler(self):
        bus = EventBus()
        calls: list[object] = []
        bus.on("mode", calls.append)
        bus.off("mode", calls.append)

        bus.emit("mode", "FLAP")
        assert calls == []

    def test_off_unknown_handler_is_noop(self):
        bus = EventBus()
        bus.off("mode", print)
        assert bus.handler_count("mode") == 0

    def test_events_are_independent(self):
        bus = EventBus()
        calls: list[object] = []
        bus.on("open", calls.append)

        bus.emit("close")
        assert calls == []
        assert bus.events() == ["open"]

    def test_payload_defaults_to_none(self):
        bus = EventBus()
        calls: list[object] = []
        bus.on("open", calls.append)

        bus.emit("open")
        assert calls == [None]


class TestDeliverySnapshot:
    def test_handler_added_during_emit_waits_for_next_event(self):
        bus = EventBus()
        late: list[object] = []

        def subscribe_late(payload: object) -> None:
            bus.on("metric", late.append)

        bus.on("metric", subscribe_late)
        bus.emit("metric", 1)
        assert late == []

        bus.emit("metric", 2)
        assert late == [2]

    def test_handler_removed_during_emit_still_runs_once(self):
        bus = EventBus()
        calls: list[object] = []

        def unsubscribe(payload: object) -> None:
            bus.off("metric", calls.append)

        bus.on("metric", unsubscribe)
        bus.on("metric", calls.append)

        bus.emit("metric", 1)
        bus.emit("metric", 2)
        assert calls == [1]


class TestHandlerFailures:
    def test_failing_handler_does_not_stop_delivery(self, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("nodepulse"), "propagate", True)
        bus = EventBus()
        calls: list[object] = []

        def broken(payload: object) -> None:
            raise ValueError("broken handler")

        bus.on("metric", broken)
        bus.on("metric", calls.append)

        with caplog.at_level(logging.ERROR, logger="nodepulse"):
            bus.emit("metric", 7)

        assert calls == [7]
        assert "broken handler" in caplog.text
