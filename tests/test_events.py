"""Tests for FormEvent serialization and EventEmitter dispatch."""

import json
from datetime import datetime, timezone

from formsmith.events import EventEmitter, FormEvent
from formsmith.types import EventType


def make_event(**overrides):
    defaults = {
        "event_id": "evt_1",
        "type": EventType.SUBMISSION_CREATED,
        "form_id": "form_1",
        "ts": datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    }
    defaults.update(overrides)
    return FormEvent(**defaults)


class TestFormEvent:
    """Immutable audit records."""

    def test_to_dict_omits_empty_optional_fields(self):
        assert make_event().to_dict() == {
            "eventId": "evt_1",
            "type": "submission.created",
            "formId": "form_1",
            "ts": "2025-01-02T03:04:05+00:00",
            "actorId": None,
        }

    def test_round_trip(self):
        """from_dict restores every field, including the aware timestamp."""
        event = make_event(actor_id="user_1", submission_id="sub_1", payload={"a": 1})
        restored = FormEvent.from_dict(event.to_dict())

        assert restored == event

    def test_string_type_is_coerced(self):
        assert make_event(type="form.deleted").type == EventType.FORM_DELETED

    def test_jsonl_is_single_line(self):
        line = make_event(payload={"k": "v"}).to_jsonl()

        assert "\n" not in line
        assert json.loads(line)["payload"] == {"k": "v"}


class TestEventEmitter:
    """Listener registration and dispatch order."""

    def test_typed_listeners_before_wildcards(self):
        emitter = EventEmitter()
        calls = []
        emitter.on_any(lambda e: calls.append("any"))
        emitter.on(EventType.SUBMISSION_CREATED, lambda e: calls.append("typed"))

        emitter.emit(make_event())

        assert calls == ["typed", "any"]

    def test_other_types_are_not_delivered(self):
        emitter = EventEmitter()
        seen = []
        emitter.on(EventType.FORM_PUBLISHED, seen.append)

        emitter.emit(make_event())

        assert seen == []

    def test_failing_listener_does_not_stop_others(self, caplog):
        """A listener exception is logged and dispatch continues."""
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        emitter.on_any(broken)
        emitter.on_any(seen.append)
        emitter.emit(make_event())

        assert len(seen) == 1
        assert "Event listener failed" in caplog.text

    def test_off_and_counts(self):
        emitter = EventEmitter()
        listener = lambda e: None  # noqa: E731
        emitter.on(EventType.FORM_CREATED, listener)
        emitter.on_any(listener)
        assert emitter.listener_count() == 2
        assert emitter.listener_count(EventType.FORM_CREATED) == 1

        emitter.off(EventType.FORM_CREATED, listener)
        emitter.off_any(listener)
        assert emitter.listener_count() == 0

    def test_clear(self):
        emitter = EventEmitter()
        emitter.on_any(lambda e: None)
        emitter.clear()
        assert emitter.listener_count() == 0
