"""Tests for the publication state machine.

Tests cover:
- The full transition table (valid and invalid moves)
- Event emission for each transition
- Submission acceptance per state
- Serialization round trip
- Share link derivation
"""

import pytest

from formsmith.errors import InvalidStateTransitionError
from formsmith.state_machine import (
    VALID_TRANSITIONS,
    PublicationStateMachine,
    share_links,
)
from formsmith.types import EventType, FormStatus


class TestValidTransitions:
    """Transitions that are allowed."""

    def test_draft_to_published(self):
        """A draft can be published."""
        sm = PublicationStateMachine(form_id="form_1")
        event = sm.transition_to(FormStatus.PUBLISHED, actor_id="user_1")

        assert sm.state == FormStatus.PUBLISHED
        assert event.type == EventType.FORM_PUBLISHED
        assert event.actor_id == "user_1"
        assert event.payload == {"from_state": "draft", "to_state": "published"}

    def test_published_to_unpublished(self):
        sm = PublicationStateMachine(form_id="form_1", state=FormStatus.PUBLISHED)
        event = sm.transition_to(FormStatus.UNPUBLISHED)

        assert sm.state == FormStatus.UNPUBLISHED
        assert event.type == EventType.FORM_UNPUBLISHED

    def test_republish_cycle(self):
        """A form can go around the publish/unpublish loop repeatedly."""
        sm = PublicationStateMachine(form_id="form_1")
        for _ in range(3):
            sm.transition_to(FormStatus.PUBLISHED)
            sm.transition_to(FormStatus.UNPUBLISHED)

        assert sm.state == FormStatus.UNPUBLISHED
        assert len(sm.get_events()) == 6

    def test_extra_payload_is_merged(self):
        sm = PublicationStateMachine(form_id="form_1")
        event = sm.transition_to(FormStatus.PUBLISHED, payload={"collectEmails": True})

        assert event.payload["collectEmails"] is True
        assert event.payload["to_state"] == "published"


class TestInvalidTransitions:
    """Transitions that are rejected leave the state unchanged."""

    @pytest.mark.parametrize("start,target", [
        (FormStatus.DRAFT, FormStatus.UNPUBLISHED),
        (FormStatus.DRAFT, FormStatus.DRAFT),
        (FormStatus.PUBLISHED, FormStatus.PUBLISHED),
        (FormStatus.PUBLISHED, FormStatus.DRAFT),
        (FormStatus.UNPUBLISHED, FormStatus.DRAFT),
        (FormStatus.UNPUBLISHED, FormStatus.UNPUBLISHED),
    ])
    def test_rejected(self, start, target):
        sm = PublicationStateMachine(form_id="form_1", state=start)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            sm.transition_to(target)

        assert sm.state == start
        assert sm.get_events() == []
        assert exc_info.value.current_state == start
        assert exc_info.value.target_state == target

    def test_error_message_lists_valid_targets(self):
        sm = PublicationStateMachine(form_id="form_1")
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            sm.transition_to(FormStatus.UNPUBLISHED)

        assert "cannot transition from 'draft' to 'unpublished'" in str(exc_info.value)
        assert "published" in exc_info.value.message

    def test_no_state_returns_to_draft(self):
        """Once published, a form never becomes a draft again."""
        for targets in VALID_TRANSITIONS.values():
            assert FormStatus.DRAFT not in targets


class TestSubmissionAcceptance:

    @pytest.mark.parametrize("state,accepts", [
        (FormStatus.DRAFT, False),
        (FormStatus.PUBLISHED, True),
        (FormStatus.UNPUBLISHED, False),
    ])
    def test_only_published_accepts(self, state, accepts):
        assert PublicationStateMachine(form_id="f", state=state).accepts_submissions() is accepts


class TestSerialization:

    def test_round_trip(self):
        sm = PublicationStateMachine(form_id="form_9", state=FormStatus.UNPUBLISHED)
        restored = PublicationStateMachine.from_dict(sm.to_dict())

        assert restored.form_id == "form_9"
        assert restored.state == FormStatus.UNPUBLISHED
        assert restored.can_transition_to(FormStatus.PUBLISHED)

    def test_events_are_copied(self):
        """get_events returns a snapshot, not the internal list."""
        sm = PublicationStateMachine(form_id="form_1")
        sm.transition_to(FormStatus.PUBLISHED)
        sm.get_events().clear()
        assert len(sm.get_events()) == 1


class TestShareLinks:

    def test_trailing_slash_is_ignored(self):
        assert share_links("abc", "https://x.test/")[0] == share_links("abc", "https://x.test")[0]

    def test_embed_snippet(self):
        url, embed = share_links("abc", "https://x.test")
        assert embed == (
            '<iframe src="https://x.test/forms/abc?embed=true" width="100%" '
            'height="600" frameborder="0"></iframe>'
        )
