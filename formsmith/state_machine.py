"""Publication state machine for forms.

A form starts as a draft, becomes public when published, and can be taken
offline (unpublished) and published again any number of times:

    draft -> published -> unpublished -> published -> ...

Only published forms accept submissions. All transitions are triggered by the
form's owner; none happen on a timer.

Usage:
    >>> from formsmith.state_machine import PublicationStateMachine
    >>> from formsmith.types import FormStatus
    >>> sm = PublicationStateMachine(form_id="form_123")
    >>> sm.state
    <FormStatus.DRAFT: 'draft'>
    >>> event = sm.transition_to(FormStatus.PUBLISHED, actor_id="user_1")
    >>> event.type.value
    'form.published'
    >>> sm.accepts_submissions()
    True
    >>> len(sm.get_events())
    1
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
import uuid

from formsmith.errors import InvalidStateTransitionError
from formsmith.events import FormEvent
from formsmith.types import EventType, FormStatus


STATE_TO_EVENT_TYPE: Dict[FormStatus, EventType] = {
    FormStatus.PUBLISHED: EventType.FORM_PUBLISHED,
    FormStatus.UNPUBLISHED: EventType.FORM_UNPUBLISHED,
}


VALID_TRANSITIONS: Dict[FormStatus, Set[FormStatus]] = {
    FormStatus.DRAFT: {FormStatus.PUBLISHED},
    FormStatus.PUBLISHED: {FormStatus.UNPUBLISHED},
    FormStatus.UNPUBLISHED: {FormStatus.PUBLISHED},
}


def share_links(form_id: str, base_url: str) -> Tuple[str, str]:
    """Derive the public URL and iframe embed snippet for a form.

    Examples:
        >>> url, embed = share_links("abc", "https://forms.example.com/")
        >>> url
        'https://forms.example.com/forms/abc'
        >>> embed.startswith('<iframe src="https://forms.example.com/forms/abc?embed=true"')
        True
    """
    share_url = f"{base_url.rstrip('/')}/forms/{form_id}"
    embed_code = (
        f'<iframe src="{share_url}?embed=true" width="100%" height="600" '
        f'frameborder="0"></iframe>'
    )
    return share_url, embed_code


@dataclass
class PublicationStateMachine:
    """Tracks and enforces the publication state of one form.

    Attributes:
        form_id: Identifier of the form
        state: Current publication state

    Examples:
        >>> sm = PublicationStateMachine(form_id="form_1", state=FormStatus.PUBLISHED)
        >>> sm.can_transition_to(FormStatus.UNPUBLISHED)
        True
        >>> sm.can_transition_to(FormStatus.DRAFT)
        False
    """

    form_id: str
    state: FormStatus = FormStatus.DRAFT
    _events: List[FormEvent] = field(default_factory=list, init=False, repr=False)

    def can_transition_to(self, target_state: FormStatus) -> bool:
        return target_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(
        self,
        target_state: FormStatus,
        actor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> FormEvent:
        """Move to a new state and record the transition event.

        Args:
            target_state: The state to move to
            actor_id: User record id of the owner performing the transition
            payload: Extra data stored on the emitted event

        Returns:
            The event recorded for this transition

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target_state):
            allowed = ", ".join(sorted(s.value for s in VALID_TRANSITIONS[self.state]))
            raise InvalidStateTransitionError(
                current_state=self.state,
                target_state=target_state,
                message=(
                    f"Invalid state transition: cannot transition from "
                    f"'{self.state.value}' to '{target_state.value}'. "
                    f"Valid transitions from '{self.state.value}' are: {allowed}"
                ),
            )

        old_state = self.state
        self.state = target_state
        return self._emit_event(target_state, old_state, actor_id, payload)

    def accepts_submissions(self) -> bool:
        """Only published forms accept new submissions."""
        return self.state == FormStatus.PUBLISHED

    def _emit_event(
        self,
        new_state: FormStatus,
        old_state: FormStatus,
        actor_id: Optional[str],
        payload: Optional[Dict[str, Any]],
    ) -> FormEvent:
        event_payload = {"from_state": old_state.value, "to_state": new_state.value}
        if payload:
            event_payload.update(payload)
        event = FormEvent(
            event_id=f"evt_{uuid.uuid4().hex[:16]}",
            type=STATE_TO_EVENT_TYPE[new_state],
            form_id=self.form_id,
            ts=datetime.now(timezone.utc),
            actor_id=actor_id,
            payload=event_payload,
        )
        self._events.append(event)
        return event

    def get_events(self) -> List[FormEvent]:
        """Events recorded by this machine, oldest first."""
        return list(self._events)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the state machine to a dictionary.

        Examples:
            >>> PublicationStateMachine(form_id="form_1").to_dict()
            {'formId': 'form_1', 'status': 'draft'}
        """
        return {
            "formId": self.form_id,
            "status": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicationStateMachine":
        state = data["status"]
        if isinstance(state, str):
            state = FormStatus(state)
        return cls(form_id=data["formId"], state=state)


__all__ = [
    "PublicationStateMachine",
    "InvalidStateTransitionError",
    "VALID_TRANSITIONS",
    "share_links",
]
