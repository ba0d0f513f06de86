"""Edit session state for the form editor.

The editor moves between three states:

    viewing -> editing -> saving -> viewing
                  ^          |
                  +----------+  (save failed)

Leaving ``editing`` without saving is only allowed when there are no unsaved
changes, unless the caller explicitly discards them. This machine is separate
from form publication; saving never publishes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    SAVING = "saving"


EDIT_TRANSITIONS: Dict[EditState, Set[EditState]] = {
    EditState.VIEWING: {EditState.EDITING},
    EditState.EDITING: {EditState.SAVING, EditState.VIEWING},
    EditState.SAVING: {EditState.VIEWING, EditState.EDITING},
}


class EditSessionError(Exception):
    """Raised when an edit action is not possible in the current state."""


@dataclass
class EditSession:
    """Tracks one editor tab's view/edit/save cycle.

    Examples:
        >>> session = EditSession(form_id="form_1")
        >>> session.begin_edit()
        >>> session.mark_dirty()
        >>> session.cancel()
        Traceback (most recent call last):
        ...
        formsmith.editor.EditSessionError: Discard unsaved changes before leaving edit mode
        >>> session.save()
        >>> session.finish_save()
        >>> session.state
        <EditState.VIEWING: 'viewing'>
    """

    form_id: Optional[str] = None
    state: EditState = EditState.VIEWING
    dirty: bool = False
    last_error: Optional[str] = None

    def _move(self, target: EditState) -> None:
        if target not in EDIT_TRANSITIONS[self.state]:
            raise EditSessionError(f"Cannot go from {self.state.value} to {target.value}")
        self.state = target

    def begin_edit(self) -> None:
        self._move(EditState.EDITING)

    def mark_dirty(self) -> None:
        if self.state != EditState.EDITING:
            raise EditSessionError("Changes can only be made in edit mode")
        self.dirty = True

    def cancel(self, discard: bool = False) -> None:
        """Return to viewing. Unsaved changes must be explicitly discarded."""
        if self.state == EditState.EDITING and self.dirty and not discard:
            raise EditSessionError("Discard unsaved changes before leaving edit mode")
        self._move(EditState.VIEWING)
        self.dirty = False

    def save(self) -> None:
        self._move(EditState.SAVING)
        self.last_error = None

    def finish_save(self, form_id: Optional[str] = None) -> None:
        """Record a successful save; a first save of a new form assigns its id."""
        if self.state != EditState.SAVING:
            raise EditSessionError("No save in progress")
        self._move(EditState.VIEWING)
        self.dirty = False
        if form_id is not None:
            self.form_id = form_id

    def fail_save(self, error: str) -> None:
        """Go back to editing with the unsaved changes intact."""
        if self.state != EditState.SAVING:
            raise EditSessionError("No save in progress")
        self._move(EditState.EDITING)
        self.last_error = error

    @property
    def has_unsaved_changes(self) -> bool:
        return self.dirty


__all__ = [
    "EditSession",
    "EditSessionError",
    "EditState",
    "EDIT_TRANSITIONS",
]
