"""Tests for the editor's view/edit/save cycle."""

import pytest

from formsmith.editor import EditSession, EditSessionError, EditState


class TestEditSession:

    def test_starts_viewing(self):
        session = EditSession()
        assert session.state == EditState.VIEWING
        assert session.has_unsaved_changes is False

    def test_save_cycle(self):
        """A new form gets its id on the first successful save."""
        session = EditSession()
        session.begin_edit()
        session.mark_dirty()
        session.save()
        session.finish_save(form_id="form_1")

        assert session.state == EditState.VIEWING
        assert session.form_id == "form_1"
        assert session.has_unsaved_changes is False

    def test_failed_save_keeps_changes(self):
        session = EditSession(form_id="form_1")
        session.begin_edit()
        session.mark_dirty()
        session.save()
        session.fail_save("Network error")

        assert session.state == EditState.EDITING
        assert session.has_unsaved_changes is True
        assert session.last_error == "Network error"

    def test_retry_clears_error(self):
        session = EditSession(state=EditState.SAVING)
        session.fail_save("boom")
        session.save()
        assert session.last_error is None

    def test_cancel_with_unsaved_changes(self):
        """Leaving edit mode with changes needs an explicit discard."""
        session = EditSession()
        session.begin_edit()
        session.mark_dirty()

        with pytest.raises(EditSessionError):
            session.cancel()
        assert session.state == EditState.EDITING

        session.cancel(discard=True)
        assert session.state == EditState.VIEWING
        assert session.has_unsaved_changes is False

    def test_cancel_clean_edit(self):
        session = EditSession()
        session.begin_edit()
        session.cancel()
        assert session.state == EditState.VIEWING

    def test_changes_need_edit_mode(self):
        with pytest.raises(EditSessionError):
            EditSession().mark_dirty()

    @pytest.mark.parametrize("action", ["save", "finish_save"])
    def test_cannot_save_from_viewing(self, action):
        with pytest.raises(EditSessionError):
            getattr(EditSession(), action)()

    def test_cannot_edit_twice(self):
        session = EditSession()
        session.begin_edit()
        with pytest.raises(EditSessionError):
            session.begin_edit()
