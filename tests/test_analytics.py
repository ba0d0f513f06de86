"""Tests for date windows and dashboard statistics."""

from datetime import datetime, timezone

import pytest

from formsmith.analytics import date_range, in_range, summarize
from formsmith.errors import InvalidRequestError
from formsmith.models import Submission
from formsmith.types import SubmissionStatus

NOW = datetime(2025, 6, 15, 18, 0, tzinfo=timezone.utc)


def submission(form_id, submitted_at, status=SubmissionStatus.NEW):
    return Submission(id=f"sub_{submitted_at.isoformat()}", form_id=form_id, data={},
                      submitted_at=submitted_at, status=status)


class TestDateRange:

    @pytest.mark.parametrize("name,start", [
        ("today", datetime(2025, 6, 15, tzinfo=timezone.utc)),
        ("week", datetime(2025, 6, 8, tzinfo=timezone.utc)),
        ("month", datetime(2025, 5, 15, tzinfo=timezone.utc)),
        ("year", datetime(2024, 6, 15, tzinfo=timezone.utc)),
    ])
    def test_windows_start_at_midnight(self, name, start):
        assert date_range(name, NOW) == (start, NOW)

    def test_all_is_unbounded(self):
        assert date_range("all", NOW) == (None, None)

    def test_unknown_window(self):
        with pytest.raises(InvalidRequestError):
            date_range("decade", NOW)

    def test_in_range_bounds(self):
        bounds = date_range("today", NOW)
        assert in_range(submission("f", datetime(2025, 6, 15, 0, 0, tzinfo=timezone.utc)), bounds)
        assert not in_range(submission("f", datetime(2025, 6, 14, 23, 59, tzinfo=timezone.utc)), bounds)
        assert not in_range(submission("f", datetime(2025, 6, 16, tzinfo=timezone.utc)), bounds)


class TestSummarize:

    def test_counts(self):
        items = [
            submission("f1", datetime(2025, 6, 15, 9, tzinfo=timezone.utc)),
            submission("f1", datetime(2025, 6, 10, tzinfo=timezone.utc), SubmissionStatus.REVIEWED),
            submission("gone", datetime(2025, 1, 1, tzinfo=timezone.utc), SubmissionStatus.ARCHIVED),
        ]
        stats = summarize(items, {"f1": "Contact"}, now=NOW)

        assert stats.total == 3
        assert stats.by_status == {"new": 1, "reviewed": 1, "archived": 1}
        assert stats.by_form == {"Contact": 2, "Unknown Form": 1}
        assert stats.today == 1
        assert stats.last_7_days == 2

    def test_empty(self):
        """Every status is present even with no submissions."""
        stats = summarize([], {}, now=NOW).to_dict()
        assert stats == {
            "totalSubmissions": 0,
            "byStatus": {"new": 0, "reviewed": 0, "archived": 0},
            "byForm": {},
            "today": 0,
            "last7Days": 0,
        }
