"""Submission filters and summary statistics for the owner dashboard."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from dateutil.relativedelta import relativedelta

from formsmith.errors import InvalidRequestError
from formsmith.models import Submission, utcnow
from formsmith.types import SubmissionStatus

DateRange = Tuple[Optional[datetime], Optional[datetime]]

RANGE_OFFSETS = {
    "today": relativedelta(),
    "week": relativedelta(days=7),
    "month": relativedelta(months=1),
    "year": relativedelta(years=1),
}


def date_range(name: str, now: Optional[datetime] = None) -> DateRange:
    """Resolve a named window into ``(start, end)`` bounds.

    Windows start at midnight of ``now``'s day, shifted back by the window
    length. ``"all"`` is unbounded.

    Examples:
        >>> from datetime import timezone
        >>> now = datetime(2025, 3, 31, 15, 30, tzinfo=timezone.utc)
        >>> start, end = date_range("month", now)
        >>> start.isoformat()
        '2025-02-28T00:00:00+00:00'
    """
    if name == "all":
        return None, None
    if name not in RANGE_OFFSETS:
        raise InvalidRequestError(f"Unknown date range: {name}")
    now = now or utcnow()
    midnight = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    return midnight - RANGE_OFFSETS[name], now


def in_range(submission: Submission, bounds: DateRange) -> bool:
    start, end = bounds
    if start is not None and submission.submitted_at < start:
        return False
    if end is not None and submission.submitted_at > end:
        return False
    return True


@dataclass(frozen=True)
class SubmissionStats:
    """Counts shown on the submissions dashboard."""
    total: int
    by_status: Dict[str, int]
    by_form: Dict[str, int]
    today: int
    last_7_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSubmissions": self.total,
            "byStatus": dict(self.by_status),
            "byForm": dict(self.by_form),
            "today": self.today,
            "last7Days": self.last_7_days,
        }


def summarize(
    submissions: Iterable[Submission],
    form_titles: Mapping[str, str],
    now: Optional[datetime] = None,
) -> SubmissionStats:
    """Aggregate submissions into dashboard counts.

    ``by_form`` is keyed by form title; submissions whose form is gone are
    counted under "Unknown Form".
    """
    now = now or utcnow()
    items: List[Submission] = list(submissions)
    today = date_range("today", now)
    week = date_range("week", now)

    by_status = Counter({status.value: 0 for status in SubmissionStatus})
    by_status.update(s.status.value for s in items)
    by_form = Counter(form_titles.get(s.form_id, "Unknown Form") for s in items)

    return SubmissionStats(
        total=len(items),
        by_status=dict(by_status),
        by_form=dict(by_form),
        today=sum(1 for s in items if in_range(s, today)),
        last_7_days=sum(1 for s in items if in_range(s, week)),
    )


__all__ = [
    "DateRange",
    "SubmissionStats",
    "date_range",
    "in_range",
    "summarize",
]
