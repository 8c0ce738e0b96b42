from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from services.clock import as_utc


@dataclass(frozen=True)
class AttemptSummary:
    attempt_no: int
    total_score: float
    total_time_spent: int
    overall_time_spent: Optional[int] = None
    item_count: int = 0
    submitted_at: Optional[datetime] = None


def summarize_attempts(submissions: Iterable, precision: int = 2) -> List[AttemptSummary]:
    """
    Group one student's submissions for an activity by attempt number.

    Each submission needs ``attempt_no``, ``score`` and ``item_time_spent``;
    ``overall_time_spent`` and ``submitted_at`` are used when present. Total
    time is always the sum of the item times; the reported overall time is
    carried alongside so the policy can decide which one counts.

    Returns:
        Attempt summaries ordered by attempt number
    """
    groups: Dict[int, list] = {}
    for submission in submissions:
        groups.setdefault(submission.attempt_no, []).append(submission)

    summaries = []
    for attempt_no in sorted(groups):
        rows = groups[attempt_no]
        overall_times = [
            row.overall_time_spent for row in rows
            if getattr(row, "overall_time_spent", None) is not None
        ]
        submitted = [as_utc(row.submitted_at) for row in rows if getattr(row, "submitted_at", None) is not None]
        summaries.append(
            AttemptSummary(
                attempt_no=attempt_no,
                total_score=round(sum(row.score or 0 for row in rows), precision),
                total_time_spent=sum(row.item_time_spent or 0 for row in rows),
                overall_time_spent=max(overall_times) if overall_times else None,
                item_count=len(rows),
                submitted_at=max(submitted) if submitted else None,
            )
        )
    return summaries
