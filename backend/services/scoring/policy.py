from typing import Sequence

from models.enums import FinalScorePolicy
from services.errors import PolicyError
from .aggregation import AttemptSummary


def select_final(summaries: Sequence[AttemptSummary], policy: FinalScorePolicy) -> AttemptSummary:
    """
    Pick the attempt that counts toward the student's final result.

    highest_score: best total score, then the lower total time, then the
    earlier attempt. last_attempt: the highest attempt number.
    """
    if not summaries:
        raise PolicyError("Cannot resolve a final score without at least one attempt")

    policy = FinalScorePolicy(policy)
    if policy == FinalScorePolicy.HIGHEST_SCORE:
        return min(summaries, key=lambda s: (-s.total_score, s.total_time_spent, s.attempt_no))
    return max(summaries, key=lambda s: s.attempt_no)


def final_time_spent(summary: AttemptSummary, policy: FinalScorePolicy) -> int:
    # A reported overall time only replaces the item-time sum for last_attempt
    if FinalScorePolicy(policy) == FinalScorePolicy.LAST_ATTEMPT and summary.overall_time_spent is not None:
        return summary.overall_time_spent
    return summary.total_time_spent
