from .deduction import effective_score
from .aggregation import AttemptSummary, summarize_attempts
from .policy import select_final, final_time_spent
from .ranking import RankEntry, RankedStudent, rank_students

__all__ = [
    "effective_score",
    "AttemptSummary",
    "summarize_attempts",
    "select_final",
    "final_time_spent",
    "RankEntry",
    "RankedStudent",
    "rank_students",
]
