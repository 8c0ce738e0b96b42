from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class RankEntry:
    student_id: int
    score: Optional[float]
    time: Optional[int]
    last_name: str = ""
    first_name: str = ""


@dataclass(frozen=True)
class RankedStudent:
    student_id: int
    rank: int
    entry: RankEntry


def _sort_key(entry: RankEntry):
    return (
        -(entry.score or 0),
        entry.time or 0,
        (entry.last_name or "").casefold(),
        (entry.first_name or "").casefold(),
    )


def rank_students(entries: Iterable[RankEntry]) -> List[RankedStudent]:
    """
    Order students by score (desc), time (asc), last name, then first name.

    Ranks are positions 1..N. Entries tied on every key keep the order they
    were given in, and still get distinct ranks.
    """
    ordered = sorted(entries, key=_sort_key)
    return [
        RankedStudent(student_id=entry.student_id, rank=position, entry=entry)
        for position, entry in enumerate(ordered, start=1)
    ]
