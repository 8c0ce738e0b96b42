from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlmodel import Session, select

from models.database.db_models import (
    Activity, ActivityItem, ActivityStudent, ActivitySubmission, FinalScorePolicy, User
)
from scripts.permission_helpers import get_enrolled_student_ids
from services.scoring import RankEntry, rank_students


@dataclass
class LeaderboardEntry:
    student_id: int
    student_name: str
    score: float
    time: int
    rank: int


def _ranked_roster(db: Session, activity: Activity) -> List[tuple]:
    enrolled_ids = get_enrolled_student_ids(activity.class_id, db)
    if not enrolled_ids:
        return []

    # Pivot id order is the stable fallback for students tied on every key.
    # A pivot without a final score has no stored attempt to rank.
    rows = db.exec(
        select(ActivityStudent, User)
        .join(User, ActivityStudent.student_id == User.id)
        .where(
            ActivityStudent.activity_id == activity.id,
            ActivityStudent.student_id.in_(sorted(enrolled_ids)),
            ActivityStudent.final_score != None,  # noqa: E711
        )
        .order_by(ActivityStudent.id)
    ).all()

    entries = [
        RankEntry(
            student_id=user.id,
            score=pivot.final_score,
            time=pivot.final_time_spent,
            last_name=user.last_name,
            first_name=user.first_name,
        )
        for pivot, user in rows
    ]
    by_student = {user.id: (pivot, user) for pivot, user in rows}
    return [(ranked, *by_student[ranked.student_id]) for ranked in rank_students(entries)]


def refresh_activity_ranks(db: Session, activity: Activity) -> Dict[int, int]:
    """
    Recompute every enrolled student's rank for the activity and store it.

    Runs inside the caller's transaction so it sees (and ranks) one
    consistent set of pivot rows. Pivots of unenrolled students lose their
    rank. Nothing is committed here.

    Returns:
        Mapping of student id to rank
    """
    ranks: Dict[int, int] = {}
    for ranked, pivot, _user in _ranked_roster(db, activity):
        ranks[ranked.student_id] = ranked.rank
        if pivot.rank != ranked.rank:
            pivot.rank = ranked.rank
            db.add(pivot)

    stale = db.exec(
        select(ActivityStudent).where(
            ActivityStudent.activity_id == activity.id,
            ActivityStudent.rank != None,  # noqa: E711
        )
    ).all()
    for pivot in stale:
        if pivot.student_id not in ranks:
            pivot.rank = None
            db.add(pivot)

    db.flush()
    return ranks


def get_leaderboard(db: Session, activity: Activity) -> List[LeaderboardEntry]:
    leaderboard = []
    for ranked, pivot, user in _ranked_roster(db, activity):
        leaderboard.append(
            LeaderboardEntry(
                student_id=user.id,
                student_name=user.display_name,
                score=pivot.final_score or 0,
                time=pivot.final_time_spent or 0,
                rank=ranked.rank,
            )
        )
    return leaderboard


@dataclass
class ItemStatistics:
    item_id: int
    act_item_points: float
    average_score: Optional[float]
    average_time_spent: Optional[float]
    student_count: int


def get_item_statistics(db: Session, activity: Activity) -> List[ItemStatistics]:
    """
    Average score and time per activity item over enrolled students.

    Each student contributes one submission per item: their best one under
    highest_score (earliest attempt on ties), or the one from their latest
    attempt under last_attempt.
    """
    enrolled_ids = get_enrolled_student_ids(activity.class_id, db)
    activity_items = db.exec(
        select(ActivityItem).where(ActivityItem.activity_id == activity.id).order_by(ActivityItem.id)
    ).all()

    submissions = []
    if enrolled_ids:
        submissions = db.exec(
            select(ActivitySubmission)
            .where(
                ActivitySubmission.activity_id == activity.id,
                ActivitySubmission.student_id.in_(sorted(enrolled_ids)),
            )
            .order_by(ActivitySubmission.student_id, ActivitySubmission.attempt_no)
        ).all()

    pivots = db.exec(select(ActivityStudent).where(ActivityStudent.activity_id == activity.id)).all()
    latest_attempt = {pivot.student_id: pivot.attempts_taken for pivot in pivots}

    chosen: Dict[int, Dict[int, ActivitySubmission]] = {}
    for submission in submissions:
        per_item = chosen.setdefault(submission.item_id, {})
        current = per_item.get(submission.student_id)
        if activity.final_score_policy == FinalScorePolicy.HIGHEST_SCORE:
            if current is None or submission.score > current.score:
                per_item[submission.student_id] = submission
        elif submission.attempt_no == latest_attempt.get(submission.student_id):
            per_item[submission.student_id] = submission

    statistics = []
    for activity_item in activity_items:
        picked = list(chosen.get(activity_item.item_id, {}).values())
        count = len(picked)
        statistics.append(
            ItemStatistics(
                item_id=activity_item.item_id,
                act_item_points=activity_item.act_item_points,
                average_score=round(sum(s.score for s in picked) / count, 2) if count else None,
                average_time_spent=round(sum(s.item_time_spent for s in picked) / count) if count else None,
                student_count=count,
            )
        )
    return statistics
