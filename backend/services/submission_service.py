import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from database.database import atomic
from models.database.db_models import (
    Activity, ActivityItem, ActivityStudent, ActivitySubmission, FinalScorePolicy, ProgressOwner, User, UserRole
)
from scripts.permission_helpers import get_enrolled_student_ids
from services.clock import Clock
from services.errors import ConcurrencyConflict, NotFound, Unauthorized, ValidationError
from services.leaderboard_service import refresh_activity_ranks
from services.progress_service import clear_draft, find_draft
from services.scoring import (
    AttemptSummary, effective_score, final_time_spent, select_final, summarize_attempts
)

logger = logging.getLogger(__name__)


@dataclass
class ItemSubmissionInput:
    item_id: int
    code_submission: Optional[List[Any]] = None
    score: Optional[float] = None
    item_time_spent: Optional[int] = None


@dataclass
class FinalizeResult:
    attempt_no: int
    final_score: float
    final_time_spent: int
    rank: Optional[int]
    submissions: List[ActivitySubmission]


@dataclass
class FinalResult:
    student_id: int
    final_score: float
    final_time_spent: int
    rank: Optional[int]


def _validate_items(db: Session, activity: Activity, items: List[ItemSubmissionInput]) -> Dict[int, ActivityItem]:
    if not items:
        raise ValidationError("At least one item submission is required")

    activity_items = db.exec(select(ActivityItem).where(ActivityItem.activity_id == activity.id)).all()
    by_item = {activity_item.item_id: activity_item for activity_item in activity_items}

    seen = set()
    for entry in items:
        if entry.item_id not in by_item:
            raise ValidationError(f"Item {entry.item_id} is not part of this activity")
        if entry.item_id in seen:
            raise ValidationError(f"Item {entry.item_id} was submitted more than once")
        seen.add(entry.item_id)
        if entry.score is not None and entry.score < 0:
            raise ValidationError("Item scores cannot be negative")
        if entry.item_time_spent is not None and entry.item_time_spent < 0:
            raise ValidationError("Item time spent cannot be negative")
    return by_item


def _claim_attempt(db: Session, activity: Activity, student: User, clock: Clock) -> tuple[ActivityStudent, int]:
    """
    Take the next attempt number from the pivot row.

    The row is locked where the database supports it, and the increment is a
    compare-and-swap on the count that was read, so two finalize calls for
    the same student can never end up with the same attempt number.
    """
    now = clock.now()
    pivot = db.exec(
        select(ActivityStudent)
        .where(
            ActivityStudent.activity_id == activity.id,
            ActivityStudent.student_id == student.id,
        )
        .with_for_update()
    ).first()

    if pivot is None:
        pivot = ActivityStudent(
            activity_id=activity.id,
            student_id=student.id,
            attempts_taken=1,
            created_at=now,
            updated_at=now,
        )
        db.add(pivot)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict("Another submission for this activity is already being finalized") from exc
        return pivot, 1

    expected = pivot.attempts_taken
    if activity.max_attempts and expected >= activity.max_attempts:
        raise ValidationError("No attempts remaining for this activity")

    result = db.execute(
        update(ActivityStudent)
        .where(
            ActivityStudent.id == pivot.id,
            ActivityStudent.attempts_taken == expected,
        )
        .values(attempts_taken=expected + 1, updated_at=now)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict("Another submission for this activity is already being finalized")
    db.refresh(pivot)
    return pivot, expected + 1


def _apply_final(pivot: ActivityStudent, summaries: List[AttemptSummary], policy: FinalScorePolicy, clock: Clock):
    final = select_final(summaries, policy)
    pivot.final_score = final.total_score
    pivot.final_time_spent = final_time_spent(final, policy)
    pivot.updated_at = clock.now()


def finalize_submission(
    db: Session,
    activity: Activity,
    student: User,
    items: List[ItemSubmissionInput],
    clock: Clock,
    overall_time_spent: Optional[int] = None,
) -> FinalizeResult:
    """
    Turn a student's in-progress work into a scored attempt.

    Claims the next attempt number, writes one submission per item with
    check-code deductions re-applied from the draft's run counts, resolves
    the student's final score under the activity policy, re-ranks the whole
    activity and drops the draft. All of it commits together or not at all.
    """
    if student is None or student.role != UserRole.STUDENT:
        raise Unauthorized("Only students can finalize submissions")
    if overall_time_spent is not None and overall_time_spent < 0:
        raise ValidationError("overall_time_spent cannot be negative")
    if not activity.is_open(clock.now()):
        raise ValidationError("This activity is not accepting submissions right now")
    activity_items = _validate_items(db, activity, items)

    owner = ProgressOwner.for_user(student)
    with atomic(db):
        pivot, attempt_no = _claim_attempt(db, activity, student, clock)

        draft = find_draft(db, activity.id, owner)
        runs = (draft.draft_check_code_runs if draft else None) or {}

        now = clock.now()
        created = []
        for entry in items:
            activity_item = activity_items[entry.item_id]
            raw_score = min(entry.score or 0, activity_item.act_item_points)
            run_count = int(runs.get(str(entry.item_id), 0))
            submission = ActivitySubmission(
                activity_id=activity.id,
                student_id=student.id,
                item_id=entry.item_id,
                attempt_no=attempt_no,
                code_submission=entry.code_submission,
                raw_score=raw_score,
                score=effective_score(
                    raw_score,
                    run_count,
                    activity.check_code_deduction,
                    activity.max_check_code_runs,
                    activity.check_code_restriction,
                ),
                item_time_spent=entry.item_time_spent or 0,
                overall_time_spent=overall_time_spent,
                check_code_runs=run_count,
                submitted_at=now,
            )
            db.add(submission)
            created.append(submission)
        db.flush()

        history = db.exec(
            select(ActivitySubmission).where(
                ActivitySubmission.activity_id == activity.id,
                ActivitySubmission.student_id == student.id,
            )
        ).all()
        _apply_final(pivot, summarize_attempts(history), activity.final_score_policy, clock)
        db.add(pivot)
        db.flush()

        ranks = refresh_activity_ranks(db, activity)
        rank = ranks.get(student.id)
        for submission in created:
            submission.rank = rank
            db.add(submission)

        clear_draft(db, activity.id, owner, commit=False)

    for submission in created:
        db.refresh(submission)
    db.refresh(pivot)
    logger.info(
        "Finalized attempt %s for student %s on activity %s (score=%s, rank=%s)",
        attempt_no, student.id, activity.id, pivot.final_score, rank,
    )
    return FinalizeResult(
        attempt_no=attempt_no,
        final_score=pivot.final_score,
        final_time_spent=pivot.final_time_spent,
        rank=rank,
        submissions=created,
    )


def recompute_final_results(db: Session, activity: Activity, clock: Clock) -> List[FinalResult]:
    """
    Re-derive every enrolled student's final score, time and rank.

    Reads all of the activity's submissions in one query and resolves each
    student under the activity's current policy, so running it again over
    the same submissions always gives the same pivots.
    """
    enrolled_ids = get_enrolled_student_ids(activity.class_id, db)

    with atomic(db):
        submissions = []
        pivots = []
        if enrolled_ids:
            submissions = db.exec(
                select(ActivitySubmission)
                .where(
                    ActivitySubmission.activity_id == activity.id,
                    ActivitySubmission.student_id.in_(sorted(enrolled_ids)),
                )
                .order_by(ActivitySubmission.student_id, ActivitySubmission.attempt_no, ActivitySubmission.id)
            ).all()
            pivots = db.exec(
                select(ActivityStudent)
                .where(
                    ActivityStudent.activity_id == activity.id,
                    ActivityStudent.student_id.in_(sorted(enrolled_ids)),
                )
                .order_by(ActivityStudent.id)
            ).all()

        by_student: Dict[int, list] = {}
        for submission in submissions:
            by_student.setdefault(submission.student_id, []).append(submission)

        for pivot in pivots:
            summaries = summarize_attempts(by_student.get(pivot.student_id, []))
            if summaries:
                _apply_final(pivot, summaries, activity.final_score_policy, clock)
            else:
                # Every submission was deleted; the attempt counter stays so numbers are never reused
                logger.info("Student %s has no submissions left for activity %s", pivot.student_id, activity.id)
                pivot.final_score = None
                pivot.final_time_spent = None
                pivot.updated_at = clock.now()
            db.add(pivot)
        db.flush()

        ranks = refresh_activity_ranks(db, activity)

    logger.info("Recomputed final results for %d students on activity %s", len(pivots), activity.id)
    return [
        FinalResult(
            student_id=pivot.student_id,
            final_score=pivot.final_score or 0,
            final_time_spent=pivot.final_time_spent or 0,
            rank=ranks.get(pivot.student_id),
        )
        for pivot in pivots
    ]


def get_attempt_history(db: Session, activity: Activity, student: User) -> tuple[List[AttemptSummary], Optional[int]]:
    """Return the student's attempt summaries and the attempt number that counts."""
    submissions = db.exec(
        select(ActivitySubmission).where(
            ActivitySubmission.activity_id == activity.id,
            ActivitySubmission.student_id == student.id,
        )
    ).all()
    summaries = summarize_attempts(submissions)
    counted = select_final(summaries, activity.final_score_policy).attempt_no if summaries else None
    return summaries, counted


def list_submissions(db: Session, activity: Activity) -> List[tuple]:
    rows = db.exec(
        select(ActivitySubmission, User)
        .join(User, ActivitySubmission.student_id == User.id)
        .where(ActivitySubmission.activity_id == activity.id)
        .order_by(ActivitySubmission.student_id, ActivitySubmission.attempt_no, ActivitySubmission.item_id)
    ).all()
    return list(rows)


def _get_own_submission(db: Session, activity: Activity, student: User, submission_id: int) -> ActivitySubmission:
    if student is None or student.role != UserRole.STUDENT:
        raise Unauthorized("Only students can change submissions")
    submission = db.get(ActivitySubmission, submission_id)
    if not submission or submission.activity_id != activity.id or submission.student_id != student.id:
        raise NotFound("Submission not found or unauthorized")
    return submission


def update_submission(
    db: Session,
    activity: Activity,
    student: User,
    submission_id: int,
    changes: Dict[str, Any],
) -> ActivitySubmission:
    submission = _get_own_submission(db, activity, student, submission_id)
    if "item_time_spent" in changes:
        if changes["item_time_spent"] is None:
            raise ValidationError("Item time spent cannot be null")
        if changes["item_time_spent"] < 0:
            raise ValidationError("Item time spent cannot be negative")

    for field_name in ("code_submission", "item_time_spent"):
        if field_name in changes:
            setattr(submission, field_name, changes[field_name])
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def delete_submission(db: Session, activity: Activity, student: User, submission_id: int):
    submission = _get_own_submission(db, activity, student, submission_id)
    db.delete(submission)
    db.commit()
