import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from models.database.db_models import Activity, ActivityItem, ActivityProgress, ProgressOwner
from services.clock import Clock, as_utc
from services.errors import ConcurrencyConflict, NotFound, ValidationError
from services.scoring import effective_score

logger = logging.getLogger(__name__)

# Fields a client autosave may overwrite. Check-code runs and deducted
# scores are only ever written by record_check_run.
DRAFT_FIELDS = (
    "draft_files",
    "draft_test_case_results",
    "draft_time_remaining",
    "draft_selected_language",
    "draft_score",
    "draft_item_times",
)


@dataclass
class DraftView:
    draft: ActivityProgress
    end_time: Optional[datetime]
    expired: bool


@dataclass
class CheckRunResult:
    item_id: int
    run_count: int
    effective_score: float


def find_draft(db: Session, activity_id: int, owner: ProgressOwner, lock: bool = False) -> Optional[ActivityProgress]:
    statement = select(ActivityProgress).where(
        ActivityProgress.activity_id == activity_id,
        ActivityProgress.owner_kind == owner.kind,
        ActivityProgress.owner_id == owner.id,
    )
    if lock:
        statement = statement.with_for_update()
    return db.exec(statement).first()


def _get_or_create_draft(
    db: Session, activity_id: int, owner: ProgressOwner, now: datetime, lock: bool = False
) -> ActivityProgress:
    draft = find_draft(db, activity_id, owner, lock=lock)
    if draft:
        return draft

    draft = ActivityProgress(
        activity_id=activity_id,
        owner_kind=owner.kind,
        owner_id=owner.id,
        created_at=now,
        updated_at=now,
    )
    db.add(draft)
    try:
        db.flush()
    except IntegrityError:
        # Another request created the row first; callers start a fresh
        # transaction, so nothing else is lost by rolling back here
        db.rollback()
        draft = find_draft(db, activity_id, owner, lock=lock)
        if draft is None:
            raise
    return draft


def save_draft(
    db: Session,
    activity: Activity,
    owner: ProgressOwner,
    payload: Dict[str, Any],
    clock: Clock,
) -> ActivityProgress:
    """
    Create or overwrite the single draft for (activity, owner).

    Every autosave replaces the client-owned fields wholesale; a field left
    out of the payload is cleared, as a fresh autosave describes the whole
    in-progress state.
    """
    unknown = set(payload) - set(DRAFT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown draft fields: {', '.join(sorted(unknown))}")
    time_remaining = payload.get("draft_time_remaining")
    if time_remaining is not None and time_remaining < 0:
        raise ValidationError("draft_time_remaining cannot be negative")

    now = clock.now()
    try:
        draft = _get_or_create_draft(db, activity.id, owner, now)
        for field_name in DRAFT_FIELDS:
            setattr(draft, field_name, payload.get(field_name))
        if draft.draft_score is None:
            draft.draft_score = 0
        draft.updated_at = now
        db.add(draft)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(draft)
    return draft


def get_draft(db: Session, activity: Activity, owner: ProgressOwner, clock: Clock) -> Optional[DraftView]:
    draft = find_draft(db, activity.id, owner)
    if draft is None:
        return None

    end_time = draft.end_time()
    expired = end_time is not None and as_utc(end_time) <= clock.now()
    return DraftView(draft=draft, end_time=end_time, expired=expired)


def clear_draft(db: Session, activity_id: int, owner: ProgressOwner, commit: bool = True) -> bool:
    draft = find_draft(db, activity_id, owner)
    if draft is None:
        return False
    db.delete(draft)
    if commit:
        db.commit()
    return True


def record_check_run(
    db: Session,
    activity: Activity,
    item_id: int,
    owner: ProgressOwner,
    clock: Clock,
    raw_score: Optional[float] = None,
) -> CheckRunResult:
    """
    Count one check-code run for an item and return the deducted score.

    The run counter lives on the draft so finalize can re-apply the
    deduction from it. ``raw_score`` is the score the run earned; without it
    the item's full points are used, giving the best score still reachable.
    """
    activity_item = db.exec(
        select(ActivityItem).where(
            ActivityItem.activity_id == activity.id,
            ActivityItem.item_id == item_id,
        )
    ).first()
    if activity_item is None:
        raise NotFound("Item is not part of this activity")

    base_points = activity_item.act_item_points
    if raw_score is not None:
        if raw_score < 0:
            raise ValidationError("score cannot be negative")
        base_points = min(raw_score, activity_item.act_item_points)

    now = clock.now()
    key = str(item_id)
    try:
        draft = _get_or_create_draft(db, activity.id, owner, now, lock=True)
        expected = draft.check_run_version
        runs = dict(draft.draft_check_code_runs or {})
        runs[key] = int(runs.get(key, 0)) + 1

        score = effective_score(
            base_points,
            runs[key],
            activity.check_code_deduction,
            activity.max_check_code_runs,
            activity.check_code_restriction,
        )
        deducted = dict(draft.draft_deducted_scores or {})
        deducted[key] = score

        # Only write if no other run landed since the row was read
        result = db.execute(
            update(ActivityProgress)
            .where(
                ActivityProgress.id == draft.id,
                ActivityProgress.check_run_version == expected,
            )
            .values(
                draft_check_code_runs=runs,
                draft_deducted_scores=deducted,
                check_run_version=expected + 1,
                updated_at=now,
            )
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict("Another check run for this item was recorded at the same time")
        db.commit()
    except Exception:
        db.rollback()
        raise

    return CheckRunResult(item_id=item_id, run_count=runs[key], effective_score=score)


def recompute_time_remaining(db: Session, activity: Activity, now: datetime) -> List[ActivityProgress]:
    """Rebase every open draft's timer on the activity's current duration."""
    duration = activity.duration_seconds
    if duration is None:
        return []

    drafts = db.exec(select(ActivityProgress).where(ActivityProgress.activity_id == activity.id)).all()
    for draft in drafts:
        elapsed = int((now - as_utc(draft.updated_at)).total_seconds())
        draft.draft_time_remaining = max(duration - elapsed, 0)
        draft.updated_at = now
        db.add(draft)
    return list(drafts)


def reset_draft_results(db: Session, activity_id: int) -> int:
    drafts = db.exec(select(ActivityProgress).where(ActivityProgress.activity_id == activity_id)).all()
    for draft in drafts:
        draft.draft_test_case_results = None
        draft.draft_score = None
        db.add(draft)
    return len(drafts)
