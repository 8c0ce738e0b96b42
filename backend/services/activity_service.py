import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from database.database import atomic
from models.database.db_models import (
    Activity, ActivityItem, FinalScorePolicy, Item, NotificationKind, ProgressOwner, User, UserRole
)
from models.enums import ActivityDifficulty, ClassRole
from scripts.permission_helpers import get_enrolled_student_ids, require_activity_owner, user_has_role_in_class
from services.clock import Clock, as_utc
from services.errors import Unauthorized, ValidationError
from services.item_service import recompute_activity_max_points
from services.notification_service import NotificationEvent, NotificationSink, notification_already_sent
from services.progress_service import recompute_time_remaining, reset_draft_results
from services.submission_service import recompute_final_results

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"^(0\d|1\d|2[0-3]):([0-5]\d):([0-5]\d)$")

SETTINGS_FIELDS = (
    "title",
    "description",
    "difficulty",
    "duration",
    "max_attempts",
    "open_date",
    "close_date",
    "final_score_policy",
    "exam_mode",
    "randomized_items",
    "check_code_restriction",
    "max_check_code_runs",
    "check_code_deduction",
)


@dataclass
class ActivityItemInput:
    item_id: int
    act_item_points: float


@dataclass
class ActivityUpdateResult:
    activity: Activity
    changed: List[str] = field(default_factory=list)
    recomputed: bool = False
    notified: int = 0


def _coerce_enums(values: Dict[str, Any]) -> Dict[str, Any]:
    coerced = dict(values)
    try:
        if coerced.get("final_score_policy") is not None:
            coerced["final_score_policy"] = FinalScorePolicy(coerced["final_score_policy"])
    except ValueError as exc:
        raise ValidationError("final_score_policy must be 'last_attempt' or 'highest_score'") from exc
    try:
        if coerced.get("difficulty") is not None:
            coerced["difficulty"] = ActivityDifficulty(coerced["difficulty"])
    except ValueError as exc:
        raise ValidationError("difficulty must be Beginner, Intermediate or Advanced") from exc
    return coerced


def _validate_settings(values: Dict[str, Any]):
    open_date = values.get("open_date")
    close_date = values.get("close_date")
    if open_date is not None and close_date is not None and as_utc(close_date) <= as_utc(open_date):
        raise ValidationError("close_date must be after open_date")

    duration = values.get("duration")
    if duration is not None and not DURATION_PATTERN.match(duration):
        raise ValidationError("duration must be formatted as HH:MM:SS")

    if values.get("max_attempts") is not None and values["max_attempts"] < 0:
        raise ValidationError("max_attempts cannot be negative")

    if values.get("check_code_restriction"):
        max_runs = values.get("max_check_code_runs")
        deduction = values.get("check_code_deduction")
        if max_runs is None or max_runs < 1:
            raise ValidationError("max_check_code_runs must be at least 1 when check-code restriction is on")
        if deduction is None or deduction < 0:
            raise ValidationError("check_code_deduction must be zero or more when check-code restriction is on")


def _validate_items(db: Session, items: List[ActivityItemInput]):
    if not items:
        raise ValidationError("An activity needs at least one item")
    seen = set()
    for entry in items:
        if entry.item_id in seen:
            raise ValidationError(f"Item {entry.item_id} is listed more than once")
        seen.add(entry.item_id)
        if entry.act_item_points is None or entry.act_item_points < 1:
            raise ValidationError("act_item_points must be at least 1")
        if db.get(Item, entry.item_id) is None:
            raise ValidationError(f"Item {entry.item_id} does not exist")


def _replace_items(db: Session, activity: Activity, items: List[ActivityItemInput]):
    existing = db.exec(select(ActivityItem).where(ActivityItem.activity_id == activity.id)).all()
    for activity_item in existing:
        db.delete(activity_item)
    db.flush()
    for entry in items:
        db.add(ActivityItem(activity_id=activity.id, item_id=entry.item_id, act_item_points=entry.act_item_points))
    db.flush()
    recompute_activity_max_points(db, activity)


def create_activity(
    db: Session,
    teacher: User,
    class_id: int,
    settings: Dict[str, Any],
    items: List[ActivityItemInput],
    clock: Clock,
) -> Activity:
    if teacher is None or teacher.role != UserRole.TEACHER:
        raise Unauthorized("Only teachers can create activities")
    if not user_has_role_in_class(teacher, class_id, ClassRole.INSTRUCTOR, db):
        raise Unauthorized("Teacher does not teach this class")

    unknown = set(settings) - set(SETTINGS_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown activity fields: {', '.join(sorted(unknown))}")
    for required in ("title", "open_date", "close_date"):
        if settings.get(required) is None:
            raise ValidationError(f"{required} is required")
    settings = _coerce_enums(settings)
    _validate_settings(settings)
    _validate_items(db, items)

    now = clock.now()
    with atomic(db):
        activity = Activity(class_id=class_id, teacher_id=teacher.id, created_at=now, updated_at=now, **settings)
        db.add(activity)
        db.flush()
        _replace_items(db, activity, items)

    db.refresh(activity)
    logger.info("Created activity %s in class %s worth %s points", activity.id, class_id, activity.max_points)
    return activity


def update_activity_settings(
    db: Session,
    activity: Activity,
    teacher: User,
    changes: Dict[str, Any],
    clock: Clock,
    sink: NotificationSink,
    items: Optional[List[ActivityItemInput]] = None,
) -> ActivityUpdateResult:
    """
    Apply a teacher's settings change and everything that follows from it.

    A moved close date notifies every enrolled student and reopens the
    activity if the new date is still ahead; a new duration rebases open
    draft timers; a new item list resets draft results and max points. Final
    results are re-derived afterwards so a policy switch takes effect.
    """
    require_activity_owner(teacher, activity)
    unknown = set(changes) - set(SETTINGS_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown activity fields: {', '.join(sorted(unknown))}")

    changes = _coerce_enums(changes)
    merged = {name: getattr(activity, name) for name in SETTINGS_FIELDS}
    merged.update(changes)
    _validate_settings(merged)
    if items is not None:
        _validate_items(db, items)

    now = clock.now()
    result = ActivityUpdateResult(activity=activity)

    with atomic(db):
        old_close = as_utc(activity.close_date)
        for name, value in changes.items():
            if getattr(activity, name) != value:
                setattr(activity, name, value)
                result.changed.append(name)

        if "close_date" in changes:
            new_close = as_utc(activity.close_date)
            if new_close > now:
                activity.completed_at = None
            if new_close != old_close:
                for student_id in sorted(get_enrolled_student_ids(activity.class_id, db)):
                    sink.emit(
                        NotificationEvent(
                            kind=NotificationKind.DEADLINE_CHANGED,
                            recipient=ProgressOwner(kind=UserRole.STUDENT, id=student_id),
                            activity_id=activity.id,
                            payload={"old_close_date": old_close.isoformat(), "new_close_date": new_close.isoformat()},
                        )
                    )
                    result.notified += 1

        if "duration" in result.changed:
            recompute_time_remaining(db, activity, now)

        if items is not None:
            _replace_items(db, activity, items)
            reset_draft_results(db, activity.id)
            result.changed.append("items")

        activity.updated_at = now
        db.add(activity)

    recompute_final_results(db, activity, clock)
    result.recomputed = True
    db.refresh(activity)
    logger.info("Updated activity %s: %s", activity.id, ", ".join(result.changed) or "no changes")
    return result


@dataclass
class ScheduleScanResult:
    completed: List[int] = field(default_factory=list)
    started_notices: int = 0
    reminders: int = 0


def _reminder_label(hours: int) -> str:
    if hours % 24 == 0:
        days = hours // 24
        return f"{days}_day" if days == 1 else f"{days}_days"
    return f"{hours}_hour" if hours == 1 else f"{hours}_hours"


def scan_activity_schedule(
    db: Session,
    clock: Clock,
    sink: NotificationSink,
    reminder_windows_hours: List[int] = (24, 1),
) -> ScheduleScanResult:
    """
    Periodic pass over activity timestamps.

    Marks activities past their close date as completed, announces activities
    that have opened (once per enrolled student) and sends deadline reminders
    for activities closing exactly one reminder window from now, to the
    minute.
    """
    now = clock.now()
    result = ScheduleScanResult()

    with atomic(db):
        activities = db.exec(select(Activity).order_by(Activity.id)).all()
        for activity in activities:
            open_date = as_utc(activity.open_date)
            close_date = as_utc(activity.close_date)

            if close_date <= now:
                if activity.completed_at is None:
                    activity.completed_at = now
                    db.add(activity)
                    result.completed.append(activity.id)
                    sink.emit(
                        NotificationEvent(
                            kind=NotificationKind.ACTIVITY_COMPLETED,
                            recipient=ProgressOwner(kind=UserRole.TEACHER, id=activity.teacher_id),
                            activity_id=activity.id,
                        )
                    )
                continue

            if open_date > now:
                continue

            student_ids = sorted(get_enrolled_student_ids(activity.class_id, db))
            for student_id in student_ids:
                recipient = ProgressOwner(kind=UserRole.STUDENT, id=student_id)
                if notification_already_sent(db, NotificationKind.ACTIVITY_STARTED, recipient, activity.id):
                    continue
                sink.emit(NotificationEvent(kind=NotificationKind.ACTIVITY_STARTED, recipient=recipient, activity_id=activity.id))
                result.started_notices += 1

            for hours in reminder_windows_hours:
                window_start = (now + timedelta(hours=hours)).replace(second=0, microsecond=0)
                window_end = window_start + timedelta(minutes=1)
                if not (window_start <= close_date < window_end):
                    continue
                for student_id in student_ids:
                    sink.emit(
                        NotificationEvent(
                            kind=NotificationKind.DEADLINE_REMINDER,
                            recipient=ProgressOwner(kind=UserRole.STUDENT, id=student_id),
                            activity_id=activity.id,
                            payload={"window": _reminder_label(hours), "close_date": close_date.isoformat()},
                        )
                    )
                    result.reminders += 1

    logger.info(
        "Schedule scan at %s: %d completed, %d started notices, %d reminders",
        now.isoformat(), len(result.completed), result.started_notices, result.reminders,
    )
    return result
