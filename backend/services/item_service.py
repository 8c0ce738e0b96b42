import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy import func
from sqlmodel import Session, select

from database.database import atomic
from models.database.db_models import Activity, ActivityItem, Item, TestCase, User, UserRole
from services.clock import Clock
from services.errors import NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ItemTestCaseInput:
    expected_output: str
    input_data: str = ""
    is_hidden: bool = False


@dataclass
class PointPropagation:
    item: Item
    activity_items: List[ActivityItem]
    activities: List[Activity]


def get_item_for_teacher(db: Session, item_id: int, teacher: User) -> Item:
    if teacher is None or teacher.role != UserRole.TEACHER:
        raise Unauthorized("Only teachers can edit items")
    item = db.get(Item, item_id)
    # Global items (no owner) are shared; personal items belong to one teacher
    if not item or (item.teacher_id is not None and item.teacher_id != teacher.id):
        raise NotFound("Item not found")
    return item


def active_test_case_points(db: Session, item_id: int, precision: int = 2) -> float:
    total = db.exec(
        select(func.coalesce(func.sum(TestCase.test_case_points), 0)).where(
            TestCase.item_id == item_id,
            TestCase.is_active == True,
        )
    ).one()
    return round(float(total), precision)


def recompute_activity_max_points(db: Session, activity: Activity, precision: int = 2) -> float:
    total = db.exec(
        select(func.coalesce(func.sum(ActivityItem.act_item_points), 0)).where(
            ActivityItem.activity_id == activity.id
        )
    ).one()
    activity.max_points = round(float(total), precision)
    db.add(activity)
    return activity.max_points


def update_item_test_cases(
    db: Session,
    item: Item,
    total_points: float,
    test_cases: List[ItemTestCaseInput],
    clock: Clock,
    precision: int = 2,
) -> PointPropagation:
    """
    Replace an item's test cases and push its new point total upward.

    ``total_points`` is split evenly over the new test cases. The item's
    points are then re-read as the sum of its active test cases, copied into
    every activity item that uses the item, and every such activity's max
    points is re-summed from its activity items. One transaction covers all
    three levels.
    """
    if total_points is None or total_points <= 0:
        raise ValidationError("Item points must be greater than zero")
    if not test_cases:
        raise ValidationError("At least one test case is required")
    for case in test_cases:
        if case.expected_output is None:
            raise ValidationError("Every test case needs an expected output")

    now = clock.now()
    per_case_points = total_points / len(test_cases)

    with atomic(db):
        existing = db.exec(
            select(TestCase).where(TestCase.item_id == item.id, TestCase.is_active == True)
        ).all()
        for old_case in existing:
            old_case.is_active = False
            db.add(old_case)

        for case in test_cases:
            db.add(
                TestCase(
                    item_id=item.id,
                    input_data=case.input_data or "",
                    expected_output=case.expected_output,
                    test_case_points=per_case_points,
                    is_hidden=case.is_hidden,
                )
            )
        db.flush()

        item.item_points = active_test_case_points(db, item.id, precision)
        item.updated_at = now
        db.add(item)

        activity_items = db.exec(select(ActivityItem).where(ActivityItem.item_id == item.id)).all()
        for activity_item in activity_items:
            activity_item.act_item_points = item.item_points
            db.add(activity_item)
        db.flush()

        activity_ids = sorted({activity_item.activity_id for activity_item in activity_items})
        activities = []
        if activity_ids:
            activities = db.exec(select(Activity).where(Activity.id.in_(activity_ids))).all()
        for activity in activities:
            recompute_activity_max_points(db, activity, precision)
            activity.updated_at = now

    db.refresh(item)
    logger.info(
        "Item %s now worth %s points across %d activities",
        item.id, item.item_points, len(activities),
    )
    return PointPropagation(item=item, activity_items=list(activity_items), activities=list(activities))


def get_active_test_cases(db: Session, item_id: int) -> List[TestCase]:
    return list(
        db.exec(
            select(TestCase)
            .where(TestCase.item_id == item_id, TestCase.is_active == True)
            .order_by(TestCase.id)
        ).all()
    )
