"""
Pytest configuration and fixtures
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

# Add the backend directory to the path
backend_root = Path(__file__).parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from database.database import init_db
from models.database.db_models import (
    Class, ClassMembership, ClassRole, FinalScorePolicy, Item, User, UserRole
)
from services.activity_service import ActivityItemInput, create_activity
from services.clock import FixedClock
from services.submission_service import ItemSubmissionInput, finalize_submission

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


class Factory:
    """Builds the rows most tests need: a class, its people and its activities."""

    def __init__(self, db: Session, clock: FixedClock):
        self.db = db
        self.clock = clock
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def teacher(self, first_name="Ada", last_name="Lovelace") -> User:
        return self._user(UserRole.TEACHER, first_name, last_name)

    def student(self, first_name="Sam", last_name="Student") -> User:
        return self._user(UserRole.STUDENT, first_name, last_name)

    def _user(self, role, first_name, last_name) -> User:
        user = User(
            email=f"user{self._next()}@example.com",
            hashed_password="not-a-real-hash",
            role=role,
            first_name=first_name,
            last_name=last_name,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def classroom(self, teacher: User) -> Class:
        class_obj = Class(code=f"CLS{self._next():05d}", name="Intro to Programming")
        self.db.add(class_obj)
        self.db.commit()
        self.db.refresh(class_obj)
        self.db.add(ClassMembership(class_id=class_obj.id, user_id=teacher.id, role=ClassRole.INSTRUCTOR))
        self.db.commit()
        return class_obj

    def enroll(self, class_obj: Class, *students: User):
        for student in students:
            self.db.add(ClassMembership(class_id=class_obj.id, user_id=student.id, role=ClassRole.STUDENT))
        self.db.commit()

    def unenroll(self, class_obj: Class, student: User):
        for membership in class_obj.memberships:
            if membership.user_id == student.id:
                membership.is_active = False
                self.db.add(membership)
        self.db.commit()

    def item(self, teacher: User, points: float = 0, name=None) -> Item:
        item = Item(name=name or f"Item {self._next()}", teacher_id=teacher.id, item_points=points)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def activity(self, teacher: User, class_obj: Class, items, **settings):
        """``items`` is a list of (Item, points) pairs."""
        values = {
            "title": "Loops practice",
            "open_date": NOW - timedelta(hours=1),
            "close_date": NOW + timedelta(days=7),
            "final_score_policy": FinalScorePolicy.LAST_ATTEMPT,
        }
        values.update(settings)
        entries = [ActivityItemInput(item_id=item.id, act_item_points=points) for item, points in items]
        return create_activity(self.db, teacher, class_obj.id, values, entries, self.clock)

    def finalize(self, activity, student, scores, times=None, overall_time_spent=None):
        """``scores`` maps item id to score; ``times`` maps item id to seconds."""
        times = times or {}
        entries = [
            ItemSubmissionInput(item_id=item_id, score=score, item_time_spent=times.get(item_id, 60))
            for item_id, score in scores.items()
        ]
        return finalize_submission(self.db, activity, student, entries, self.clock, overall_time_spent)


@pytest.fixture
def factory(db, clock):
    return Factory(db, clock)


@pytest.fixture
def course(factory):
    """A teacher, their class, two items and one activity worth 100 points."""
    teacher = factory.teacher()
    class_obj = factory.classroom(teacher)
    first = factory.item(teacher, 60)
    second = factory.item(teacher, 40)
    activity = factory.activity(teacher, class_obj, [(first, 60), (second, 40)])
    return {
        "teacher": teacher,
        "class": class_obj,
        "items": (first, second),
        "activity": activity,
    }
