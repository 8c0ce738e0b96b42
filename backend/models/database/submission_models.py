import datetime as dt
from sqlmodel import SQLModel, Field, Relationship, JSON, Column, UniqueConstraint
from typing import List, Optional, Any


class ActivitySubmission(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    item_id: int = Field(foreign_key="item.id")
    attempt_no: int  # 1-based, per student and activity
    code_submission: List[Any] | None = Field(default=None, sa_column=Column(JSON))  # Serialized file list
    raw_score: float = 0  # Score reported for the item before check-code deductions
    score: float = 0
    item_time_spent: int = 0  # Seconds
    overall_time_spent: int | None = None  # Seconds, as reported for the whole attempt
    check_code_runs: int = 0
    rank: int | None = None
    submitted_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    # Relationships
    student: Optional["User"] = Relationship()

    __table_args__ = (
        UniqueConstraint("activity_id", "student_id", "item_id", "attempt_no", name="unique_submission_attempt_item"),
    )


class ActivityStudent(SQLModel, table=True):
    """Per student, per activity summary that leaderboards read."""

    id: int | None = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    attempts_taken: int = 0
    final_score: float | None = None
    final_time_spent: int | None = None
    rank: int | None = None
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    # Relationships
    student: Optional["User"] = Relationship()

    __table_args__ = (
        UniqueConstraint("activity_id", "student_id", name="unique_activity_student"),
    )
