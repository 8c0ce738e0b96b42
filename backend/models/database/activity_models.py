import datetime as dt
from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from services.clock import as_utc
from ..enums import ActivityDifficulty, FinalScorePolicy


class Activity(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="class.id", index=True)
    teacher_id: int = Field(foreign_key="user.id")
    title: str
    description: str = ""
    difficulty: ActivityDifficulty = Field(default=ActivityDifficulty.BEGINNER)
    duration: str | None = None  # HH:MM:SS
    max_attempts: int = 0  # 0 means unlimited
    open_date: dt.datetime
    close_date: dt.datetime
    max_points: float = 0  # Sum of the activity items' points
    final_score_policy: FinalScorePolicy = Field(default=FinalScorePolicy.LAST_ATTEMPT)
    exam_mode: bool = False
    randomized_items: bool = False
    check_code_restriction: bool = False
    max_check_code_runs: int | None = None
    check_code_deduction: float | None = None  # Percent per extra run
    completed_at: dt.datetime | None = None
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    # Relationships
    class_: Optional["Class"] = Relationship(back_populates="activities")
    items: List["ActivityItem"] = Relationship(back_populates="activity", sa_relationship_kwargs={"cascade": "all, delete"})

    @property
    def duration_seconds(self) -> int | None:
        if not self.duration:
            return None
        hours, minutes, seconds = (int(part) for part in self.duration.split(":"))
        return hours * 3600 + minutes * 60 + seconds

    def is_open(self, now: dt.datetime) -> bool:
        """Whether attempts are accepted at ``now`` (aware, UTC)."""
        return as_utc(self.open_date) <= now < as_utc(self.close_date)


class ActivityItem(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    item_id: int = Field(foreign_key="item.id", index=True)
    act_item_points: float

    # Relationships
    activity: Optional["Activity"] = Relationship(back_populates="items")
    item: Optional["Item"] = Relationship(back_populates="activity_items")
