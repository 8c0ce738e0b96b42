import datetime as dt
from dataclasses import dataclass
from sqlmodel import SQLModel, Field, JSON, Column, UniqueConstraint
from typing import Dict, List, Optional, Any
from services.clock import as_utc
from ..enums import UserRole


@dataclass(frozen=True)
class ProgressOwner:
    """Who a draft (or a notification) belongs to: a student or a teacher."""

    kind: UserRole
    id: int

    @classmethod
    def for_user(cls, user: "User") -> "ProgressOwner":
        return cls(kind=UserRole(user.role), id=user.id)


class ActivityProgress(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    activity_id: int = Field(foreign_key="activity.id", index=True)
    owner_kind: UserRole
    owner_id: int = Field(index=True)
    draft_files: List[Any] | None = Field(default=None, sa_column=Column(JSON))
    draft_test_case_results: Dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    draft_time_remaining: int | None = None  # Seconds left when last saved
    draft_selected_language: str | None = None
    draft_score: float | None = None
    # Per-item maps, keyed by item id as a string
    draft_item_times: Dict[str, int] | None = Field(default=None, sa_column=Column(JSON))
    draft_check_code_runs: Dict[str, int] | None = Field(default=None, sa_column=Column(JSON))
    draft_deducted_scores: Dict[str, float] | None = Field(default=None, sa_column=Column(JSON))
    # Bumped on every check run; guards the run counter against lost updates
    check_run_version: int = 0
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    __table_args__ = (
        UniqueConstraint("activity_id", "owner_kind", "owner_id", name="unique_activity_progress_owner"),
    )

    @property
    def owner(self) -> ProgressOwner:
        return ProgressOwner(kind=self.owner_kind, id=self.owner_id)

    def end_time(self) -> Optional[dt.datetime]:
        if self.draft_time_remaining is None:
            return None
        return as_utc(self.updated_at) + dt.timedelta(seconds=self.draft_time_remaining)
