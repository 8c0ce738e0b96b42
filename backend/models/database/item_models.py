import datetime as dt
from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional


class Item(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str = ""
    item_points: float = 0  # Sum of the active test cases' points
    teacher_id: int | None = Field(default=None, foreign_key="user.id")  # None for global items
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    # Relationships
    test_cases: List["TestCase"] = Relationship(back_populates="item", sa_relationship_kwargs={"cascade": "all, delete"})
    activity_items: List["ActivityItem"] = Relationship(back_populates="item")


class TestCase(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    item_id: int = Field(foreign_key="item.id", index=True)
    input_data: str = ""
    expected_output: str
    test_case_points: float = 0
    is_hidden: bool = False
    is_active: bool = True  # Replaced test cases are kept but no longer count

    # Relationships
    item: Optional["Item"] = Relationship(back_populates="test_cases")
