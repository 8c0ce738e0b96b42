import uuid
import datetime as dt
from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from ..enums import UserRole


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    hashed_password: str
    role: UserRole = Field(default=UserRole.STUDENT)
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    
    # Authentication relationships
    auth_sessions: List["AuthSession"] = Relationship(back_populates="user", sa_relationship_kwargs={"cascade": "all, delete"})
    
    # Class relationships
    class_memberships: List["ClassMembership"] = Relationship(back_populates="user", sa_relationship_kwargs={"cascade": "all, delete"})

    @property
    def display_name(self) -> str:
        return f"{self.last_name.upper()}, {self.first_name}"


class AuthSession(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    expires_at: dt.datetime
    user: Optional[User] = Relationship(back_populates="auth_sessions") 
