from enum import Enum
from typing import Optional
from datetime import datetime
from .utils import now_utc
from sqlmodel import SQLModel, Field


class Role(str, Enum):
    user = 'user'
    admin = 'admin'


class Priority(str, Enum):
    low = 'Low'
    medium = 'Medium'
    high = 'High'


TITLE_MAX = 100
DESCRIPTION_MAX = 500
CATEGORY_MAX = 50
PASSWORD_MIN = 6


class User(SQLModel, table=True):
    """Registered account. The raw password is never stored, only its hash."""
    id: Optional[int] = Field(default=None, primary_key=True)
    display_name: str
    phone: str
    # stored trimmed + lowercased; uniqueness enforced by the index
    email: str = Field(index=True, sa_column_kwargs={"unique": True})
    password_hash: str
    # Role.user or Role.admin. Only admin scripts promote users.
    role: str = Field(default=Role.user.value)
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    completed: bool = Field(default=False, index=True)
    # 'Low' | 'Medium' | 'High'; ranking treats anything else as Medium
    priority: str = Field(default=Priority.medium.value, index=True)
    category: str = Field(default='Task', index=True)
    # Set once from the creating identity and never reassigned.
    owner_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime | None = Field(default_factory=now_utc, index=True)
    updated_at: datetime | None = Field(default_factory=now_utc)


class Session(SQLModel, table=True):
    """Server-side session store for browser clients.

    session_token is a secure random string stored in an HttpOnly cookie and
    mapped to a snapshot of the identity (user_id, role, display_name).
    expires_at is absolute; expired rows are removed when looked up.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    session_token: str = Field(sa_column_kwargs={"unique": True, "index": True})
    user_id: int = Field(foreign_key="user.id", index=True)
    role: str = Field(default=Role.user.value)
    display_name: str = ''
    created_at: datetime | None = Field(default_factory=now_utc)
    expires_at: Optional[datetime] = None
