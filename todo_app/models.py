from datetime import date, datetime, timezone
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    """Timezone-aware current time; timestamp columns reject naive values."""
    return datetime.now(timezone.utc)


class UserBase(SQLModel):
    """Base model for User with common fields."""
    email: str = Field(index=True, unique=True, max_length=255)
    name: str = Field(max_length=100)
    hashed_password: str = Field()
    enabled: bool = Field(default=True)


class User(UserBase, table=True):
    """User DB model for storing in the database."""
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
    todos: List["Todo"] = Relationship(back_populates="owner")

    def verify_password(self, password: str) -> bool:
        """Verify password against the stored hash."""
        # Import here to avoid circular imports
        from .security import verify_password
        return verify_password(password, self.hashed_password)


class TodoBase(SQLModel):
    """Base model for Todo with common fields."""
    title: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None)
    due_date: Optional[date] = Field(default=None, index=True)


class Todo(TodoBase, table=True):
    """Todo DB model for storing in the database."""
    id: Optional[int] = Field(default=None, primary_key=True)
    completed: bool = Field(default=False, index=True)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    owner_id: Optional[int] = Field(default=None, foreign_key="user.id", nullable=False, index=True)
    owner: Optional[User] = Relationship(back_populates="todos")

    def mark_completed(self) -> None:
        self.completed = True
        self.completed_at = utcnow()

    def mark_incomplete(self) -> None:
        self.completed = False
        self.completed_at = None

    def toggle_completion(self) -> None:
        if self.completed:
            self.mark_incomplete()
        else:
            self.mark_completed()

    def is_overdue(self, today: Optional[date] = None) -> bool:
        """Due date strictly before today and not completed."""
        if self.completed or self.due_date is None:
            return False
        return self.due_date < (today or date.today())

    def is_due_today(self, today: Optional[date] = None) -> bool:
        if self.completed or self.due_date is None:
            return False
        return self.due_date == (today or date.today())


class LoginSession(SQLModel, table=True):
    """Server-side login session; the cookie only carries a signed reference to it."""
    sid: str = Field(primary_key=True, max_length=64)
    user_id: int = Field(foreign_key="user.id", index=True)
    expires_at: int = Field()  # unix seconds
    flash_message: Optional[str] = Field(default=None)
    flash_category: Optional[str] = Field(default=None, max_length=16)
