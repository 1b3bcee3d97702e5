import math
from dataclasses import dataclass, field
from datetime import date
from typing import ClassVar, Dict, List, Optional

from pydantic import ValidationError, field_validator
from sqlmodel import SQLModel

from .models import Todo, TodoBase, User
from .validation import (
    NAME_MAX_LENGTH, PASSWORD_MIN_LENGTH, TITLE_MAX_LENGTH,
    is_valid_due_date, is_valid_email, is_valid_name, is_valid_password, is_valid_title,
)


class UserCreate(SQLModel):
    """Schema for registration requests."""
    email: str
    name: str
    password: str

    @field_validator("email", mode="before")
    def email_format(cls, v):
        if isinstance(v, str):
            v = v.strip()
        if not is_valid_email(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("name", mode="before")
    def name_present(cls, v):
        if not is_valid_name(v):
            raise ValueError(f"Name is required and must be at most {NAME_MAX_LENGTH} characters")
        return v.strip()

    @field_validator("password", mode="before")
    def password_min_length(cls, v):
        if not is_valid_password(v):
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        return v


class TodoCreate(TodoBase):
    """Schema for todo creation requests."""

    @field_validator("title", mode="before")
    def title_present(cls, v):
        if not is_valid_title(v):
            raise ValueError(f"Title is required and must be at most {TITLE_MAX_LENGTH} characters")
        return v.strip()

    @field_validator("description", mode="before")
    def blank_description_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("due_date", mode="before")
    def blank_due_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("due_date")
    def due_date_not_in_past(cls, v: Optional[date]) -> Optional[date]:
        if not is_valid_due_date(v):
            raise ValueError("Due date must be today or later")
        return v


class TodoUpdate(TodoCreate):
    """Schema for todo update requests; replaces title, description and due date."""
    pass


def form_errors(exc: ValidationError) -> Dict[str, str]:
    """Map a pydantic ValidationError to one message per form field."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        loc = error.get("loc") or ("__root__",)
        name = str(loc[0])
        if name in errors:
            continue
        ctx_error = (error.get("ctx") or {}).get("error")
        if isinstance(ctx_error, Exception):
            errors[name] = str(ctx_error)
        elif error.get("type") in {"date_parsing", "date_from_datetime_parsing", "date_type"}:
            errors[name] = "Please enter a valid date (YYYY-MM-DD)"
        else:
            errors[name] = error.get("msg", "Invalid value")
    return errors


@dataclass(frozen=True)
class AuthenticatedUser:
    """The request's principal, handed to routes instead of ambient session state."""
    id: int
    name: str
    email: str
    enabled: bool
    session_id: str
    role: str = "ROLE_USER"

    @classmethod
    def from_user(cls, user: User, session_id: str) -> "AuthenticatedUser":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            enabled=user.enabled,
            session_id=session_id,
        )


@dataclass(frozen=True)
class ListQuery:
    """Owner-scoped listing parameters; `completed` and `search` are exclusive."""
    page: int = 0
    size: int = 10
    sort: str = "created_at"
    direction: str = "desc"
    completed: Optional[bool] = None
    search: Optional[str] = None


@dataclass
class TodoPage:
    items: List[Todo]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.size) if self.size > 0 else 0

    @property
    def has_previous(self) -> bool:
        return self.page > 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


@dataclass(frozen=True)
class TodoStatistics:
    total_count: int = 0
    completed_count: int = 0
    incomplete_count: int = 0
    overdue_count: int = 0

    EMPTY: ClassVar["TodoStatistics"]

    @property
    def completion_rate(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return self.completed_count / self.total_count * 100


TodoStatistics.EMPTY = TodoStatistics()


@dataclass(frozen=True)
class StatisticsResult:
    """Either counts or the error that prevented computing them."""
    statistics: Optional[TodoStatistics] = None
    error: Optional[Exception] = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, statistics: TodoStatistics) -> "StatisticsResult":
        return cls(statistics=statistics)

    @classmethod
    def failure(cls, error: Exception) -> "StatisticsResult":
        return cls(error=error)

    def or_empty(self) -> TodoStatistics:
        return self.statistics if self.statistics is not None else TodoStatistics.EMPTY
