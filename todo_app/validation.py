"""Business-rule predicates shared by the input schemas and the services."""
import re
from datetime import date
from typing import Any, Optional

TITLE_MAX_LENGTH = 200
NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 8

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def is_valid_title(title: Any) -> bool:
    return (
        isinstance(title, str)
        and title.strip() != ""
        and len(title) <= TITLE_MAX_LENGTH
    )


def is_valid_due_date(due_date: Optional[date], today: Optional[date] = None) -> bool:
    """A due date may be empty, today or later."""
    return due_date is None or due_date >= (today or date.today())


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and EMAIL_PATTERN.match(email) is not None


def is_valid_password(password: Any) -> bool:
    return isinstance(password, str) and len(password) >= PASSWORD_MIN_LENGTH


def is_valid_name(name: Any) -> bool:
    return isinstance(name, str) and name.strip() != "" and len(name.strip()) <= NAME_MAX_LENGTH
