from datetime import date, timedelta
from typing import List, Optional

from sqlmodel import Session

from logger import logger
from .exceptions import DuplicateEmailError, TodoNotFoundError, UserNotFoundError
from .models import Todo, User
from .repository import TodoRepository, UserRepository
from .schemas import (
    ListQuery, StatisticsResult, TodoCreate, TodoPage, TodoStatistics, TodoUpdate, UserCreate,
)
from .security import get_password_hash
from .validation import is_valid_due_date, is_valid_email, is_valid_password, is_valid_title

UPCOMING_DAYS = 3


class TodoService:
    """Todo business logic. Every operation is scoped to the requesting user's id."""

    def __init__(self, session: Session):
        self.todos = TodoRepository(session)

    def create_todo(self, todo_create: TodoCreate, user_id: int) -> Todo:
        todo = self.todos.create(todo_create, owner_id=user_id)
        logger.info(f"User {user_id} created todo {todo.id}")
        return todo

    def update_todo(self, todo_id: int, todo_update: TodoUpdate, user_id: int) -> Todo:
        todo = self._get_owned(todo_id, user_id)
        return self.todos.update(todo, todo_update)

    def delete_todo(self, todo_id: int, user_id: int) -> None:
        todo = self._get_owned(todo_id, user_id)
        self.todos.delete(todo)
        logger.info(f"User {user_id} deleted todo {todo_id}")

    def find_by_id_and_user(self, todo_id: int, user_id: int) -> Optional[Todo]:
        return self.todos.get_user_todo(todo_id, user_id)

    def list_todos(self, user_id: int, query: ListQuery) -> TodoPage:
        """A page of the user's todos; a non-blank search wins over the completion filter."""
        search = query.search.strip() if query.search else None
        if search:
            return self.todos.search_by_title(user_id, search, query.page, query.size,
                                              query.sort, query.direction)
        if query.completed is not None:
            return self.todos.get_by_owner_and_completed(user_id, query.completed, query.page,
                                                         query.size, query.sort, query.direction)
        return self.todos.get_by_owner(user_id, query.page, query.size, query.sort, query.direction)

    def find_by_user_newest_first(self, user_id: int, page: int = 0, size: int = 10) -> TodoPage:
        return self.todos.get_by_owner_newest_first(user_id, page, size)

    def find_by_user_due_first(self, user_id: int, page: int = 0, size: int = 10) -> TodoPage:
        return self.todos.get_by_owner_due_first(user_id, page, size)

    def find_overdue_todos(self, user_id: int, page: int = 0, size: int = 10) -> TodoPage:
        return self.todos.get_overdue(user_id, date.today(), page, size)

    def find_today_todos(self, user_id: int) -> List[Todo]:
        return self.todos.get_due_on(user_id, date.today())

    def find_upcoming_todos(self, user_id: int) -> List[Todo]:
        """Incomplete todos due tomorrow through three days from today."""
        today = date.today()
        return self.todos.get_due_between(user_id, today + timedelta(days=1),
                                          today + timedelta(days=UPCOMING_DAYS))

    def toggle_completion(self, todo_id: int, user_id: int) -> Todo:
        todo = self._get_owned(todo_id, user_id)
        todo.toggle_completion()
        return self.todos.save(todo)

    def mark_as_completed(self, todo_id: int, user_id: int) -> Todo:
        todo = self._get_owned(todo_id, user_id)
        todo.mark_completed()
        return self.todos.save(todo)

    def mark_as_incomplete(self, todo_id: int, user_id: int) -> Todo:
        todo = self._get_owned(todo_id, user_id)
        todo.mark_incomplete()
        return self.todos.save(todo)

    def compute_statistics(self, user_id: int) -> StatisticsResult:
        """Four independent owner-scoped counts, or the error that stopped them."""
        try:
            statistics = TodoStatistics(
                total_count=self.todos.count_by_owner(user_id),
                completed_count=self.todos.count_by_owner_and_completed(user_id, True),
                incomplete_count=self.todos.count_by_owner_and_completed(user_id, False),
                overdue_count=self.todos.count_overdue(user_id, date.today()),
            )
        except Exception as e:
            return StatisticsResult.failure(e)
        return StatisticsResult.success(statistics)

    def get_todo_statistics(self, user_id: int) -> TodoStatistics:
        """Statistics for display. Failures degrade to all zeros instead of raising."""
        result = self.compute_statistics(user_id)
        if not result.ok:
            logger.warning(f"Statistics unavailable for user {user_id}, showing zeros: {result.error!r}")
        return result.or_empty()

    @staticmethod
    def is_valid_todo(todo: Optional[Todo]) -> bool:
        return todo is not None and is_valid_title(todo.title)

    @staticmethod
    def is_valid_due_date(due_date: Optional[date]) -> bool:
        return is_valid_due_date(due_date)

    def _get_owned(self, todo_id: int, user_id: int) -> Todo:
        todo = self.todos.get_user_todo(todo_id, user_id)
        if todo is None:
            logger.info(f"Todo {todo_id} not found for user {user_id}")
            raise TodoNotFoundError(todo_id)
        return todo


class UserService:
    """Registration and account management."""

    def __init__(self, session: Session):
        self.users = UserRepository(session)

    def register_user(self, user_create: UserCreate) -> User:
        # Fast path; the unique index still decides under a race
        if self.users.exists_by_email(user_create.email):
            raise DuplicateEmailError(user_create.email)

        hashed_password = get_password_hash(user_create.password)
        user = self.users.create(
            email=user_create.email,
            name=user_create.name,
            hashed_password=hashed_password,
        )
        logger.info(f"Registered user {user.email}")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.users.get_by_email(email)

    def find_by_email_and_enabled(self, email: str) -> Optional[User]:
        return self.users.get_enabled_by_email(email)

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def find_all_users(self) -> List[User]:
        return self.users.get_all()

    def find_by_name_containing(self, name: str) -> List[User]:
        return self.users.search_enabled_by_name(name)

    def change_password(self, user_id: int, new_password: str) -> User:
        user = self._get(user_id)
        user.hashed_password = get_password_hash(new_password)
        return self.users.save(user)

    def disable_user(self, user_id: int) -> User:
        user = self._get(user_id)
        user.enabled = False
        logger.info(f"Disabled user {user.email}")
        return self.users.save(user)

    def enable_user(self, user_id: int) -> User:
        user = self._get(user_id)
        user.enabled = True
        return self.users.save(user)

    def exists_by_email(self, email: str) -> bool:
        return self.users.exists_by_email(email)

    def count_users(self) -> int:
        return self.users.count()

    def count_enabled_users(self) -> int:
        return self.users.count_enabled()

    @staticmethod
    def is_valid_password(password: Optional[str]) -> bool:
        return is_valid_password(password)

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return is_valid_email(email)

    def _get(self, user_id: int) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user
