from datetime import date
from typing import Generic, List, Optional, Sequence, Tuple, Type, TypeVar, cast

from sqlalchemy import func, nulls_last
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.selectable import Select
from sqlmodel import Session, col, select

from .exceptions import DuplicateEmailError
from .models import LoginSession, Todo, User, utcnow
from .schemas import ListQuery, TodoCreate, TodoPage, TodoUpdate

T = TypeVar('T')

MAX_PAGE_SIZE = 100

SORTABLE_FIELDS = {
    "id": Todo.id,
    "title": Todo.title,
    "completed": Todo.completed,
    "due_date": Todo.due_date,
    "created_at": Todo.created_at,
    "updated_at": Todo.updated_at,
}
SORT_ALIASES = {"createdAt": "created_at", "updatedAt": "updated_at", "dueDate": "due_date"}
DEFAULT_SORT = "created_at"


def normalize_sort(sort: Optional[str]) -> str:
    name = (sort or "").strip()
    name = SORT_ALIASES.get(name, name)
    return name if name in SORTABLE_FIELDS else DEFAULT_SORT


def normalize_direction(direction: Optional[str]) -> str:
    return "asc" if (direction or "").strip().lower() == "asc" else "desc"


def clamp_page(page: int, size: int) -> Tuple[int, int]:
    return max(page, 0), min(max(size, 1), MAX_PAGE_SIZE)


def _is_duplicate_email(error: IntegrityError) -> bool:
    message = str(error.orig)
    # SQLite reports the column, PostgreSQL the unique index
    return "UNIQUE constraint failed: user.email" in message or "ix_user_email" in message


class BaseRepository(Generic[T]):
    """Generic base repository for CRUD operations."""

    def __init__(self, session: Session, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    def get(self, id) -> Optional[T]:
        """Get an item by primary key."""
        return self.session.get(self.model_class, id)

    def get_all(self) -> List[T]:
        """Every row of the model, unpaged."""
        query = cast(Select, select(self.model_class))
        result = self.session.exec(query).all()
        return cast(List[T], result)

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(self.model_class)).one()

    def save(self, db_obj: T) -> T:
        """Persist a new or modified instance and return it refreshed."""
        try:
            self.session.add(db_obj)
            self.session.commit()
            self.session.refresh(db_obj)
            return db_obj
        except Exception:
            self.session.rollback()
            raise


class UserRepository(BaseRepository[User]):
    """Repository for User entity."""

    def __init__(self, session: Session):
        super().__init__(session, User)

    def get_by_email(self, email: str) -> Optional[User]:
        query = cast(Select, select(User).where(User.email == email))
        return self.session.exec(query).first()

    def get_enabled_by_email(self, email: str) -> Optional[User]:
        """Credential-store lookup: disabled accounts are invisible to login."""
        query = select(User).where(User.email == email, User.enabled == True)  # noqa: E712
        return self.session.exec(query).first()

    def exists_by_email(self, email: str) -> bool:
        query = select(func.count()).select_from(User).where(User.email == email)
        return self.session.exec(query).one() > 0

    def count_enabled(self) -> int:
        query = select(func.count()).select_from(User).where(User.enabled == True)  # noqa: E712
        return self.session.exec(query).one()

    def search_enabled_by_name(self, name: str) -> List[User]:
        query = (
            select(User)
            .where(col(User.name).contains(name, autoescape=True), User.enabled == True)  # noqa: E712
            .order_by(col(User.id))
        )
        return list(self.session.exec(query).all())

    def create(self, email: str, name: str, hashed_password: str) -> User:
        """Insert a new enabled user; the unique email index is the final word on duplicates."""
        db_user = User(email=email, name=name, hashed_password=hashed_password, enabled=True)
        try:
            self.session.add(db_user)
            self.session.commit()
            self.session.refresh(db_user)
            return db_user
        except IntegrityError as e:
            self.session.rollback()
            if _is_duplicate_email(e):
                raise DuplicateEmailError(email) from e
            raise
        except Exception:
            self.session.rollback()
            raise


class TodoRepository(BaseRepository[Todo]):
    """Repository for Todo entity. Every query is scoped to an owner."""

    def __init__(self, session: Session):
        super().__init__(session, Todo)

    def get_user_todo(self, todo_id: int, owner_id: int) -> Optional[Todo]:
        """Get a specific todo owned by a user."""
        query = cast(Select, select(Todo)
                     .where(Todo.id == todo_id, Todo.owner_id == owner_id))
        return self.session.exec(query).first()

    def _page(self, conditions: Sequence, page: int, size: int, order_by: Sequence) -> TodoPage:
        page, size = clamp_page(page, size)
        total = self.session.exec(
            select(func.count()).select_from(Todo).where(*conditions)
        ).one()
        query = (
            select(Todo)
            .where(*conditions)
            .order_by(*order_by)
            .offset(page * size)
            .limit(size)
        )
        items = list(self.session.exec(query).all())
        return TodoPage(items=items, total=total, page=page, size=size)

    @staticmethod
    def _ordering(sort: Optional[str], direction: Optional[str]) -> list:
        column = col(SORTABLE_FIELDS[normalize_sort(sort)])
        ordered = column.asc() if normalize_direction(direction) == "asc" else column.desc()
        # id keeps pages stable when the sort column has ties
        return [nulls_last(ordered), col(Todo.id).desc()]

    def list(self, owner_id: int, query: Optional[ListQuery] = None) -> TodoPage:
        q = query or ListQuery()
        conditions = [Todo.owner_id == owner_id]
        if q.search:
            conditions.append(func.lower(Todo.title).contains(q.search.lower(), autoescape=True))
        elif q.completed is not None:
            conditions.append(Todo.completed == q.completed)
        return self._page(conditions, q.page, q.size, self._ordering(q.sort, q.direction))

    def get_by_owner(self, owner_id: int, page: int = 0, size: int = 10,
                     sort: str = DEFAULT_SORT, direction: str = "desc") -> TodoPage:
        return self.list(owner_id, ListQuery(page=page, size=size, sort=sort, direction=direction))

    def get_by_owner_and_completed(self, owner_id: int, completed: bool, page: int = 0,
                                   size: int = 10, sort: str = DEFAULT_SORT,
                                   direction: str = "desc") -> TodoPage:
        return self.list(owner_id, ListQuery(page=page, size=size, sort=sort,
                                             direction=direction, completed=completed))

    def search_by_title(self, owner_id: int, title: str, page: int = 0, size: int = 10,
                        sort: str = DEFAULT_SORT, direction: str = "desc") -> TodoPage:
        """Case-insensitive substring match on the title."""
        return self.list(owner_id, ListQuery(page=page, size=size, sort=sort,
                                             direction=direction, search=title))

    def get_by_owner_newest_first(self, owner_id: int, page: int = 0, size: int = 10) -> TodoPage:
        return self._page([Todo.owner_id == owner_id], page, size,
                          [col(Todo.created_at).desc(), col(Todo.id).desc()])

    def get_by_owner_due_first(self, owner_id: int, page: int = 0, size: int = 10) -> TodoPage:
        return self._page([Todo.owner_id == owner_id], page, size,
                          [nulls_last(col(Todo.due_date).asc()), col(Todo.id).asc()])

    def get_overdue(self, owner_id: int, today: date, page: int = 0, size: int = 10) -> TodoPage:
        conditions = [Todo.owner_id == owner_id, col(Todo.due_date) < today, Todo.completed == False]  # noqa: E712
        return self._page(conditions, page, size, [col(Todo.due_date).asc(), col(Todo.id).asc()])

    def get_due_on(self, owner_id: int, day: date) -> List[Todo]:
        query = (
            select(Todo)
            .where(Todo.owner_id == owner_id, Todo.due_date == day, Todo.completed == False)  # noqa: E712
            .order_by(col(Todo.id))
        )
        return list(self.session.exec(query).all())

    def get_due_between(self, owner_id: int, start: date, end: date) -> List[Todo]:
        """Incomplete todos due in [start, end], earliest first."""
        query = (
            select(Todo)
            .where(
                Todo.owner_id == owner_id,
                col(Todo.due_date).between(start, end),
                Todo.completed == False,  # noqa: E712
            )
            .order_by(col(Todo.due_date).asc(), col(Todo.id).asc())
        )
        return list(self.session.exec(query).all())

    def count_by_owner(self, owner_id: int) -> int:
        query = select(func.count()).select_from(Todo).where(Todo.owner_id == owner_id)
        return self.session.exec(query).one()

    def count_by_owner_and_completed(self, owner_id: int, completed: bool) -> int:
        query = (
            select(func.count())
            .select_from(Todo)
            .where(Todo.owner_id == owner_id, Todo.completed == completed)
        )
        return self.session.exec(query).one()

    def count_overdue(self, owner_id: int, today: date) -> int:
        query = (
            select(func.count())
            .select_from(Todo)
            .where(Todo.owner_id == owner_id, col(Todo.due_date) < today,
                   Todo.completed == False)  # noqa: E712
        )
        return self.session.exec(query).one()

    def create(self, todo_create: TodoCreate, owner_id: int) -> Todo:
        """Create a new, not yet completed todo for a user."""
        todo_data = todo_create.model_dump()
        db_todo = Todo(**todo_data, owner_id=owner_id, completed=False)
        return self.save(db_todo)

    def update(self, db_todo: Todo, todo_update: TodoUpdate) -> Todo:
        """Copy the editable fields onto an existing todo; completion state is untouched."""
        db_todo.title = todo_update.title
        db_todo.description = todo_update.description
        db_todo.due_date = todo_update.due_date
        return self.save(db_todo)

    def save(self, db_obj: Todo) -> Todo:
        db_obj.updated_at = utcnow()
        return super().save(db_obj)

    def delete(self, db_todo: Todo) -> None:
        try:
            self.session.delete(db_todo)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise


class LoginSessionRepository(BaseRepository[LoginSession]):
    """Server-side session rows backing the login cookie."""

    def __init__(self, session: Session):
        super().__init__(session, LoginSession)

    def create(self, sid: str, user_id: int, expires_at: int) -> LoginSession:
        return self.save(LoginSession(sid=sid, user_id=user_id, expires_at=expires_at))

    def delete_by_sid(self, sid: str) -> int:
        return self._delete_where(LoginSession.sid == sid)

    def delete_for_user(self, user_id: int, keep_sid: Optional[str] = None) -> int:
        """Drop every session of a user except `keep_sid`; returns how many went away."""
        conditions = [LoginSession.user_id == user_id]
        if keep_sid is not None:
            conditions.append(LoginSession.sid != keep_sid)
        return self._delete_where(*conditions)

    def _delete_where(self, *conditions) -> int:
        rows = self.session.exec(select(LoginSession).where(*conditions)).all()
        try:
            for row in rows:
                self.session.delete(row)
            self.session.commit()
            return len(rows)
        except Exception:
            self.session.rollback()
            raise

    def set_flash(self, sid: str, message: str, category: str = "success") -> None:
        login_session = self.get(sid)
        if login_session is None:
            return
        login_session.flash_message = message
        login_session.flash_category = category
        self.save(login_session)

    def pop_flash(self, sid: str) -> Optional[Tuple[str, str]]:
        """Return and clear the pending flash message as (category, message)."""
        login_session = self.get(sid)
        if login_session is None or not login_session.flash_message:
            return None
        flash = (login_session.flash_category or "success", login_session.flash_message)
        login_session.flash_message = None
        login_session.flash_category = None
        self.save(login_session)
        return flash
