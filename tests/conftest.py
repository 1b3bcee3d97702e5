from datetime import date, timedelta
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlmodel.pool import StaticPool

from todo_app.database import get_session, init_db
from todo_app.main import app
from todo_app.models import Todo
from todo_app.repository import TodoRepository
from todo_app.schemas import TodoCreate, UserCreate
from todo_app.services import UserService

TEST_PASSWORD = "testpassword"


# Use in-memory SQLite for testing
@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session):
    def get_test_session():
        yield session

    app.dependency_overrides = {}
    app.dependency_overrides[get_session] = get_test_session

    yield TestClient(app)

    app.dependency_overrides = {}


@pytest.fixture(name="test_user")
def test_user_fixture(session):
    """A registered, enabled user."""
    return UserService(session).register_user(
        UserCreate(email="test@example.com", name="Test User", password=TEST_PASSWORD)
    )


@pytest.fixture(name="other_user")
def other_user_fixture(session):
    """A second user whose todos must stay invisible to test_user."""
    return UserService(session).register_user(
        UserCreate(email="other@example.com", name="Other User", password="otherpassword")
    )


@pytest.fixture(name="todo_factory")
def todo_factory_fixture(session):
    """
    Build todos directly through the repository.

    Bypasses the input schema so tests can create todos that are already
    overdue or completed.
    """
    todo_repo = TodoRepository(session)

    def make(owner_id: int, title: str = "Todo", description: Optional[str] = None,
             due_date: Optional[date] = None, completed: bool = False) -> Todo:
        todo = Todo(title=title, description=description, due_date=due_date, owner_id=owner_id)
        if completed:
            todo.mark_completed()
        return todo_repo.save(todo)

    return make


@pytest.fixture(name="test_todo")
def test_todo_fixture(session, test_user):
    todo_repo = TodoRepository(session)
    todo_create = TodoCreate(
        title="Test Todo",
        description="This is a test todo",
        due_date=date.today() + timedelta(days=7),
    )
    return todo_repo.create(todo_create, owner_id=test_user.id)


def login(client: TestClient, email: str, password: str):
    return client.post(
        "/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


@pytest.fixture(name="auth_client")
def auth_client_fixture(client, test_user):
    """A client holding a valid session cookie for test_user."""
    response = login(client, test_user.email, TEST_PASSWORD)
    assert response.status_code == 303
    return client
