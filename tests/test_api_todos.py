# ---------- tests/test_api_todos.py ----------
from datetime import date, timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session

from todo_app.repository import TodoRepository


def test_list_todos(auth_client: TestClient, test_todo):
    response = auth_client.get("/todos")

    assert response.status_code == 200
    assert "<h1>My todos</h1>" in response.text
    assert "Test Todo" in response.text
    assert '<strong id="stat-total">1</strong>' in response.text
    assert '<strong id="stat-rate">0.0%</strong>' in response.text


def test_list_todos_empty(auth_client: TestClient):
    response = auth_client.get("/todos")

    assert response.status_code == 200
    assert "No todos found." in response.text


def test_list_todos_hides_other_users_todos(auth_client: TestClient, other_user, todo_factory):
    todo_factory(other_user.id, "Secret plan")

    response = auth_client.get("/todos")

    assert "Secret plan" not in response.text
    assert '<strong id="stat-total">0</strong>' in response.text


def test_list_todos_statistics(auth_client: TestClient, test_user, todo_factory):
    for i in range(3):
        todo_factory(test_user.id, f"Done {i}", completed=True)
    todo_factory(test_user.id, "Late", due_date=date.today() - timedelta(days=1))
    todo_factory(test_user.id, "Open")

    response = auth_client.get("/todos")

    assert '<strong id="stat-completed">3</strong>' in response.text
    assert '<strong id="stat-incomplete">2</strong>' in response.text
    assert '<strong id="stat-overdue">1</strong>' in response.text
    assert '<strong id="stat-rate">60.0%</strong>' in response.text


def test_list_todos_due_today_and_upcoming(auth_client: TestClient, test_user, todo_factory):
    today = date.today()
    todo_factory(test_user.id, "Pay bills", due_date=today)
    todo_factory(test_user.id, "Dentist", due_date=today + timedelta(days=2))

    response = auth_client.get("/todos")

    assert "<h2>Due today</h2>" in response.text
    assert "<h2>Upcoming</h2>" in response.text
    assert "Pay bills" in response.text
    assert "Dentist" in response.text


def test_list_todos_search_takes_precedence(auth_client: TestClient, test_user, todo_factory):
    todo_factory(test_user.id, "Buy milk")
    todo_factory(test_user.id, "Walk dog", completed=True)

    response = auth_client.get("/todos", params={"search": "MILK", "completed": "true"})

    assert response.status_code == 200
    assert "Buy milk" in response.text
    assert "Walk dog" not in response.text


def test_list_todos_completed_filter(auth_client: TestClient, test_user, todo_factory):
    todo_factory(test_user.id, "Buy milk")
    todo_factory(test_user.id, "Walk dog", completed=True)

    response = auth_client.get("/todos", params={"completed": "true"})

    assert "Walk dog" in response.text
    assert "Buy milk" not in response.text


def test_list_todos_blank_completed_means_all(auth_client: TestClient, test_user, todo_factory):
    """An empty completed value, as an "All" option submits, applies no filter."""
    todo_factory(test_user.id, "Buy milk")
    todo_factory(test_user.id, "Walk dog", completed=True)

    response = auth_client.get("/todos?completed=")

    assert response.status_code == 200
    assert "Buy milk" in response.text
    assert "Walk dog" in response.text

    open_only = auth_client.get("/todos", params={"completed": "FALSE"})
    assert "Buy milk" in open_only.text
    assert "Walk dog" not in open_only.text


def test_list_todos_pagination(auth_client: TestClient, test_user, todo_factory):
    for i in range(3):
        todo_factory(test_user.id, f"Todo {i}")

    first = auth_client.get("/todos", params={"size": 2, "sort": "title", "direction": "asc"})
    second = auth_client.get("/todos", params={"page": 1, "size": 2, "sort": "title", "direction": "asc"})

    assert "Page 1 of 2" in first.text
    assert "Todo 0" in first.text and "Todo 2" not in first.text
    assert "Page 2 of 2" in second.text
    assert "Todo 2" in second.text


def test_list_todos_tolerates_bad_paging(auth_client: TestClient, test_todo):
    response = auth_client.get("/todos", params={"page": -4, "size": 100000, "sort": "password"})

    assert response.status_code == 200
    assert "Test Todo" in response.text
    assert 'name="size" value="100"' in response.text


def test_new_todo_form(auth_client: TestClient):
    response = auth_client.get("/todos/new")

    assert response.status_code == 200
    assert "<h1>New todo</h1>" in response.text


def test_create_todo(auth_client: TestClient, session: Session, test_user):
    due = (date.today() + timedelta(days=2)).isoformat()
    response = auth_client.post(
        "/todos",
        data={"title": "New Todo", "description": "Created from the form", "due_date": due},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/todos"

    page = TodoRepository(session).get_by_owner(test_user.id)
    assert page.total == 1
    todo = page.items[0]
    assert todo.title == "New Todo"
    assert todo.description == "Created from the form"
    assert todo.due_date.isoformat() == due
    assert todo.completed is False

    # The flash message is shown once
    listing = auth_client.get("/todos")
    assert "Todo created." in listing.text
    assert "Todo created." not in auth_client.get("/todos").text


def test_create_todo_without_due_date(auth_client: TestClient, session: Session, test_user):
    response = auth_client.post(
        "/todos",
        data={"title": "Someday", "description": "", "due_date": ""},
        follow_redirects=False,
    )

    assert response.status_code == 303
    todo = TodoRepository(session).get_by_owner(test_user.id).items[0]
    assert todo.due_date is None
    assert todo.description is None


def test_create_todo_requires_title(auth_client: TestClient, session: Session, test_user):
    response = auth_client.post("/todos", data={"title": "   ", "description": "Keep me"})

    assert response.status_code == 200
    assert "Title is required and must be at most 200 characters" in response.text
    assert "Keep me" in response.text
    assert TodoRepository(session).count_by_owner(test_user.id) == 0


def test_create_todo_rejects_past_due_date(auth_client: TestClient, session: Session, test_user):
    yesterday = (date.today() - timedelta(days=1)).isoformat()

    response = auth_client.post("/todos", data={"title": "Too late", "due_date": yesterday})

    assert response.status_code == 200
    assert "Due date must be today or later" in response.text
    assert TodoRepository(session).count_by_owner(test_user.id) == 0


def test_create_todo_rejects_unparseable_date(auth_client: TestClient):
    response = auth_client.post("/todos", data={"title": "Whenever", "due_date": "next tuesday"})

    assert response.status_code == 200
    assert "valid date" in response.text


def test_show_todo(auth_client: TestClient, test_todo):
    response = auth_client.get(f"/todos/{test_todo.id}")

    assert response.status_code == 200
    assert "Test Todo" in response.text
    assert "This is a test todo" in response.text


def test_show_other_users_todo_redirects(auth_client: TestClient, other_user, todo_factory):
    theirs = todo_factory(other_user.id, "Not yours")

    response = auth_client.get(f"/todos/{theirs.id}", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/todos?error=notfound"

    listing = auth_client.get(response.headers["location"])
    assert "Todo not found." in listing.text
    assert "Not yours" not in listing.text


def test_show_missing_todo_redirects(auth_client: TestClient):
    response = auth_client.get("/todos/9999", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/todos?error=notfound"


def test_edit_todo_form(auth_client: TestClient, test_todo):
    response = auth_client.get(f"/todos/{test_todo.id}/edit")

    assert response.status_code == 200
    assert "<h1>Edit todo</h1>" in response.text
    assert 'value="Test Todo"' in response.text
    assert f'value="{test_todo.due_date.isoformat()}"' in response.text


def test_edit_other_users_todo_redirects(auth_client: TestClient, other_user, todo_factory):
    theirs = todo_factory(other_user.id, "Not yours")

    response = auth_client.get(f"/todos/{theirs.id}/edit", follow_redirects=False)

    assert response.headers["location"] == "/todos?error=notfound"


def test_update_todo(auth_client: TestClient, session: Session, test_user, test_todo):
    test_todo.mark_completed()
    TodoRepository(session).save(test_todo)

    response = auth_client.post(
        f"/todos/{test_todo.id}",
        data={"title": "Updated Todo", "description": "", "due_date": ""},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/todos"

    session.refresh(test_todo)
    assert test_todo.title == "Updated Todo"
    assert test_todo.description is None
    assert test_todo.due_date is None
    # Editing never changes completion
    assert test_todo.completed is True
    assert "Todo updated." in auth_client.get("/todos").text


def test_update_todo_validation(auth_client: TestClient, session: Session, test_todo):
    response = auth_client.post(f"/todos/{test_todo.id}", data={"title": ""})

    assert response.status_code == 200
    assert "<h1>Edit todo</h1>" in response.text
    assert "Title is required" in response.text
    session.refresh(test_todo)
    assert test_todo.title == "Test Todo"


def test_update_other_users_todo(auth_client: TestClient, session: Session, other_user, todo_factory):
    theirs = todo_factory(other_user.id, "Not yours")

    response = auth_client.post(f"/todos/{theirs.id}", data={"title": "Mine now"},
                                follow_redirects=False)

    assert response.headers["location"] == "/todos?error=notfound"
    session.refresh(theirs)
    assert theirs.title == "Not yours"


def test_delete_todo(auth_client: TestClient, session: Session, test_user, test_todo):
    todo_id = test_todo.id

    response = auth_client.post(f"/todos/{todo_id}/delete", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/todos"
    assert TodoRepository(session).get_user_todo(todo_id, test_user.id) is None
    assert "Todo deleted." in auth_client.get("/todos").text


def test_delete_other_users_todo(auth_client: TestClient, session: Session, other_user, todo_factory):
    theirs = todo_factory(other_user.id, "Not yours")

    response = auth_client.post(f"/todos/{theirs.id}/delete", follow_redirects=False)

    assert response.status_code == 303
    assert TodoRepository(session).get_user_todo(theirs.id, other_user.id) is not None

    listing = auth_client.get("/todos")
    assert '<div class="message-card message-error">Todo not found.</div>' in listing.text


def test_toggle_todo(auth_client: TestClient, session: Session, test_todo):
    response = auth_client.post(f"/todos/{test_todo.id}/toggle", follow_redirects=False)

    assert response.status_code == 303
    session.refresh(test_todo)
    assert test_todo.completed is True
    assert test_todo.completed_at is not None
    assert "Todo marked as completed." in auth_client.get("/todos").text

    auth_client.post(f"/todos/{test_todo.id}/toggle", follow_redirects=False)
    session.refresh(test_todo)
    assert test_todo.completed is False
    assert test_todo.completed_at is None
    assert "Todo marked as incomplete." in auth_client.get("/todos").text


def test_toggle_other_users_todo(auth_client: TestClient, session: Session, other_user, todo_factory):
    theirs = todo_factory(other_user.id, "Not yours")

    auth_client.post(f"/todos/{theirs.id}/toggle", follow_redirects=False)

    session.refresh(theirs)
    assert theirs.completed is False


def test_overdue_page(auth_client: TestClient, test_user, other_user, todo_factory):
    today = date.today()
    todo_factory(test_user.id, "Missed deadline", due_date=today - timedelta(days=3))
    todo_factory(test_user.id, "Finished late", due_date=today - timedelta(days=3), completed=True)
    todo_factory(test_user.id, "Still fine", due_date=today + timedelta(days=3))
    todo_factory(other_user.id, "Their deadline", due_date=today - timedelta(days=3))

    response = auth_client.get("/todos/overdue")

    assert response.status_code == 200
    assert "<h1>Overdue todos</h1>" in response.text
    assert "Missed deadline" in response.text
    assert "Finished late" not in response.text
    assert "Still fine" not in response.text
    assert "Their deadline" not in response.text


def test_overdue_page_empty(auth_client: TestClient):
    response = auth_client.get("/todos/overdue")

    assert "Nothing is overdue." in response.text


def test_todo_pages_require_login(client: TestClient, test_todo):
    for path in ("/todos", "/todos/new", "/todos/overdue", f"/todos/{test_todo.id}"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    response = client.post(f"/todos/{test_todo.id}/delete", follow_redirects=False)
    assert response.headers["location"] == "/login"
