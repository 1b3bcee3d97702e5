from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlmodel import Session

from logger import logger
from ..database import get_session
from ..exceptions import TodoNotFoundError
from ..repository import MAX_PAGE_SIZE, clamp_page, normalize_direction, normalize_sort
from ..schemas import AuthenticatedUser, ListQuery, TodoCreate, TodoUpdate, form_errors
from ..security import get_current_principal
from ..services import TodoService
from ..templating import flash, render

router = APIRouter(prefix="/todos", tags=["todos"])

Principal = Annotated[AuthenticatedUser, Depends(get_current_principal)]
DbSession = Annotated[Session, Depends(get_session)]

NOT_FOUND_REDIRECT = "/todos?error=notfound"
TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def _parse_completed(value: Optional[str]) -> Optional[bool]:
    """A blank or unrecognised value, as sent by an "All" option, means no filter."""
    flag = (value or "").strip().lower()
    if flag in TRUE_VALUES:
        return True
    if flag in FALSE_VALUES:
        return False
    return None


def _form_values(title: str = "", description: Optional[str] = "", due_date: Optional[str] = "") -> dict:
    return {"title": title or "", "description": description or "", "due_date": due_date or ""}


@router.get("", response_class=HTMLResponse, summary="List todos")
def list_todos(
        request: Request,
        principal: Principal,
        session: DbSession,
        page: int = 0,
        size: Annotated[int, Query(description=f"Page size, capped at {MAX_PAGE_SIZE}")] = 10,
        sort: str = "created_at",
        direction: str = "desc",
        completed: Optional[str] = None,
        search: Optional[str] = None,
        error: Optional[str] = None,
):
    """
    A page of the user's todos plus statistics and the due-today and upcoming lists.
    A non-blank search takes precedence over the completion filter.
    """
    page, size = clamp_page(page, size)
    search = search.strip() if search else None
    query = ListQuery(
        page=page,
        size=size,
        sort=normalize_sort(sort),
        direction=normalize_direction(direction),
        completed=None if search else _parse_completed(completed),
        search=search or None,
    )

    service = TodoService(session)
    todo_page = service.list_todos(principal.id, query)

    return render(
        request, "todo/list.html", session, principal,
        todo_page=todo_page,
        query=query,
        statistics=service.get_todo_statistics(principal.id),
        today_todos=service.find_today_todos(principal.id),
        upcoming_todos=service.find_upcoming_todos(principal.id),
        error_message="Todo not found." if error == "notfound" else None,
    )


@router.get("/new", response_class=HTMLResponse, summary="Create form")
def new_todo_form(request: Request, principal: Principal, session: DbSession):
    return render(request, "todo/form.html", session, principal,
                  form=_form_values(), errors={}, is_edit=False)


@router.post("", response_class=HTMLResponse, summary="Create todo")
def create_todo(
        request: Request,
        principal: Principal,
        session: DbSession,
        title: Annotated[str, Form()] = "",
        description: Annotated[Optional[str], Form()] = None,
        due_date: Annotated[Optional[str], Form()] = None,
):
    form = _form_values(title, description, due_date)
    try:
        todo_create = TodoCreate(title=title, description=description, due_date=due_date)
    except ValidationError as e:
        return render(request, "todo/form.html", session, principal,
                      form=form, errors=form_errors(e), is_edit=False)

    try:
        TodoService(session).create_todo(todo_create, principal.id)
    except Exception:
        logger.exception(f"Creating a todo failed for user {principal.id}")
        return render(request, "todo/form.html", session, principal,
                      form=form, errors={}, is_edit=False,
                      error_message="An error occurred while creating the todo.")

    flash(session, principal, "Todo created.")
    return _redirect("/todos")


@router.get("/overdue", response_class=HTMLResponse, summary="List overdue todos")
def list_overdue_todos(
        request: Request,
        principal: Principal,
        session: DbSession,
        page: int = 0,
        size: int = 10,
):
    page, size = clamp_page(page, size)
    overdue_page = TodoService(session).find_overdue_todos(principal.id, page, size)
    return render(request, "todo/overdue.html", session, principal, todo_page=overdue_page)


@router.get("/{todo_id}", response_class=HTMLResponse, summary="Todo detail")
def show_todo(request: Request, todo_id: int, principal: Principal, session: DbSession):
    todo = TodoService(session).find_by_id_and_user(todo_id, principal.id)
    if todo is None:
        return _redirect(NOT_FOUND_REDIRECT)
    return render(request, "todo/detail.html", session, principal, todo=todo)


@router.get("/{todo_id}/edit", response_class=HTMLResponse, summary="Edit form")
def edit_todo_form(request: Request, todo_id: int, principal: Principal, session: DbSession):
    todo = TodoService(session).find_by_id_and_user(todo_id, principal.id)
    if todo is None:
        return _redirect(NOT_FOUND_REDIRECT)
    form = _form_values(todo.title, todo.description,
                        todo.due_date.isoformat() if todo.due_date else "")
    return render(request, "todo/form.html", session, principal,
                  form=form, errors={}, is_edit=True, todo_id=todo.id)


@router.post("/{todo_id}", response_class=HTMLResponse, summary="Update todo")
def update_todo(
        request: Request,
        todo_id: int,
        principal: Principal,
        session: DbSession,
        title: Annotated[str, Form()] = "",
        description: Annotated[Optional[str], Form()] = None,
        due_date: Annotated[Optional[str], Form()] = None,
):
    service = TodoService(session)
    if service.find_by_id_and_user(todo_id, principal.id) is None:
        return _redirect(NOT_FOUND_REDIRECT)

    form = _form_values(title, description, due_date)
    try:
        todo_update = TodoUpdate(title=title, description=description, due_date=due_date)
    except ValidationError as e:
        return render(request, "todo/form.html", session, principal,
                      form=form, errors=form_errors(e), is_edit=True, todo_id=todo_id)

    try:
        service.update_todo(todo_id, todo_update, principal.id)
    except TodoNotFoundError:
        return _redirect(NOT_FOUND_REDIRECT)
    except Exception:
        logger.exception(f"Updating todo {todo_id} failed for user {principal.id}")
        return render(request, "todo/form.html", session, principal,
                      form=form, errors={}, is_edit=True, todo_id=todo_id,
                      error_message="An error occurred while updating the todo.")

    flash(session, principal, "Todo updated.")
    return _redirect("/todos")


@router.post("/{todo_id}/delete", summary="Delete todo")
def delete_todo(todo_id: int, principal: Principal, session: DbSession) -> RedirectResponse:
    try:
        TodoService(session).delete_todo(todo_id, principal.id)
        flash(session, principal, "Todo deleted.")
    except TodoNotFoundError:
        flash(session, principal, "Todo not found.", "error")
    except Exception:
        logger.exception(f"Deleting todo {todo_id} failed for user {principal.id}")
        flash(session, principal, "An error occurred while deleting the todo.", "error")
    return _redirect("/todos")


@router.post("/{todo_id}/toggle", summary="Toggle completion")
def toggle_todo(todo_id: int, principal: Principal, session: DbSession) -> RedirectResponse:
    try:
        todo = TodoService(session).toggle_completion(todo_id, principal.id)
        message = "Todo marked as completed." if todo.completed else "Todo marked as incomplete."
        flash(session, principal, message)
    except TodoNotFoundError:
        flash(session, principal, "Todo not found.", "error")
    except Exception:
        logger.exception(f"Toggling todo {todo_id} failed for user {principal.id}")
        flash(session, principal, "An error occurred while updating the todo.", "error")
    return _redirect("/todos")
