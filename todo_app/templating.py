from datetime import date
from pathlib import Path
from typing import Any, Optional

from fastapi import Request
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

from .repository import LoginSessionRepository
from .schemas import AuthenticatedUser

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def render(
        request: Request,
        name: str,
        session: Optional[Session] = None,
        principal: Optional[AuthenticatedUser] = None,
        status_code: int = 200,
        **context: Any,
):
    """Render a page, consuming the principal's pending flash message if there is one."""
    pending = None
    if principal is not None and session is not None:
        pending = LoginSessionRepository(session).pop_flash(principal.session_id)
    context.setdefault("principal", principal)
    context.setdefault("flash", pending)
    context.setdefault("today", date.today())
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def flash(session: Session, principal: AuthenticatedUser, message: str, category: str = "success") -> None:
    LoginSessionRepository(session).set_flash(principal.session_id, message, category)
