from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlmodel import Session

from logger import logger
from ..database import get_session
from ..exceptions import DuplicateEmailError
from ..schemas import AuthenticatedUser, UserCreate, form_errors
from ..security import (
    SESSION_COOKIE, REMEMBER_ME_EXPIRE_MINUTES,
    authenticate_user, end_session, get_optional_principal, start_session,
)
from ..services import UserService
from ..templating import render

router = APIRouter(tags=["auth"])


@router.get("/", response_class=HTMLResponse, summary="Home page")
@router.get("/home", response_class=HTMLResponse, include_in_schema=False)
def home(
        request: Request,
        principal: Annotated[Optional[AuthenticatedUser], Depends(get_optional_principal)],
):
    return render(request, "home.html", principal=principal)


@router.get("/login", response_class=HTMLResponse, summary="Login form")
def login_form(
        request: Request,
        error: Optional[str] = None,
        logout: Optional[str] = None,
        expired: Optional[str] = None,
        registered: Optional[str] = None,
):
    """Each query flag selects the message shown above the form."""
    context = {}
    if error is not None:
        context["error_message"] = "Invalid email or password."
    if logout is not None:
        context["success_message"] = "You have been logged out."
    if registered is not None:
        context["success_message"] = "Registration complete. Please log in."
    if expired is not None:
        context["warning_message"] = "Your session has expired. Please log in again."
    return render(request, "auth/login.html", **context)


@router.post("/login", summary="Check credentials and open a session")
def login(
        session: Annotated[Session, Depends(get_session)],
        email: Annotated[str, Form()] = "",
        password: Annotated[str, Form()] = "",
        remember_me: Annotated[Optional[str], Form()] = None,
) -> RedirectResponse:
    logger.info(f"Login attempt for user: {email}")

    user = authenticate_user(session, email, password)
    if user is None:
        logger.warning(f"Failed login attempt for user: {email}")
        return RedirectResponse("/login?error=true", status_code=status.HTTP_303_SEE_OTHER)

    token = start_session(session, user, remember_me=bool(remember_me))
    logger.info(f"Successful login for user: {email}")

    response = RedirectResponse("/todos", status_code=status.HTTP_303_SEE_OTHER)
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,
        path="/",
        max_age=REMEMBER_ME_EXPIRE_MINUTES * 60 if remember_me else None,
    )
    return response


@router.get("/logout", summary="Close the current session")
def logout(
        request: Request,
        session: Annotated[Session, Depends(get_session)],
) -> RedirectResponse:
    end_session(session, request.cookies.get(SESSION_COOKIE))
    response = RedirectResponse("/login?logout=true", status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    return response


@router.get("/register", response_class=HTMLResponse, summary="Registration form")
def register_form(request: Request):
    return render(request, "auth/register.html", form={}, errors={})


@router.post("/register", response_class=HTMLResponse, summary="Register a new user")
def register(
        request: Request,
        session: Annotated[Session, Depends(get_session)],
        email: Annotated[str, Form()] = "",
        name: Annotated[str, Form()] = "",
        password: Annotated[str, Form()] = "",
        confirm_password: Annotated[str, Form()] = "",
):
    form = {"email": email, "name": name}

    errors = {}
    user_create = None
    try:
        user_create = UserCreate(email=email, name=name, password=password)
    except ValidationError as e:
        errors = form_errors(e)

    if "password" not in errors and password != confirm_password:
        errors["confirm_password"] = "Passwords do not match."

    if errors or user_create is None:
        return render(request, "auth/register.html", form=form, errors=errors)

    try:
        UserService(session).register_user(user_create)
    except DuplicateEmailError:
        errors["email"] = "This email address is already registered."
        return render(request, "auth/register.html", form=form, errors=errors)
    except Exception:
        logger.exception(f"Registration failed for {email}")
        return render(request, "auth/register.html", form=form, errors=errors,
                      error_message="An error occurred during registration. Please try again.")

    return RedirectResponse("/login?registered=true", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/error", response_class=HTMLResponse, include_in_schema=False)
def error_page(request: Request):
    return render(request, "error/error.html", error_message="An unexpected error occurred.")
