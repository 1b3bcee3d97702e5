from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import RedirectResponse

from logger import logger
from .database import init_db
from .exceptions import AuthenticationRequired
from .routers import auth, health, todos
from .routers.health import APP_NAME, APP_VERSION
from .security import SESSION_COOKIE


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("Initializing database...")
    init_db()
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title=APP_NAME,
    description="Multi-user task tracker with server-rendered pages",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(request: Request, exc: AuthenticationRequired) -> RedirectResponse:
    """Send anonymous or expired visitors to the login page."""
    url = "/login?expired=true" if exc.expired else "/login"
    response = RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)
    if exc.expired:
        response.delete_cookie(key=SESSION_COOKIE, path="/")
    return response


app.include_router(auth.router)
app.include_router(todos.router)
app.include_router(health.router)
