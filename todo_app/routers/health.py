import os
from datetime import datetime
from typing import Annotated

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from logger import logger
from ..database import get_session
from ..repository import TodoRepository, UserRepository

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Todo App")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/simple", summary="Liveness check")
def simple_health() -> dict:
    return {
        "status": "UP",
        "timestamp": datetime.now().isoformat(),
        "application": APP_NAME,
        "version": APP_VERSION,
    }


@router.get("/detailed", summary="Readiness check including the database")
def detailed_health(session: Annotated[Session, Depends(get_session)]):
    """
    Counts users and todos to prove the database answers.
    Responds 503 with status DOWN when it does not.
    """
    try:
        user_count = UserRepository(session).count()
        todo_count = TodoRepository(session).count()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "DOWN",
                "timestamp": datetime.now().isoformat(),
                "database": "Connection failed",
                "error": str(e),
            },
        )

    return {
        "status": "UP",
        "timestamp": datetime.now().isoformat(),
        "application": APP_NAME,
        "version": APP_VERSION,
        "database": "Connected",
        "userCount": user_count,
        "todoCount": todo_count,
        "message": "All systems operational",
    }
