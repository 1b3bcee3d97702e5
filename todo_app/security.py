import os
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlmodel import Session

from logger import logger
from .database import get_session
from .exceptions import AuthenticationRequired
from .models import LoginSession, User
from .repository import LoginSessionRepository, UserRepository
from .schemas import AuthenticatedUser

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    # Sessions will not survive a restart with a per-process key
    SECRET_KEY = secrets.token_hex(32)
    logger.warning("No SECRET_KEY found in environment. Using a generated key.")

ALGORITHM = "HS256"
SESSION_COOKIE = os.getenv("SESSION_COOKIE", "todo_session")
SESSION_EXPIRE_MINUTES = int(os.getenv("SESSION_EXPIRE_MINUTES", 30))
REMEMBER_ME_EXPIRE_MINUTES = int(os.getenv("REMEMBER_ME_EXPIRE_MINUTES", 1440))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def now_s() -> int:
    return int(time.time())


def new_sid() -> str:
    return secrets.token_hex(32)


def create_session_token(sid: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a cookie value that references a server-side session row."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=SESSION_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": email, "sid": sid, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    """Return the session id carried by a cookie, or None if it is forged or expired."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) else None


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    """Standard credential check against enabled accounts, keyed by email."""
    user = UserRepository(session).get_enabled_by_email((email or "").strip())
    if user is None or not password or not user.verify_password(password):
        return None
    return user


def start_session(session: Session, user: User, remember_me: bool = False) -> str:
    """Open a session for `user`, closing any older one, and return the cookie token."""
    repo = LoginSessionRepository(session)
    minutes = REMEMBER_ME_EXPIRE_MINUTES if remember_me else SESSION_EXPIRE_MINUTES
    sid = new_sid()
    repo.create(sid=sid, user_id=user.id, expires_at=now_s() + minutes * 60)

    # One concurrent session per user
    dropped = repo.delete_for_user(user.id, keep_sid=sid)
    if dropped:
        logger.info(f"Invalidated {dropped} older session(s) for user {user.email}")

    return create_session_token(sid, user.email, timedelta(minutes=minutes))


def end_session(session: Session, token: Optional[str]) -> None:
    if not token:
        return
    sid = decode_session_token(token)
    if sid:
        LoginSessionRepository(session).delete_by_sid(sid)


def _load_principal(session: Session, token: str) -> AuthenticatedUser:
    sid = decode_session_token(token)
    if sid is None:
        raise AuthenticationRequired(expired=True)

    login_session: Optional[LoginSession] = LoginSessionRepository(session).get(sid)
    if login_session is None or login_session.expires_at < now_s():
        raise AuthenticationRequired(expired=True)

    user = session.get(User, login_session.user_id)
    if user is None or not user.enabled:
        raise AuthenticationRequired(expired=True)

    return AuthenticatedUser.from_user(user, sid)


def get_current_principal(
        request: Request,
        session: Session = Depends(get_session),
) -> AuthenticatedUser:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise AuthenticationRequired(expired=False)
    return _load_principal(session, token)


def get_optional_principal(
        request: Request,
        session: Session = Depends(get_session),
) -> Optional[AuthenticatedUser]:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        return _load_principal(session, token)
    except AuthenticationRequired:
        return None
