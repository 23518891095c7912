"""FastAPI dependencies: current user, notification dispatcher, trip timers."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from safetrip.core.security import token_subject
from safetrip.db.session import get_db
from safetrip.models.user import User
from safetrip.services.auth_service import get_user_by_email
from safetrip.services.notifications import NotificationDispatcher
from safetrip.services.trip_timer import TripTimerEngine

bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
) -> User:
    """Active account behind the bearer token, else 401."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    email = token_subject(credentials.credentials)
    if email is None:
        raise _unauthorized("Invalid or expired token")
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        raise _unauthorized("Account not found or disabled")
    return user


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Notification dispatcher selected at startup."""
    return request.app.state.dispatcher


def get_trip_timers(request: Request) -> TripTimerEngine:
    """Process-wide trip timer engine."""
    return request.app.state.trip_timers
