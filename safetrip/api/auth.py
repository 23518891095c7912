"""Auth endpoints: register, login, current account."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from safetrip.core.deps import get_current_user
from safetrip.core.errors import to_http_exception
from safetrip.core.security import create_access_token
from safetrip.db.session import get_db
from safetrip.models.user import User
from safetrip.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserMe
from safetrip.services.auth_service import authenticate_user, register_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserMe, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
):
    try:
        return register_user(db, data)
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/login", response_model=TokenResponse)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """Exchange email + password for a bearer token."""
    user = authenticate_user(db, data.email, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return TokenResponse(access_token=create_access_token(user.email, user.id))


@router.get("/me", response_model=UserMe)
def me(current_user: User = Depends(get_current_user)):
    return current_user
