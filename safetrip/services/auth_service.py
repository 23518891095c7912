"""Account registration and credential checks."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from safetrip.core.errors import InvalidInputError
from safetrip.core.security import hash_password, verify_password
from safetrip.models.user import User
from safetrip.schemas.auth import RegisterRequest
from safetrip.services.user_service import get_or_create_settings

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> User | None:
    """Emails are stored lowercased, so lookups are case-insensitive."""
    return db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()


def register_user(db: Session, data: RegisterRequest) -> User:
    """
    Create the account together with its default settings row.

    A second account for the same email is rejected, including one that
    slips past the lookup and trips the unique index.
    """
    email = data.email.strip().lower()
    if get_user_by_email(db, email):
        raise InvalidInputError("Email already registered")
    user = User(
        email=email,
        hashed_password=hash_password(data.password),
        name=data.name.strip(),
        phone=data.phone.strip(),
    )
    db.add(user)
    try:
        db.flush()
        get_or_create_settings(db, user.id)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidInputError("Email already registered") from exc
    db.refresh(user)
    logger.info("Registered user_id=%s", user.id)
    return user


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    return user if verify_password(password, user.hashed_password) else None
