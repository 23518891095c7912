"""Engine, session factory and the per-request session dependency.

Request handlers and the trip timer engine each open their own sessions from
``SessionLocal``; sessions are never shared across them.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from safetrip.core.config import settings

_is_sqlite = settings.database_url.startswith("sqlite")

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.debug,
    # SQLite: handlers run in a threadpool, timers on the loop thread
    connect_args={"check_same_thread": False, "timeout": 15} if _is_sqlite else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
