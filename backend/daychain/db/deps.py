"""FastAPI dependencies for database access."""
from __future__ import annotations

from typing import Iterator

from sqlalchemy.orm import Session

from daychain.db.session import SessionLocal


def get_db() -> Iterator[Session]:
    """Yield a session per request; routes own commit/rollback."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
