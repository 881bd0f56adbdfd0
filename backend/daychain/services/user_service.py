"""Helpers for working with users and their stored preferences."""
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from daychain.db.models.user import User
from daychain.db.models.user_preferences import UserPreferences


def get_or_create_user(db: Session, user_id: UUID, *, timezone: Optional[str] = None) -> User:
    """Fetch the user (remembering their timezone if given) or create the row."""
    user = db.get(User, user_id)
    if user:
        if timezone and user.timezone != timezone:
            user.timezone = timezone
        return user

    user = User(id=user_id, timezone=timezone)
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def load_preferences_for_update(db: Session, user_id: UUID) -> UserPreferences:
    """Preference row for `user_id`, created empty if missing (not committed)."""
    row = db.get(UserPreferences, user_id)
    if row is None:
        row = UserPreferences(user_id=user_id, preferences={})
        db.add(row)
    return row


def update_preferences(row: UserPreferences, key: str, value: Any) -> Dict[str, Any]:
    # Reassign a fresh dict so the JSON column is flagged dirty.
    document = dict(row.preferences or {})
    document[key] = value
    row.preferences = document
    return document
