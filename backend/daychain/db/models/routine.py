"""Morning/evening routine ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, true
from sqlalchemy.dialects.postgresql import UUID

from daychain.db.base import Base


class Routine(Base):
    __tablename__ = "routines"
    __table_args__ = (Index("ix_routines_user_id", "user_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    routine_type = Column(String(length=20), nullable=False)  # morning | evening
    estimated_duration = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
