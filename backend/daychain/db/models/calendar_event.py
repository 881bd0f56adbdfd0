"""Calendar commitments that become anchors."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from daychain.db.base import Base
from daychain.db.types import UTCDateTime


class CalendarEvent(Base):
    __tablename__ = "calendar_events"
    __table_args__ = (Index("ix_calendar_events_user_start", "user_id", "start_time"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    location = Column(Text, nullable=True)
    event_type = Column(String(length=50), nullable=False, server_default="event")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
