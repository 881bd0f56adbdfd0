"""Daily plan, its time blocks and exit times."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from daychain.db.base import Base
from daychain.db.types import JSONBCompat, UTCDateTime


class DailyPlan(Base):
    __tablename__ = "daily_plans"
    __table_args__ = (UniqueConstraint("user_id", "plan_date", name="uq_daily_plans_user_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    plan_date = Column(Date, nullable=False)
    wake_time = Column(UTCDateTime, nullable=False)
    sleep_time = Column(UTCDateTime, nullable=False)
    plan_start = Column(UTCDateTime, nullable=False)
    energy_state = Column(String(length=10), nullable=False)
    status = Column(String(length=20), nullable=False, server_default="active")
    generated_after_now = Column(Boolean, nullable=False, server_default=false())
    wake_ramp = Column(JSONBCompat, nullable=True)
    chains = Column(JSONBCompat, nullable=True)
    location_periods = Column(JSONBCompat, nullable=True)
    home_intervals = Column(JSONBCompat, nullable=True)
    version = Column(Integer, nullable=False)
    last_modified_at = Column(UTCDateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Optimistic concurrency: a stale flush raises StaleDataError.
    __mapper_args__ = {"version_id_col": version}


class TimeBlock(Base):
    __tablename__ = "time_blocks"
    __table_args__ = (Index("ix_time_blocks_plan_sequence", "plan_id", "sequence_order"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("daily_plans.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    activity_type = Column(String(length=20), nullable=False)
    activity_name = Column(Text, nullable=False)
    activity_id = Column(Text, nullable=True)
    is_fixed = Column(Boolean, nullable=False, server_default=false())
    sequence_order = Column(Integer, nullable=False)
    status = Column(String(length=20), nullable=False, server_default="pending")
    skip_reason = Column(Text, nullable=True)
    # Column named "metadata" but attribute renamed to avoid Base.metadata collisions.
    metadata_json = Column("metadata", JSONBCompat, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ExitTime(Base):
    __tablename__ = "exit_times"
    __table_args__ = (Index("ix_exit_times_plan_id", "plan_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("daily_plans.id", ondelete="CASCADE"), nullable=False)
    time_block_id = Column(UUID(as_uuid=True), ForeignKey("time_blocks.id", ondelete="SET NULL"), nullable=True)
    commitment_id = Column(Text, nullable=False)
    exit_time = Column(UTCDateTime, nullable=False)
    travel_duration = Column(Integer, nullable=False)
    preparation_time = Column(Integer, nullable=False)
    travel_method = Column(String(length=30), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
