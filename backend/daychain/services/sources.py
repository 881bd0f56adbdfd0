"""Upstream data sources the plan builder consumes.

Each source is a small interface with a SQLAlchemy-backed implementation.
The builder treats them as unreliable collaborators (see input gathering in
the daily plan builder).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import asc, nulls_last
from sqlalchemy.orm import Session

from daychain.db.models.calendar_event import CalendarEvent
from daychain.db.models.routine import Routine
from daychain.db.models.task import Task
from daychain.db.models.user_preferences import UserPreferences


@dataclass(frozen=True)
class CommitmentRecord:
    id: str
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    description: Optional[str] = None
    event_type: str = "event"


@dataclass(frozen=True)
class TaskRecord:
    id: str
    title: str
    estimated_duration: Optional[int] = None


@dataclass(frozen=True)
class RoutineRecord:
    id: str
    name: str
    routine_type: str
    estimated_duration: int


@dataclass(frozen=True)
class ExitTimeEstimate:
    commitment_id: str
    exit_time: datetime
    travel_duration: int
    preparation_time: int
    travel_method: str


class CommitmentSource:
    def list_commitments(self, user_id: UUID, start: datetime, end: datetime) -> List[CommitmentRecord]:
        raise NotImplementedError


class TaskSource:
    def list_pending_tasks(self, user_id: UUID, limit: int) -> List[TaskRecord]:
        raise NotImplementedError


class RoutineSource:
    def list_active_routines(self, user_id: UUID) -> List[RoutineRecord]:
        raise NotImplementedError


class PreferenceSource:
    def get_preferences(self, user_id: UUID) -> dict:
        raise NotImplementedError


class ExitTimeCalculator:
    def calculate(
        self,
        commitments: Sequence[CommitmentRecord],
        current_location: Optional[str],
    ) -> List[ExitTimeEstimate]:
        raise NotImplementedError


class SqlCommitmentSource(CommitmentSource):
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_commitments(self, user_id: UUID, start: datetime, end: datetime) -> List[CommitmentRecord]:
        rows = (
            self.db.query(CalendarEvent)
            .filter(
                CalendarEvent.user_id == user_id,
                CalendarEvent.start_time < end,
                CalendarEvent.end_time > start,
            )
            .order_by(asc(CalendarEvent.start_time))
            .all()
        )
        return [
            CommitmentRecord(
                id=str(row.id),
                title=row.title,
                start=row.start_time,
                end=row.end_time,
                location=row.location,
                description=row.description,
                event_type=row.event_type or "event",
            )
            for row in rows
        ]


class SqlTaskSource(TaskSource):
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_pending_tasks(self, user_id: UUID, limit: int) -> List[TaskRecord]:
        rows = (
            self.db.query(Task)
            .filter(Task.user_id == user_id, Task.status == "pending")
            .order_by(nulls_last(asc(Task.deadline)), asc(Task.created_at))
            .limit(limit)
            .all()
        )
        return [
            TaskRecord(id=str(row.id), title=row.title, estimated_duration=row.estimated_duration)
            for row in rows
        ]


class SqlRoutineSource(RoutineSource):
    def __init__(self, db: Session) -> None:
        self.db = db

    def list_active_routines(self, user_id: UUID) -> List[RoutineRecord]:
        rows = (
            self.db.query(Routine)
            .filter(Routine.user_id == user_id, Routine.is_active.is_(True))
            .order_by(asc(Routine.created_at))
            .all()
        )
        return [
            RoutineRecord(
                id=str(row.id),
                name=row.name,
                routine_type=row.routine_type,
                estimated_duration=row.estimated_duration,
            )
            for row in rows
        ]


class SqlPreferenceSource(PreferenceSource):
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_preferences(self, user_id: UUID) -> dict:
        row = self.db.get(UserPreferences, user_id)
        return dict(row.preferences or {}) if row else {}


class DefaultExitTimeCalculator(ExitTimeCalculator):
    """Fixed travel estimate per commitment; no routing."""

    def __init__(self, travel_minutes: int = 30, preparation_minutes: int = 15) -> None:
        self.travel_minutes = travel_minutes
        self.preparation_minutes = preparation_minutes

    def calculate(
        self,
        commitments: Sequence[CommitmentRecord],
        current_location: Optional[str],
    ) -> List[ExitTimeEstimate]:
        return [
            ExitTimeEstimate(
                commitment_id=commitment.id,
                exit_time=commitment.start - timedelta(minutes=self.travel_minutes),
                travel_duration=self.travel_minutes,
                preparation_time=self.preparation_minutes,
                travel_method="walking" if not commitment.location else "public_transport",
            )
            for commitment in commitments
        ]


@dataclass
class PlanSources:
    commitments: CommitmentSource
    tasks: TaskSource
    routines: RoutineSource
    preferences: PreferenceSource
    exit_times: ExitTimeCalculator

    @classmethod
    def from_session(cls, db: Session, *, travel_minutes: int = 30) -> "PlanSources":
        return cls(
            commitments=SqlCommitmentSource(db),
            tasks=SqlTaskSource(db),
            routines=SqlRoutineSource(db),
            preferences=SqlPreferenceSource(db),
            exit_times=DefaultExitTimeCalculator(travel_minutes=travel_minutes),
        )
