"""Persistence for users, commitments, daily plans and the plan audit trail.

Importing the package registers every model on `Base.metadata`, which is what
the test fixtures and migrations create tables from.
"""

from daychain.db.base import Base
from daychain.db.models import (
    AgentActionLog,
    CalendarEvent,
    DailyPlan,
    ExitTime,
    Routine,
    Task,
    TimeBlock,
    User,
    UserPreferences,
)

__all__ = [
    "AgentActionLog",
    "Base",
    "CalendarEvent",
    "DailyPlan",
    "ExitTime",
    "Routine",
    "Task",
    "TimeBlock",
    "User",
    "UserPreferences",
]
