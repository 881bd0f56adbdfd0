"""ORM models exposed for metadata discovery."""
from daychain.db.models.agent_action_log import AgentActionLog
from daychain.db.models.calendar_event import CalendarEvent
from daychain.db.models.daily_plan import DailyPlan, ExitTime, TimeBlock
from daychain.db.models.routine import Routine
from daychain.db.models.task import Task
from daychain.db.models.user import User
from daychain.db.models.user_preferences import UserPreferences

__all__ = [
    "AgentActionLog",
    "CalendarEvent",
    "DailyPlan",
    "ExitTime",
    "Routine",
    "Task",
    "TimeBlock",
    "User",
    "UserPreferences",
]
