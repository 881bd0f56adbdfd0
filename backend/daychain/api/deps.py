"""Request-scoped dependencies shared by the API routes."""
from __future__ import annotations

from datetime import datetime, timezone

from daychain.services.daily_plan.cache import PlanInputCache, get_plan_input_cache


def get_now() -> datetime:
    """Current instant; overridden in tests to pin the clock."""
    return datetime.now(timezone.utc)


def get_input_cache() -> PlanInputCache:
    return get_plan_input_cache()
