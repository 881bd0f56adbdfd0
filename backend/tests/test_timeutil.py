"""Tests for timeline datetime helpers."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from daychain.services.daily_plan.meals import MealType, compute_meal_targets
from daychain.services.timeutil import at_local, duration_minutes, local_date, round_up_to_five

LONDON = ZoneInfo("Europe/London")
# Clocks go forward at 01:00 UTC on this day.
SPRING_FORWARD = date(2025, 3, 30)


def test_at_local_returns_utc_instant() -> None:
    moment = at_local(SPRING_FORWARD, time(7, 0), LONDON)

    assert moment.tzinfo == timezone.utc
    assert moment == datetime(2025, 3, 30, 6, 0, tzinfo=timezone.utc)


def test_durations_are_elapsed_time_across_dst() -> None:
    wake = at_local(SPRING_FORWARD, time(0, 30), LONDON)
    ramp_end = wake + timedelta(minutes=120)

    assert ramp_end.astimezone(LONDON).time() == time(3, 30)
    assert duration_minutes(wake, at_local(SPRING_FORWARD, time(3, 30), LONDON)) == 120


def test_wall_clock_rules_use_local_zone_on_dst_day() -> None:
    wake = at_local(SPRING_FORWARD, time(7, 0), LONDON)
    targets = compute_meal_targets(wake, [], LONDON)

    assert targets[MealType.BREAKFAST][0] == datetime(2025, 3, 30, 8, 30, tzinfo=timezone.utc)
    assert local_date(targets[MealType.DINNER][0], LONDON) == SPRING_FORWARD


def test_round_up_to_five() -> None:
    assert round_up_to_five(datetime(2025, 3, 3, 7, 0, tzinfo=timezone.utc)) == datetime(
        2025, 3, 3, 7, 0, tzinfo=timezone.utc
    )
    assert round_up_to_five(datetime(2025, 3, 3, 7, 1, 30, tzinfo=timezone.utc)) == datetime(
        2025, 3, 3, 7, 5, tzinfo=timezone.utc
    )
