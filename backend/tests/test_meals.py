"""Tests for meal targets and placement."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from daychain.services.daily_plan.location import HomeInterval
from daychain.services.daily_plan.meals import (
    SKIP_NO_HOME,
    SKIP_PAST_WINDOW,
    SKIP_SLEEP,
    MealType,
    clamp_to_window,
    compute_meal_targets,
    find_meal_slot,
    place_meals,
)

UTC = timezone.utc
DAY = datetime(2025, 3, 3, tzinfo=UTC)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY + timedelta(hours=hour, minutes=minute)


def _place(**overrides):
    kwargs = dict(
        wake_time=_at(7),
        sleep_time=_at(23),
        now=_at(7),
        anchors=[],
        conflicts=[],
        home_intervals=None,
        zone=UTC,
    )
    kwargs.update(overrides)
    return {placement.meal_type: placement for placement in place_meals(**kwargs)}


def test_default_targets_without_anchors() -> None:
    meals = _place()

    assert meals[MealType.BREAKFAST].time == _at(9, 30)
    assert meals[MealType.BREAKFAST].placement_reason == "default"
    assert meals[MealType.LUNCH].time == _at(13)
    assert meals[MealType.DINNER].time == _at(19)


def test_late_riser_breakfast_follows_wake() -> None:
    targets = compute_meal_targets(_at(9, 30), [], UTC)
    assert targets[MealType.BREAKFAST][0] == _at(10, 15)


def test_anchor_aware_targets() -> None:
    targets = compute_meal_targets(_at(7), [(_at(9), _at(11)), (_at(15), _at(17))], UTC)

    assert targets[MealType.BREAKFAST] == (_at(7, 45), "anchor-aware")
    assert targets[MealType.LUNCH] == (_at(11, 30), "anchor-aware")
    assert targets[MealType.DINNER] == (_at(17, 30), "anchor-aware")


def test_clamp_to_window() -> None:
    window = (_at(11, 30), _at(15, 30))

    assert clamp_to_window(_at(10), window, _at(7)) == _at(11, 30)
    assert clamp_to_window(_at(16), window, _at(7)) == _at(15, 30)
    assert clamp_to_window(_at(12), window, _at(13)) == _at(13)
    assert clamp_to_window(_at(12), window, _at(16)) is None


def test_find_slot_moves_forward_then_backward() -> None:
    conflict = [(_at(13), _at(13, 20))]
    assert find_meal_slot(_at(13), 30, conflict, earliest=_at(11, 30), latest=_at(15, 30)) == _at(13, 20)

    blocked_after = [(_at(13), _at(14))]
    slot = find_meal_slot(_at(13), 30, blocked_after, earliest=_at(11, 30), latest=_at(15, 30))
    assert slot == _at(12, 30)


def test_breakfast_skipped_after_window() -> None:
    meals = _place(now=_at(12))

    assert meals[MealType.BREAKFAST].skipped is True
    assert meals[MealType.BREAKFAST].skip_reason == SKIP_PAST_WINDOW
    assert meals[MealType.LUNCH].time == _at(13)


def test_meals_keep_minimum_spacing() -> None:
    meals = _place(wake_time=_at(10), now=_at(10))
    breakfast = meals[MealType.BREAKFAST]
    lunch = meals[MealType.LUNCH]

    assert breakfast.time == _at(10, 45)
    if not lunch.skipped:
        assert lunch.time - breakfast.end >= timedelta(minutes=180)


def test_home_gate_requires_full_containment() -> None:
    home = [HomeInterval(_at(7), _at(9, 40), 160), HomeInterval(_at(12), _at(23), 660)]
    meals = _place(home_intervals=home)

    assert meals[MealType.BREAKFAST].skip_reason == SKIP_NO_HOME
    assert meals[MealType.LUNCH].time == _at(13)


def test_dinner_skipped_past_sleep() -> None:
    meals = _place(sleep_time=_at(19, 30))

    assert meals[MealType.DINNER].skipped is True
    assert meals[MealType.DINNER].skip_reason == SKIP_SLEEP


def test_placed_meals_avoid_conflicts() -> None:
    conflicts = [(_at(9, 20), _at(10))]
    meals = _place(conflicts=conflicts)
    breakfast = meals[MealType.BREAKFAST]

    assert not breakfast.skipped
    assert breakfast.time == _at(10)


def test_commitment_ending_at_noon_is_not_a_morning_anchor() -> None:
    targets = compute_meal_targets(_at(7), [(_at(10), _at(12))], UTC)

    assert targets[MealType.LUNCH] == (_at(12, 30), "default")

    earlier = compute_meal_targets(_at(7), [(_at(10), _at(11, 59))], UTC)
    assert earlier[MealType.LUNCH] == (_at(12, 29), "anchor-aware")
