"""Tests for the wake ramp and location/home interval calculation."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from daychain.services.chains.anchors import build_anchors
from daychain.services.chains.generator import generate_execution_chains
from daychain.services.daily_plan.location import (
    LocationState,
    calculate_home_intervals,
    calculate_location_periods,
    get_current_or_next_home_interval,
    get_location_state_at,
    get_next_home_interval,
    get_total_home_time,
    is_home_interval,
)
from daychain.services.daily_plan.wake_ramp import generate_wake_ramp, should_skip_wake_ramp
from daychain.services.sources import CommitmentRecord

DAY = datetime(2025, 3, 3, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY + timedelta(hours=hour, minutes=minute)


def test_medium_energy_ramp_takes_ninety_minutes() -> None:
    ramp = generate_wake_ramp(_at(7), _at(7), "medium")

    assert ramp.skipped is False
    assert ramp.duration == 90
    assert ramp.start == _at(7)
    assert ramp.end == _at(8, 30)
    assert ramp.components.buffer == 15
    assert ramp.to_dict()["components"]["shower"] == 25


def test_energy_changes_only_the_buffer() -> None:
    assert generate_wake_ramp(_at(7), _at(7), "low").duration == 120
    assert generate_wake_ramp(_at(7), _at(7), "high").duration == 75


def test_ramp_skipped_when_plan_starts_long_after_waking() -> None:
    assert should_skip_wake_ramp(_at(9), _at(7)) is False
    assert should_skip_wake_ramp(_at(9, 5), _at(7)) is True

    ramp = generate_wake_ramp(_at(10), _at(7), "low")
    assert ramp.skipped is True
    assert ramp.duration == 0
    assert ramp.start == ramp.end == _at(10)
    assert ramp.skip_reason


def _chains():
    anchors = build_anchors([CommitmentRecord(id="c1", title="Class", start=_at(10), end=_at(11))])
    return generate_execution_chains(anchors)


def test_location_periods_mark_away_window() -> None:
    periods = calculate_location_periods(_chains(), _at(7), _at(23))

    assert [period.state for period in periods] == [
        LocationState.AT_HOME,
        LocationState.NOT_HOME,
        LocationState.AT_HOME,
    ]
    assert periods[1].start == _at(8, 45)
    assert periods[1].end == _at(11, 40)
    assert get_location_state_at(_at(9), periods) == LocationState.NOT_HOME
    assert get_location_state_at(_at(12), periods) == LocationState.AT_HOME


def test_home_intervals_and_queries() -> None:
    periods = calculate_location_periods(_chains(), _at(7), _at(23))
    intervals = calculate_home_intervals(periods)

    assert len(intervals) == 2
    assert intervals[0].duration == 105
    assert get_total_home_time(intervals) == 105 + intervals[1].duration
    assert is_home_interval(_at(8), intervals) is True
    assert is_home_interval(_at(10), intervals) is False
    assert get_next_home_interval(_at(9), intervals).start == _at(11, 40)
    assert get_current_or_next_home_interval(_at(8), intervals).start == _at(7)
    assert get_next_home_interval(_at(22, 59), intervals) is None


def test_short_home_gap_is_not_a_home_interval() -> None:
    periods = calculate_location_periods(_chains(), _at(8, 30), _at(23))
    intervals = calculate_home_intervals(periods)

    assert periods[0].state == LocationState.AT_HOME
    assert all(interval.start != _at(8, 30) for interval in intervals)


def test_no_chains_means_home_all_day() -> None:
    periods = calculate_location_periods([], _at(7), _at(23))
    assert len(periods) == 1
    assert calculate_home_intervals(periods)[0].duration == 16 * 60
