"""Derive at-home / away periods from the day's chains."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from daychain.services.chains.types import ExecutionChain
from daychain.services.timeutil import duration_minutes, isoformat

MIN_HOME_INTERVAL_MINUTES = 30


class LocationState(str, Enum):
    AT_HOME = "at_home"
    NOT_HOME = "not_home"


@dataclass(frozen=True)
class LocationPeriod:
    start: datetime
    end: datetime
    state: LocationState

    def to_dict(self) -> Dict[str, Any]:
        return {"start": isoformat(self.start), "end": isoformat(self.end), "state": self.state.value}


@dataclass(frozen=True)
class HomeInterval:
    start: datetime
    end: datetime
    duration: int

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"start": isoformat(self.start), "end": isoformat(self.end), "duration": self.duration}


def calculate_location_periods(
    chains: Sequence[ExecutionChain],
    plan_start: datetime,
    sleep_time: datetime,
) -> List[LocationPeriod]:
    """Away from the start of outbound travel until recovery ends, home otherwise."""
    periods: List[LocationPeriod] = []
    cursor = plan_start
    ordered = sorted(chains, key=lambda chain: chain.envelope.travel_there.start_time)
    for chain in ordered:
        away_start = chain.envelope.travel_there.start_time
        away_end = chain.envelope.recovery.end_time
        if away_end <= cursor:
            continue
        if away_start > cursor:
            periods.append(LocationPeriod(cursor, away_start, LocationState.AT_HOME))
        periods.append(LocationPeriod(max(cursor, away_start), away_end, LocationState.NOT_HOME))
        cursor = away_end
    if cursor < sleep_time:
        periods.append(LocationPeriod(cursor, sleep_time, LocationState.AT_HOME))
    return periods


def calculate_home_intervals(
    periods: Sequence[LocationPeriod],
    min_minutes: int = MIN_HOME_INTERVAL_MINUTES,
) -> List[HomeInterval]:
    intervals: List[HomeInterval] = []
    for period in periods:
        if period.state != LocationState.AT_HOME:
            continue
        length = duration_minutes(period.start, period.end)
        if length >= min_minutes:
            intervals.append(HomeInterval(period.start, period.end, length))
    return intervals


def is_home_interval(moment: datetime, intervals: Sequence[HomeInterval]) -> bool:
    return any(interval.contains(moment) for interval in intervals)


def get_location_state_at(moment: datetime, periods: Sequence[LocationPeriod]) -> LocationState:
    for period in periods:
        if period.start <= moment < period.end:
            return period.state
    return LocationState.AT_HOME


def get_total_home_time(intervals: Sequence[HomeInterval]) -> int:
    return sum(interval.duration for interval in intervals)


def get_next_home_interval(moment: datetime, intervals: Sequence[HomeInterval]) -> Optional[HomeInterval]:
    upcoming = [interval for interval in intervals if interval.start >= moment]
    return min(upcoming, key=lambda interval: interval.start) if upcoming else None


def get_current_or_next_home_interval(
    moment: datetime,
    intervals: Sequence[HomeInterval],
) -> Optional[HomeInterval]:
    for interval in intervals:
        if interval.contains(moment):
            return interval
    return get_next_home_interval(moment, intervals)
