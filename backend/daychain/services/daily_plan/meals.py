"""Meal placement under window, spacing, conflict, home and sleep constraints.

Breakfast, lunch and dinner are placed in that order. Each meal either gets a
start time that passes every gate or is skipped with a machine-readable
reason; placement never raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from daychain.services.daily_plan.location import HomeInterval
from daychain.services.timeutil import at_local, isoformat, local_date, overlaps_any

logger = logging.getLogger(__name__)

TimeRange = Tuple[datetime, datetime]


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


MEAL_ORDER = (MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER)
MEAL_WINDOWS: Dict[MealType, Tuple[time, time]] = {
    MealType.BREAKFAST: (time(6, 30), time(11, 30)),
    MealType.LUNCH: (time(11, 30), time(15, 30)),
    MealType.DINNER: (time(17, 0), time(21, 30)),
}
MEAL_DURATIONS: Dict[MealType, int] = {
    MealType.BREAKFAST: 15,
    MealType.LUNCH: 30,
    MealType.DINNER: 45,
}
MEAL_NAMES: Dict[MealType, str] = {
    MealType.BREAKFAST: "Breakfast",
    MealType.LUNCH: "Lunch",
    MealType.DINNER: "Dinner",
}
MIN_MEAL_GAP = timedelta(minutes=180)
SLOT_STEP_MINUTES = 5
SLOT_SEARCH_RADIUS_MINUTES = 30

DEFAULT_BREAKFAST = time(9, 30)
DEFAULT_LUNCH_NO_ANCHORS = time(13, 0)
DEFAULT_LUNCH = time(12, 30)
DEFAULT_DINNER = time(19, 0)
LATE_RISER_HOUR = 9
AFTER_ANCHOR = timedelta(minutes=30)
AFTER_WAKE = timedelta(minutes=45)

SKIP_PAST_WINDOW = "Past meal window"
SKIP_SPACING = "Spacing constraint"
SKIP_NO_SLOT = "No valid slot"
SKIP_NO_HOME = "No home interval"
SKIP_SLEEP = "Would exceed sleep time"


@dataclass(frozen=True)
class MealPlacement:
    meal_type: MealType
    duration: int
    target_time: datetime
    placement_reason: str
    time: Optional[datetime] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    @property
    def end(self) -> Optional[datetime]:
        return self.time + timedelta(minutes=self.duration) if self.time else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meal_type": self.meal_type.value,
            "time": isoformat(self.time),
            "duration": self.duration,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "target_time": isoformat(self.target_time),
            "placement_reason": self.placement_reason,
        }


def compute_meal_targets(
    wake_time: datetime,
    anchors: Sequence[TimeRange],
    zone: tzinfo,
) -> Dict[MealType, Tuple[datetime, str]]:
    """Desired start per meal and whether it was derived from anchors."""
    day = local_date(wake_time, zone)
    if not anchors:
        if wake_time.astimezone(zone).hour >= LATE_RISER_HOUR:
            breakfast = wake_time + AFTER_WAKE
        else:
            breakfast = at_local(day, DEFAULT_BREAKFAST, zone)
        return {
            MealType.BREAKFAST: (breakfast, "default"),
            MealType.LUNCH: (at_local(day, DEFAULT_LUNCH_NO_ANCHORS, zone), "default"),
            MealType.DINNER: (at_local(day, DEFAULT_DINNER, zone), "default"),
        }

    noon = at_local(day, time(12, 0), zone)
    mid_afternoon = at_local(day, time(15, 0), zone)
    morning_ends = [end for _, end in anchors if end < noon]
    afternoon_ends = [end for _, end in anchors if end > mid_afternoon]

    targets: Dict[MealType, Tuple[datetime, str]] = {
        MealType.BREAKFAST: (wake_time + AFTER_WAKE, "anchor-aware"),
    }
    if morning_ends:
        targets[MealType.LUNCH] = (max(morning_ends) + AFTER_ANCHOR, "anchor-aware")
    else:
        targets[MealType.LUNCH] = (at_local(day, DEFAULT_LUNCH, zone), "default")
    if afternoon_ends:
        targets[MealType.DINNER] = (max(afternoon_ends) + AFTER_ANCHOR, "anchor-aware")
    else:
        targets[MealType.DINNER] = (at_local(day, DEFAULT_DINNER, zone), "default")
    return targets


def meal_window(meal_type: MealType, day: date, zone: tzinfo) -> TimeRange:
    start, end = MEAL_WINDOWS[meal_type]
    return at_local(day, start, zone), at_local(day, end, zone)


def clamp_to_window(target: datetime, window: TimeRange, now: datetime) -> Optional[datetime]:
    """Clamp into the window and never before `now`; None once the window has passed."""
    window_start, window_end = window
    if now > window_end:
        return None
    clamped = min(max(target, window_start), window_end)
    clamped = max(clamped, now)
    return clamped if clamped <= window_end else None


def _candidate_offsets() -> List[int]:
    forward = list(range(0, SLOT_SEARCH_RADIUS_MINUTES + 1, SLOT_STEP_MINUTES))
    backward = [-step for step in range(SLOT_STEP_MINUTES, SLOT_SEARCH_RADIUS_MINUTES + 1, SLOT_STEP_MINUTES)]
    return forward + backward


def find_meal_slot(
    start: datetime,
    duration: int,
    conflicts: Sequence[TimeRange],
    *,
    earliest: datetime,
    latest: datetime,
) -> Optional[datetime]:
    """First conflict-free start in [earliest, latest]: the start itself, then forward, then backward."""
    length = timedelta(minutes=duration)
    for offset in _candidate_offsets():
        candidate = start + timedelta(minutes=offset)
        if candidate < earliest or candidate > latest:
            continue
        if not overlaps_any(candidate, candidate + length, conflicts):
            return candidate
    return None


def _fits_home(slot: datetime, duration: int, intervals: Sequence[HomeInterval]) -> bool:
    end = slot + timedelta(minutes=duration)
    return any(interval.start <= slot and end <= interval.end for interval in intervals)


def place_meals(
    *,
    wake_time: datetime,
    sleep_time: datetime,
    now: datetime,
    anchors: Sequence[TimeRange],
    conflicts: Sequence[TimeRange],
    home_intervals: Optional[Sequence[HomeInterval]],
    zone: tzinfo,
) -> List[MealPlacement]:
    """Place breakfast, lunch and dinner for the day that starts at `wake_time`.

    `anchors` drive the target times; `conflicts` are every fixed block a meal
    must not overlap. An empty or missing `home_intervals` disables the home
    gate.
    """
    effective_now = max(now, wake_time)
    day = local_date(wake_time, zone)
    targets = compute_meal_targets(wake_time, anchors, zone)
    placements: List[MealPlacement] = []
    previous_end: Optional[datetime] = None

    for meal_type in MEAL_ORDER:
        target, reason = targets[meal_type]
        duration = MEAL_DURATIONS[meal_type]
        window = meal_window(meal_type, day, zone)

        def skip(why: str) -> MealPlacement:
            logger.info("Skipping %s: %s", meal_type.value, why)
            return MealPlacement(meal_type, duration, target, reason, skipped=True, skip_reason=why)

        clamped = clamp_to_window(target, window, effective_now)
        if clamped is None:
            placements.append(skip(SKIP_PAST_WINDOW))
            continue

        earliest = max(window[0], effective_now)
        if previous_end is not None:
            if clamped - previous_end < MIN_MEAL_GAP:
                placements.append(skip(SKIP_SPACING))
                continue
            earliest = max(earliest, previous_end + MIN_MEAL_GAP)

        slot = find_meal_slot(clamped, duration, conflicts, earliest=earliest, latest=window[1])
        if slot is None:
            placements.append(skip(SKIP_NO_SLOT))
            continue
        if home_intervals and not _fits_home(slot, duration, home_intervals):
            placements.append(skip(SKIP_NO_HOME))
            continue
        if slot + timedelta(minutes=duration) > sleep_time:
            placements.append(skip(SKIP_SLEEP))
            continue

        placement = MealPlacement(meal_type, duration, target, reason, time=slot)
        placements.append(placement)
        previous_end = placement.end
    return placements
