"""Small datetime helpers shared by the scheduling modules.

All timeline datetimes are timezone-aware UTC instants. Wall-clock rules (meal
windows, the 18:00 evening boundary, noon) are evaluated in the plan's local zone.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

FIVE_MINUTES = timedelta(minutes=5)


def minutes(value: int | float) -> timedelta:
    return timedelta(minutes=value)


def duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def round_up_to_five(moment: datetime) -> datetime:
    """Round up to the next 5-minute boundary (already aligned values stay put)."""
    floored = moment.replace(second=0, microsecond=0)
    remainder = floored.minute % 5
    if remainder == 0 and floored == moment:
        return moment
    return floored + timedelta(minutes=5 - remainder if remainder else 5)


def resolve_zone(name: Optional[str], default: str = "UTC") -> tzinfo:
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_date(moment: datetime, zone: tzinfo) -> date:
    return moment.astimezone(zone).date()


def at_local(day: date, clock: time, zone: tzinfo) -> datetime:
    """The UTC instant a wall clock in `zone` reads `clock` on `day`.

    Timeline arithmetic happens on UTC instants so durations stay exact across
    DST transitions.
    """
    return datetime.combine(day, clock, tzinfo=zone).astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap; zero-length ranges never overlap anything."""
    return a_start < b_end and b_start < a_end


def overlaps_any(start: datetime, end: datetime, ranges: Iterable[Tuple[datetime, datetime]]) -> bool:
    return any(overlaps(start, end, r_start, r_end) for r_start, r_end in ranges)


def isoformat(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
