"""Post-wake startup ramp sized by energy level."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from daychain.services.daily_plan.types import EnergyLevel
from daychain.services.timeutil import isoformat

SKIP_AFTER = timedelta(hours=2)
TOILET_MINUTES = 20
HYGIENE_MINUTES = 10
SHOWER_MINUTES = 25
DRESS_MINUTES = 20
ENERGY_BUFFER_MINUTES = {
    EnergyLevel.LOW: 45,
    EnergyLevel.MEDIUM: 15,
    EnergyLevel.HIGH: 0,
}
SKIP_REASON = "Already awake for more than 2 hours"


@dataclass(frozen=True)
class WakeRampComponents:
    toilet: int = 0
    hygiene: int = 0
    shower: int = 0
    dress: int = 0
    buffer: int = 0

    @property
    def total(self) -> int:
        return self.toilet + self.hygiene + self.shower + self.dress + self.buffer


@dataclass(frozen=True)
class WakeRamp:
    start: datetime
    end: datetime
    duration: int
    components: WakeRampComponents
    skipped: bool = False
    skip_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": isoformat(self.start),
            "end": isoformat(self.end),
            "duration": self.duration,
            "components": asdict(self.components),
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
        }


def should_skip_wake_ramp(plan_start: datetime, wake_time: datetime) -> bool:
    return plan_start > wake_time + SKIP_AFTER


def generate_wake_ramp(
    plan_start: datetime,
    wake_time: datetime,
    energy: Union[EnergyLevel, str],
) -> WakeRamp:
    if should_skip_wake_ramp(plan_start, wake_time):
        return WakeRamp(
            start=plan_start,
            end=plan_start,
            duration=0,
            components=WakeRampComponents(),
            skipped=True,
            skip_reason=SKIP_REASON,
        )

    components = WakeRampComponents(
        toilet=TOILET_MINUTES,
        hygiene=HYGIENE_MINUTES,
        shower=SHOWER_MINUTES,
        dress=DRESS_MINUTES,
        buffer=ENERGY_BUFFER_MINUTES[EnergyLevel(energy)],
    )
    return WakeRamp(
        start=plan_start,
        end=plan_start + timedelta(minutes=components.total),
        duration=components.total,
        components=components,
    )
