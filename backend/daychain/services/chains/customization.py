"""User customization of chain templates and backward reflow of step timings."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from daychain.services.chains.types import AnchorType, ChainStep, ChainTemplate, EXIT_GATE_STEP_ID

logger = logging.getLogger(__name__)

OVERRIDES_KEY = "chain_step_overrides"
CUSTOM_STEPS_KEY = "chain_custom_steps"


@dataclass(frozen=True)
class StepOverride:
    name: Optional[str] = None
    duration_estimate: Any = None
    disabled: bool = False


@dataclass(frozen=True)
class CustomStep:
    id: str
    name: str
    duration_estimate: int
    is_required: bool = False
    can_skip_when_late: bool = True
    insert_after_id: Optional[str] = None
    anchor_type: Optional[str] = None


@dataclass(frozen=True)
class ReflowItem:
    id: str
    duration_minutes: int


@dataclass(frozen=True)
class TimedStep:
    id: str
    duration_minutes: int
    start: datetime
    end: datetime


def coerce_duration(value: Any, fallback: int) -> int:
    """Non-negative whole minutes (half rounds up); `fallback` for anything non-numeric."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(0, int(math.floor(number + 0.5)))


def parse_step_preferences(
    preferences: Optional[Mapping[str, Any]],
) -> Tuple[Dict[str, StepOverride], List[CustomStep]]:
    """Read overrides and custom steps out of a stored preferences document."""
    preferences = preferences or {}
    overrides: Dict[str, StepOverride] = {}
    raw_overrides = preferences.get(OVERRIDES_KEY) or {}
    if isinstance(raw_overrides, Mapping):
        for step_id, raw in raw_overrides.items():
            if not isinstance(raw, Mapping):
                continue
            name = raw.get("name")
            overrides[str(step_id)] = StepOverride(
                name=name.strip() if isinstance(name, str) and name.strip() else None,
                duration_estimate=raw.get("duration_estimate"),
                disabled=bool(raw.get("disabled", False)),
            )

    custom_steps: List[CustomStep] = []
    raw_custom = preferences.get(CUSTOM_STEPS_KEY) or []
    if isinstance(raw_custom, list):
        for raw in raw_custom:
            if not isinstance(raw, Mapping) or not raw.get("id") or not raw.get("name"):
                logger.debug("Ignoring malformed custom chain step %r", raw)
                continue
            custom_steps.append(
                CustomStep(
                    id=str(raw["id"]),
                    name=str(raw["name"]),
                    duration_estimate=coerce_duration(raw.get("duration_estimate"), 5),
                    is_required=bool(raw.get("is_required", False)),
                    can_skip_when_late=bool(raw.get("can_skip_when_late", True)),
                    insert_after_id=raw.get("insert_after_id") or None,
                    anchor_type=raw.get("anchor_type") or None,
                )
            )
    return overrides, custom_steps


def apply_chain_step_overrides(
    template: ChainTemplate,
    overrides: Optional[Mapping[str, StepOverride]] = None,
    custom_steps: Sequence[CustomStep] = (),
) -> ChainTemplate:
    """Return a copy of `template` with user overrides and custom steps applied.

    Overrides rename and/or re-time steps and may disable them. Custom steps go
    right after `insert_after_id` when that step is present, otherwise right
    before the exit gate (or at the end when there is no exit gate). Several
    custom steps aimed at the same spot keep their insertion order.
    """
    overrides = overrides or {}
    steps: List[ChainStep] = []
    for step in template.steps:
        override = overrides.get(step.id)
        if override is None:
            steps.append(step)
            continue
        if override.disabled:
            continue
        steps.append(
            replace(
                step,
                name=override.name or step.name,
                duration_estimate=coerce_duration(override.duration_estimate, step.duration_estimate),
            )
        )

    last_inserted_after: Dict[str, str] = {}
    for custom in custom_steps:
        if custom.anchor_type and custom.anchor_type != template.anchor_type.value:
            continue
        new_step = ChainStep(
            id=custom.id,
            name=custom.name,
            duration_estimate=custom.duration_estimate,
            is_required=custom.is_required,
            can_skip_when_late=custom.can_skip_when_late,
        )
        ids = [step.id for step in steps]
        target = custom.insert_after_id
        if target and target in ids:
            after = last_inserted_after.get(target, target)
            steps.insert(ids.index(after) + 1, new_step)
            last_inserted_after[target] = new_step.id
        elif EXIT_GATE_STEP_ID in ids:
            steps.insert(ids.index(EXIT_GATE_STEP_ID), new_step)
        else:
            steps.append(new_step)

    return template.with_steps(steps)


def reflow_steps_backward(steps: Sequence[ReflowItem], deadline: datetime) -> List[TimedStep]:
    """Time an ordered step list so the last step ends exactly at `deadline`.

    Walks backwards: each step ends where its successor starts. Result keeps
    the input order.
    """
    timed: List[TimedStep] = []
    cursor = deadline
    for item in reversed(steps):
        length = max(0, int(item.duration_minutes))
        start = cursor - timedelta(minutes=length)
        timed.append(TimedStep(id=item.id, duration_minutes=length, start=start, end=cursor))
        cursor = start
    timed.reverse()
    return timed


def resolve_template(
    anchor_type: AnchorType,
    base: ChainTemplate,
    preferences: Optional[Mapping[str, Any]],
) -> ChainTemplate:
    overrides, custom_steps = parse_step_preferences(preferences)
    if not overrides and not custom_steps:
        return base
    logger.debug(
        "Applying %d overrides and %d custom steps to %s template",
        len(overrides),
        len(custom_steps),
        anchor_type.value,
    )
    return apply_chain_step_overrides(base, overrides, custom_steps)
