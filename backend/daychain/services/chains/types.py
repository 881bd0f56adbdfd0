"""Value types for anchors, chain templates and execution chains."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from daychain.services.timeutil import duration_minutes, isoformat


class AnchorType(str, Enum):
    CLASS = "class"
    SEMINAR = "seminar"
    WORKSHOP = "workshop"
    APPOINTMENT = "appointment"
    OTHER = "other"


class StepRole(str, Enum):
    ANCHOR = "anchor"
    CHAIN_STEP = "chain-step"
    EXIT_GATE = "exit-gate"
    RECOVERY = "recovery"
    TRAVEL = "travel"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


EXIT_GATE_STEP_ID = "exit-gate"


@dataclass(frozen=True)
class Anchor:
    id: str
    title: str
    start: datetime
    end: datetime
    anchor_type: AnchorType
    location: Optional[str] = None
    must_attend: bool = False
    calendar_event_id: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return duration_minutes(self.start, self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start": isoformat(self.start),
            "end": isoformat(self.end),
            "type": self.anchor_type.value,
            "location": self.location,
            "must_attend": self.must_attend,
            "calendar_event_id": self.calendar_event_id,
        }


@dataclass(frozen=True)
class ChainStep:
    id: str
    name: str
    duration_estimate: int
    is_required: bool = True
    can_skip_when_late: bool = False
    gate_tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ChainTemplate:
    anchor_type: AnchorType
    steps: Tuple[ChainStep, ...]

    def with_steps(self, steps: List[ChainStep]) -> "ChainTemplate":
        return replace(self, steps=tuple(steps))


@dataclass
class ChainStepInstance:
    step_id: str
    template_step_id: str
    chain_id: str
    name: str
    start_time: datetime
    end_time: datetime
    role: StepRole
    status: StepStatus = StepStatus.PENDING
    is_required: bool = True
    can_skip_when_late: bool = False
    gate_tags: Tuple[str, ...] = ()

    @property
    def duration(self) -> int:
        return duration_minutes(self.start_time, self.end_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "template_step_id": self.template_step_id,
            "chain_id": self.chain_id,
            "name": self.name,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "duration": self.duration,
            "role": self.role.value,
            "status": self.status.value,
            "is_required": self.is_required,
            "can_skip_when_late": self.can_skip_when_late,
            "gate_tags": list(self.gate_tags),
        }


@dataclass
class CommitmentEnvelope:
    prep: ChainStepInstance
    travel_there: ChainStepInstance
    anchor: ChainStepInstance
    travel_back: ChainStepInstance
    recovery: ChainStepInstance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prep": self.prep.to_dict(),
            "travel_there": self.travel_there.to_dict(),
            "anchor": self.anchor.to_dict(),
            "travel_back": self.travel_back.to_dict(),
            "recovery": self.recovery.to_dict(),
        }


@dataclass
class ExecutionChain:
    chain_id: str
    anchor: Anchor
    chain_completion_deadline: datetime
    steps: List[ChainStepInstance]
    envelope: CommitmentEnvelope
    travel_minutes: int
    prep_minutes: int
    status: StepStatus = StepStatus.PENDING
    injected_step_ids: List[str] = field(default_factory=list)

    @property
    def exit_gate(self) -> Optional[ChainStepInstance]:
        return next((step for step in self.steps if step.role == StepRole.EXIT_GATE), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "anchor": self.anchor.to_dict(),
            "chain_completion_deadline": isoformat(self.chain_completion_deadline),
            "steps": [step.to_dict() for step in self.steps],
            "envelope": self.envelope.to_dict(),
            "travel_minutes": self.travel_minutes,
            "prep_minutes": self.prep_minutes,
            "status": self.status.value,
            "injected_step_ids": list(self.injected_step_ids),
        }
