"""Typed metadata carried by each time block, discriminated on `role`."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Meta(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _ChainLinked(_Meta):
    chain_id: str
    anchor_id: str
    anchor_type: str
    anchor_title: Optional[str] = None


class AnchorMeta(_ChainLinked):
    role: Literal["anchor"] = "anchor"
    location: Optional[str] = None
    must_attend: bool = False


class _StepMeta(_ChainLinked):
    step_id: str
    template_step_id: str
    is_required: bool = True
    can_skip_when_late: bool = False
    is_custom: bool = False
    custom_step_name: Optional[str] = None
    custom_duration_minutes: Optional[int] = None
    custom_updated_at: Optional[datetime] = None


class ChainStepMeta(_StepMeta):
    role: Literal["chain-step"] = "chain-step"


class ExitGateMeta(_StepMeta):
    role: Literal["exit-gate"] = "exit-gate"
    gate_tags: List[str] = Field(default_factory=list)


class TravelMeta(_ChainLinked):
    role: Literal["travel"] = "travel"
    direction: Literal["there", "back"]


class RecoveryMeta(_ChainLinked):
    role: Literal["recovery"] = "recovery"


class BufferMeta(_Meta):
    role: Literal["buffer"] = "buffer"


class MealMeta(_Meta):
    role: Literal["meal"] = "meal"
    meal_type: Literal["breakfast", "lunch", "dinner"]
    target_time: Optional[datetime] = None
    placement_reason: Literal["anchor-aware", "default", "tail-plan"] = "default"


class TaskMeta(_Meta):
    role: Literal["task"] = "task"
    task_id: Optional[str] = None
    placeholder: bool = False
    tail_plan: bool = False


class RoutineMeta(_Meta):
    role: Literal["routine"] = "routine"
    routine_type: Literal["morning", "evening"]
    routine_id: Optional[str] = None
    is_default: bool = False
    tail_plan: bool = False


BlockMetadata = Annotated[
    Union[
        AnchorMeta,
        ChainStepMeta,
        ExitGateMeta,
        TravelMeta,
        RecoveryMeta,
        BufferMeta,
        MealMeta,
        TaskMeta,
        RoutineMeta,
    ],
    Field(discriminator="role"),
]

CHAIN_STEP_ROLES = ("chain-step", "exit-gate")
CHAIN_LINKED = (AnchorMeta, ChainStepMeta, ExitGateMeta, TravelMeta, RecoveryMeta)

_adapter: TypeAdapter[Any] = TypeAdapter(BlockMetadata)


def parse_block_metadata(raw: Optional[Mapping[str, Any]]) -> BlockMetadata:
    return _adapter.validate_python(dict(raw or {}))


def dump_block_metadata(meta: BlockMetadata) -> dict:
    return meta.model_dump(mode="json", exclude_none=True)


def chain_id_of(meta: BlockMetadata) -> Optional[str]:
    return meta.chain_id if isinstance(meta, CHAIN_LINKED) else None


def is_chain_step(meta: BlockMetadata) -> bool:
    return isinstance(meta, (ChainStepMeta, ExitGateMeta))
