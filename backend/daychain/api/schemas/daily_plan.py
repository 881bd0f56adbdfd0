"""Schemas for daily plan generation, reads and degrade."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from daychain.services.timeutil import resolve_zone


class DailyContextPayload(BaseModel):
    meds_taken: Optional[bool] = None
    shower_done: Optional[bool] = None


class PlanGenerateRequest(BaseModel):
    user_id: UUID
    plan_date: date = Field(..., alias="date")
    wake_time: time
    sleep_time: time
    energy_state: Literal["low", "medium", "high"]
    timezone: Optional[str] = None
    current_location: Optional[str] = Field(default=None, max_length=200)
    daily_context: Optional[DailyContextPayload] = None
    refresh_inputs: bool = False

    model_config = {"populate_by_name": True}

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            resolve_zone(value)
        return value


class TimeBlockPayload(BaseModel):
    id: UUID
    start_time: datetime
    end_time: datetime
    activity_type: str
    activity_name: str
    activity_id: Optional[str]
    is_fixed: bool
    sequence_order: int
    status: Literal["pending", "completed", "skipped"]
    skip_reason: Optional[str]
    metadata: Dict[str, Any]


class SkippedItemPayload(BaseModel):
    name: str
    activity_type: str
    reason: str


class DailyPlanResponse(BaseModel):
    id: UUID
    user_id: UUID
    plan_date: date
    wake_time: datetime
    sleep_time: datetime
    plan_start: datetime
    energy_state: str
    status: Literal["active", "degraded"]
    generated_after_now: bool
    version: int
    wake_ramp: Optional[Dict[str, Any]]
    chains: List[Dict[str, Any]]
    home_intervals: List[Dict[str, Any]]
    location_periods: List[Dict[str, Any]]
    blocks: List[TimeBlockPayload]
    request_id: str


class PlanGenerateResponse(DailyPlanResponse):
    replaced_existing: bool
    reused_existing: bool
    tail_plan: bool
    skipped_items: List[SkippedItemPayload]


class PlanVersionRequest(BaseModel):
    user_id: UUID
    expected_version: Optional[int] = Field(default=None, ge=1)


class DegradeResponse(DailyPlanResponse):
    dropped: int
    buffers_removed: int
    buffers_added: int


class SequenceResponse(BaseModel):
    plan_id: UUID
    current: Optional[TimeBlockPayload]
    next: List[TimeBlockPayload]
    request_id: str


class ChainStatusPayload(BaseModel):
    chain_id: str
    status: Literal["pending", "in-progress", "completed", "failed"]
    integrity: Literal["intact", "broken"]
    message: str
    completed_steps: int
    total_steps: int
    broken_at: Optional[str]
    late: bool
    missing_required: List[str]


class ChainStatusResponse(BaseModel):
    plan_id: UUID
    chains: List[ChainStatusPayload]
    request_id: str


class ChainPreviewResponse(BaseModel):
    plan_date: date
    anchors: List[Dict[str, Any]]
    chains: List[Dict[str, Any]]
    wake_ramp: Dict[str, Any]
    home_intervals: List[Dict[str, Any]]
    request_id: str
