"""Schemas for time block status changes and chain step edits."""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from daychain.api.schemas.daily_plan import TimeBlockPayload


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("name must not be blank")
    return cleaned


class BlockStatusRequest(BaseModel):
    user_id: UUID


class BlockSkipRequest(BaseModel):
    user_id: UUID
    reason: Optional[str] = Field(default=None, max_length=200)


class BlockStatusResponse(BaseModel):
    block: TimeBlockPayload
    current: Optional[TimeBlockPayload]
    request_id: str


class _StepReference(BaseModel):
    user_id: UUID
    plan_id: Optional[UUID] = None
    step_id: Optional[str] = Field(default=None, max_length=200)
    today: Optional[date] = None
    expected_version: Optional[int] = Field(default=None, ge=1)


class EditStepRequest(_StepReference):
    name: Optional[str] = Field(default=None, max_length=120)
    duration_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    save_as_template: bool = True

    @field_validator("name")
    @classmethod
    def trim_name(cls, value: Optional[str]) -> Optional[str]:
        return _clean_name(value)

    @model_validator(mode="after")
    def require_change(self) -> "EditStepRequest":
        if self.name is None and self.duration_minutes is None:
            raise ValueError("provide name and/or duration_minutes")
        return self


class AddStepRequest(_StepReference):
    name: str = Field(..., max_length=120)
    duration_minutes: int = Field(default=5, ge=0, le=240)
    is_required: bool = False
    save_as_template: bool = False

    @field_validator("name")
    @classmethod
    def trim_name(cls, value: str) -> str:
        return _clean_name(value)


class DeleteStepRequest(_StepReference):
    save_as_template: bool = False


class ChainEditResponse(BaseModel):
    plan_id: UUID
    plan_version: int
    chain_id: str
    block_id: Optional[UUID]
    displaced: int
    saved_template: bool
    steps: List[TimeBlockPayload]
    request_id: str
