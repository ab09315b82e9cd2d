"""Pydantic schemas for overtime requests."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class OvertimeCreate(BaseModel):
    day: date
    hours: float = Field(gt=0, le=24)
    reason: str | None = Field(default=None, max_length=500)
    worker_id: int | None = None  # supervisors / management may file for a worker


class OvertimeRead(BaseModel):
    id: int
    user_id: int
    day: date
    hours: float
    reason: str | None
    status: str
    requested_by: int
    decided_by: int | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
