"""Pydantic schemas for attendance records, adjudication and leave."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, field_validator

from rollcall.core.calendar import ensure_utc


class LocationRead(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None


class AttendanceRead(BaseModel):
    id: int
    user_id: int
    day: date
    status: str
    check_in_time: datetime | None
    check_out_time: datetime | None
    check_in_location: LocationRead | None = None
    check_out_location: LocationRead | None = None
    check_in_photo: str | None = None
    check_out_photo: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("check_in_time", "check_out_time", "created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class AttendanceResponse(BaseModel):
    success: bool = True
    data: AttendanceRead


class PendingAttendanceItem(AttendanceRead):
    name: str | None = None  # joined from the user directory
    role: str | None = None


class LeaveRequest(BaseModel):
    worker_id: int
    day: date
    reason: str | None = None

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str | None) -> str | None:
        if v is not None and len(v) > 500:
            raise ValueError("Reason must not exceed 500 characters")
        return v


class TodaySummaryResponse(BaseModel):
    date: date
    is_holiday: bool
    total_workers: int
    present: int
    absent: int
    leave: int
    pending: int
    rejected: int
    late: int
