"""Pydantic schemas for daily / monthly attendance reports."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from rollcall.schemas.attendance import LocationRead


class ReportUser(BaseModel):
    id: int
    user_code: str | None
    name: str
    role: str
    designation: str | None


class DailyReportRow(BaseModel):
    user: ReportUser
    date: date
    status: str
    record_id: int | None
    check_in_time: datetime | None
    check_out_time: datetime | None
    check_in_location: LocationRead | None
    check_out_location: LocationRead | None
    check_in_photo: str | None
    check_out_photo: str | None
    notes: str | None
    is_late: bool
    is_holiday: bool
    overtime_hours: float


class DailyReportResponse(BaseModel):
    success: bool = True
    start_date: date
    end_date: date
    count: int
    data: list[DailyReportRow]


class MonthlyReportRow(BaseModel):
    user: ReportUser
    working_days: int
    present_days: int
    absent_days: int
    leave_days: int
    late_days: int
    pending_days: int
    rejected_days: int
    overtime_hours_total: float


class MonthlyReportResponse(BaseModel):
    success: bool = True
    start_date: date
    end_date: date
    working_days: int
    count: int
    data: list[MonthlyReportRow]


class HealthResponse(BaseModel):
    db: bool
    face_verification: str
