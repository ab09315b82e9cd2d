"""
Attendance reports: daily rows (JSON and CSV download) and monthly totals.

Absence is synthesized here from the roster, never read from storage.
Supervisors may only see their own daily rows.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime, tzinfo

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from rollcall.api.v1.deps import get_services, identity_of, require_roles
from rollcall.core.calendar import ensure_utc, parse_offset
from rollcall.models.user import User
from rollcall.schemas.attendance import LocationRead
from rollcall.schemas.report import (
    DailyReportResponse,
    DailyReportRow,
    MonthlyReportResponse,
    MonthlyReportRow,
    ReportUser,
)
from rollcall.services.container import Services
from rollcall.services.directory import WorkerIdentity
from rollcall.services.reports import DailyRow

router = APIRouter(prefix="/reports/attendance", tags=["reports"])


def _roles(role: str | None) -> list[str] | None:
    if not role:
        return None
    return [r.strip() for r in role.split(",") if r.strip()] or None


def _report_user(worker: WorkerIdentity) -> ReportUser:
    return ReportUser(
        id=worker.id,
        user_code=worker.user_code,
        name=worker.name,
        role=worker.role,
        designation=worker.designation,
    )


def _location(value: dict | None) -> LocationRead | None:
    return LocationRead(**value) if value else None


def _daily_row(row: DailyRow) -> DailyReportRow:
    record = row.record
    return DailyReportRow(
        user=_report_user(row.worker),
        date=row.day,
        status=row.status,
        record_id=record.id if record else None,
        check_in_time=ensure_utc(record.check_in_time) if record and record.check_in_time else None,
        check_out_time=ensure_utc(record.check_out_time) if record and record.check_out_time else None,
        check_in_location=_location(record.check_in_location) if record else None,
        check_out_location=_location(record.check_out_location) if record else None,
        check_in_photo=record.check_in_photo if record else None,
        check_out_photo=record.check_out_photo if record else None,
        notes=record.notes if record else None,
        is_late=row.is_late,
        is_holiday=row.is_holiday,
        overtime_hours=row.overtime_hours,
    )


# ── Daily ───────────────────────────────────────────────────────────
@router.get("/daily", response_model=DailyReportResponse)
async def daily_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    role: str | None = Query(None, description="Comma separated role filter"),
    user: User = Depends(require_roles("admin", "management", "supervisor")),
    services: Services = Depends(get_services),
) -> DailyReportResponse:
    rows = await services.reports.daily_report(identity_of(user), start_date, end_date, _roles(role))
    data = [_daily_row(r) for r in rows]
    return DailyReportResponse(start_date=start_date, end_date=end_date, count=len(data), data=data)


def _fmt_time(ts: datetime | None, offset: tzinfo) -> str:
    """Format a timestamp as local HH:MM AM/PM."""
    if ts is None:
        return ""
    return ensure_utc(ts).astimezone(offset).strftime("%I:%M %p")


@router.get("/daily/csv")
async def daily_report_csv(
    start_date: date = Query(...),
    end_date: date = Query(...),
    role: str | None = Query(None),
    user: User = Depends(require_roles("admin", "management", "supervisor")),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Export the daily report as a CSV file download."""
    rows = await services.reports.daily_report(identity_of(user), start_date, end_date, _roles(role))
    offset = parse_offset(services.settings.ORG_UTC_OFFSET)

    def iter_csv():
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            ["date", "user_code", "name", "role", "status", "check_in", "check_out",
             "late", "overtime_hours"]
        )
        for r in rows:
            writer.writerow(
                [
                    r.day.isoformat(),
                    r.worker.user_code or "",
                    r.worker.name,
                    r.worker.role,
                    r.status,
                    _fmt_time(r.record.check_in_time if r.record else None, offset),
                    _fmt_time(r.record.check_out_time if r.record else None, offset),
                    "yes" if r.is_late else "no",
                    r.overtime_hours,
                ]
            )
            yield buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
        # Header alone when there are no rows
        if buffer.tell():
            yield buffer.getvalue()

    return StreamingResponse(
        iter_csv(),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=attendance_{start_date}_{end_date}.csv"
        },
    )


# ── Monthly ─────────────────────────────────────────────────────────
@router.get("/monthly", response_model=MonthlyReportResponse)
async def monthly_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    role: str | None = Query(None, description="Comma separated role filter"),
    user: User = Depends(require_roles("admin", "management")),
    services: Services = Depends(get_services),
) -> MonthlyReportResponse:
    rows = await services.reports.monthly_report(identity_of(user), start_date, end_date, _roles(role))
    data = [
        MonthlyReportRow(
            user=_report_user(r.worker),
            working_days=r.working_days,
            present_days=r.present_days,
            absent_days=r.absent_days,
            leave_days=r.leave_days,
            late_days=r.late_days,
            pending_days=r.pending_days,
            rejected_days=r.rejected_days,
            overtime_hours_total=r.overtime_hours_total,
        )
        for r in rows
    ]
    working_days = data[0].working_days if data else await services.reports.working_days(start_date, end_date)
    return MonthlyReportResponse(
        start_date=start_date,
        end_date=end_date,
        working_days=working_days,
        count=len(data),
        data=data,
    )
