"""
Attendance endpoints: self and supervisor check-in / check-out (live and
offline sync), leave marking, pending review and today's summary.

- Self events: worker / supervisor / management.
- On-behalf events: supervisor / management, face verified on the live channel.
- Review (pending list, approve, reject): admin / management.
"""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from rollcall.api.v1.deps import get_services, require_roles
from rollcall.core.exceptions import RollcallError
from rollcall.models.user import ROLES, User
from rollcall.schemas.attendance import (
    AttendanceRead,
    AttendanceResponse,
    LeaveRequest,
    PendingAttendanceItem,
    TodaySummaryResponse,
)
from rollcall.services.container import Services
from rollcall.services.intake import AttendanceEvent
from rollcall.services.location import normalize_location
from rollcall.services.session_machine import Channel, Decision, EventKind
from rollcall.services.storage import check_photo_upload

router = APIRouter(prefix="/attendance", tags=["attendance"])

SELF_ROLES = ("worker", "supervisor", "management")
ON_BEHALF_ROLES = ("supervisor", "management")
REVIEW_ROLES = ("admin", "management")


async def _store_photo(services: Services, photo: UploadFile | None, prefix: str) -> str | None:
    if photo is None:
        return None
    data = await photo.read()
    check_photo_upload(data, photo.content_type, services.settings.MAX_PHOTO_BYTES)
    return await services.storage.store(data, photo.content_type, prefix=prefix)


async def _submit(
    services: Services,
    user: User,
    kind: EventKind,
    channel: Channel,
    photo: UploadFile | None,
    *,
    target_worker_id: int | None = None,
    client_timestamp: datetime | None = None,
    location: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
) -> AttendanceResponse:
    # Parse the location before anything is written to storage
    normalized = normalize_location(location, latitude=latitude, longitude=longitude, address=address)
    photo_ref = await _store_photo(services, photo, kind.value.replace("_", ""))
    event = AttendanceEvent(
        acting_user_id=user.id,
        kind=kind,
        channel=channel,
        photo_ref=photo_ref,
        target_worker_id=target_worker_id,
        client_timestamp=client_timestamp,
        location=normalized,
    )
    try:
        record = await services.intake.submit(event)
    except RollcallError:
        # A refused event keeps no evidence
        if photo_ref is not None:
            await services.storage.delete(photo_ref)
        raise
    return AttendanceResponse(data=AttendanceRead.model_validate(record))


# ── Live, self ──────────────────────────────────────────────────────
@router.post("/checkin", response_model=AttendanceResponse)
async def check_in(
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*SELF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_IN, Channel.LIVE, photo,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


@router.post("/checkout", response_model=AttendanceResponse)
async def check_out(
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*SELF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_OUT, Channel.LIVE, photo,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


# ── Live, on behalf ─────────────────────────────────────────────────
@router.post("/supervisor/checkin", response_model=AttendanceResponse)
async def supervisor_check_in(
    target_worker_id: int = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*ON_BEHALF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_IN, Channel.LIVE, photo,
        target_worker_id=target_worker_id,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


@router.post("/supervisor/checkout", response_model=AttendanceResponse)
async def supervisor_check_out(
    target_worker_id: int = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*ON_BEHALF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_OUT, Channel.LIVE, photo,
        target_worker_id=target_worker_id,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


# ── Offline sync ────────────────────────────────────────────────────
@router.post("/checkin-pending", response_model=AttendanceResponse)
async def check_in_pending(
    client_timestamp: datetime = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*SELF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_IN, Channel.OFFLINE_SYNC, photo,
        client_timestamp=client_timestamp,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


@router.post("/checkout-pending", response_model=AttendanceResponse)
async def check_out_pending(
    client_timestamp: datetime = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*SELF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_OUT, Channel.OFFLINE_SYNC, photo,
        client_timestamp=client_timestamp,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


@router.post("/supervisor/checkin-pending", response_model=AttendanceResponse)
async def supervisor_check_in_pending(
    target_worker_id: int = Form(...),
    client_timestamp: datetime = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*ON_BEHALF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_IN, Channel.OFFLINE_SYNC, photo,
        target_worker_id=target_worker_id, client_timestamp=client_timestamp,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


@router.post("/supervisor/checkout-pending", response_model=AttendanceResponse)
async def supervisor_check_out_pending(
    target_worker_id: int = Form(...),
    client_timestamp: datetime = Form(...),
    photo: UploadFile | None = File(None),
    location: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    address: str | None = Form(None),
    user: User = Depends(require_roles(*ON_BEHALF_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    return await _submit(
        services, user, EventKind.CHECK_OUT, Channel.OFFLINE_SYNC, photo,
        target_worker_id=target_worker_id, client_timestamp=client_timestamp,
        location=location, latitude=latitude, longitude=longitude, address=address,
    )


# ── Leave ───────────────────────────────────────────────────────────
@router.post("/leave", response_model=AttendanceResponse, status_code=201)
async def mark_leave(
    body: LeaveRequest,
    user: User = Depends(require_roles("supervisor", "management", "admin")),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    record = await services.review.mark_leave(body.worker_id, body.day, user.id, body.reason)
    return AttendanceResponse(data=AttendanceRead.model_validate(record))


# ── Review ──────────────────────────────────────────────────────────
@router.get("/pending", response_model=list[PendingAttendanceItem])
async def list_pending(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    _user: User = Depends(require_roles(*REVIEW_ROLES)),
    services: Services = Depends(get_services),
) -> list[PendingAttendanceItem]:
    records = await services.review.pending(start_date, end_date)
    people = {w.id: w for w in await services.directory.list_active(ROLES)}

    items = []
    for record in records:
        person = people.get(record.user_id)
        item = PendingAttendanceItem.model_validate(record)
        if person is not None:
            item.name = person.name
            item.role = person.role
        items.append(item)
    return items


@router.put("/{record_id}/approve", response_model=AttendanceResponse)
async def approve(
    record_id: int,
    user: User = Depends(require_roles(*REVIEW_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    record = await services.review.decide(record_id, Decision.APPROVE, user.id)
    return AttendanceResponse(data=AttendanceRead.model_validate(record))


@router.put("/{record_id}/reject", response_model=AttendanceResponse)
async def reject(
    record_id: int,
    user: User = Depends(require_roles(*REVIEW_ROLES)),
    services: Services = Depends(get_services),
) -> AttendanceResponse:
    record = await services.review.decide(record_id, Decision.REJECT, user.id)
    return AttendanceResponse(data=AttendanceRead.model_validate(record))


# ── Today ───────────────────────────────────────────────────────────
@router.get("/summary/today", response_model=TodaySummaryResponse)
async def today_summary(
    _user: User = Depends(require_roles("admin", "management", "supervisor")),
    services: Services = Depends(get_services),
) -> TodaySummaryResponse:
    summary = await services.reports.today_summary()
    return TodaySummaryResponse(
        date=summary.day,
        is_holiday=summary.is_holiday,
        total_workers=summary.total_workers,
        **summary.counts,
    )
