"""
Overtime endpoints.

- Any authenticated user may file a request for themselves.
- Supervisors, management and admins may file for another worker.
- Only admin / management may list everyone's requests or decide them.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from rollcall.api.v1.deps import get_current_active_user, get_services, require_roles
from rollcall.models.overtime import OvertimeRecord
from rollcall.models.user import User
from rollcall.schemas.overtime import OvertimeCreate, OvertimeRead
from rollcall.services.container import Services
from rollcall.services.intake import resolve_target

router = APIRouter(prefix="/overtime", tags=["overtime"])

REVIEW_ROLES = ("admin", "management")


@router.post("", response_model=OvertimeRead, status_code=201)
async def request_overtime(
    body: OvertimeCreate,
    user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
) -> OvertimeRecord:
    _actor, target = await resolve_target(services.directory, user.id, body.worker_id)
    return await services.overtime.create(target.id, body.day, body.hours, body.reason, user.id)


@router.get("", response_model=list[OvertimeRead])
async def list_overtime(
    status: str | None = Query(None),
    worker_id: int | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
) -> list[OvertimeRecord]:
    """Reviewers see every request; everyone else sees only their own."""
    if user.role not in REVIEW_ROLES:
        worker_id = user.id
    return await services.overtime.list_requests(
        status=status, worker_id=worker_id, start=start_date, end=end_date
    )


@router.put("/{record_id}/approve", response_model=OvertimeRead)
async def approve_overtime(
    record_id: int,
    user: User = Depends(require_roles(*REVIEW_ROLES)),
    services: Services = Depends(get_services),
) -> OvertimeRecord:
    return await services.overtime.approve(record_id, user.id)


@router.put("/{record_id}/reject", response_model=OvertimeRead)
async def reject_overtime(
    record_id: int,
    user: User = Depends(require_roles(*REVIEW_ROLES)),
    services: Services = Depends(get_services),
) -> OvertimeRecord:
    return await services.overtime.reject(record_id, user.id)
