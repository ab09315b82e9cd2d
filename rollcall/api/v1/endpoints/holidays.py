"""
Holiday calendar endpoints.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from rollcall.api.v1.deps import get_services, require_roles
from rollcall.models.holiday import Holiday
from rollcall.models.user import User
from rollcall.schemas.holiday import DeleteResponse, HolidayCreate, HolidayRead
from rollcall.services.container import Services

router = APIRouter(prefix="/holidays", tags=["holidays"])


@router.get("", response_model=list[HolidayRead])
async def list_holidays(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    _user: User = Depends(require_roles("admin", "management", "supervisor")),
    services: Services = Depends(get_services),
) -> list[Holiday]:
    return await services.holidays.list_entries(start_date, end_date)


@router.post("", response_model=HolidayRead, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    _user: User = Depends(require_roles("admin", "management")),
    services: Services = Depends(get_services),
) -> Holiday:
    return await services.holidays.create(body.day, body.name, body.type)


@router.delete("/{holiday_id}", response_model=DeleteResponse)
async def delete_holiday(
    holiday_id: int,
    _user: User = Depends(require_roles("admin", "management")),
    services: Services = Depends(get_services),
) -> DeleteResponse:
    await services.holidays.delete(holiday_id)
    return DeleteResponse(success=True, message="Holiday deleted")
