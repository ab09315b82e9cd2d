"""
Holiday calendar.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.exceptions import NotFound, StateConflict, ValidationError
from rollcall.models.holiday import Holiday

logger = logging.getLogger(__name__)

HOLIDAY_TYPES = ("national", "company")


class HolidayCalendar:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_entries(self, start: date | None = None, end: date | None = None) -> list[Holiday]:
        stmt = select(Holiday).order_by(Holiday.day, Holiday.id)
        if start is not None:
            stmt = stmt.where(Holiday.day >= start)
        if end is not None:
            stmt = stmt.where(Holiday.day <= end)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_in_range(self, start: date, end: date) -> set[date]:
        """Holiday days in range, deduplicated by day rather than by row."""
        return {h.day for h in await self.list_entries(start, end)}

    async def is_holiday(self, day: date) -> bool:
        return day in await self.list_in_range(day, day)

    async def create(self, day: date, name: str, type_: str = "company") -> Holiday:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Holiday name must not be empty", field="name")
        if type_ not in HOLIDAY_TYPES:
            raise ValidationError(f"type must be one of {', '.join(HOLIDAY_TYPES)}", field="type")

        async with self._session_factory() as session:
            existing = await session.execute(select(Holiday).where(Holiday.day == day))
            if existing.scalar_one_or_none() is not None:
                raise StateConflict(
                    f"A holiday already exists on {day.isoformat()}", context={"day": day.isoformat()}
                )
            holiday = Holiday(day=day, name=name, type=type_)
            session.add(holiday)
            await session.commit()
            await session.refresh(holiday)
        logger.info("Holiday created: %s (%s)", day, name)
        return holiday

    async def delete(self, holiday_id: int) -> None:
        async with self._session_factory() as session:
            holiday = await session.get(Holiday, holiday_id)
            if holiday is None:
                raise NotFound("Holiday not found")
            await session.delete(holiday)
            await session.commit()
        logger.info("Holiday %d deleted", holiday_id)
