"""
Overtime ledger: requests with an administrator approval lifecycle.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.exceptions import NotFound, StateConflict, ValidationError
from rollcall.models.overtime import OvertimeRecord

logger = logging.getLogger(__name__)

MAX_HOURS_PER_DAY = 24.0
COUNTED_STATUSES = ("approved", "pending")


class OvertimeLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        worker_id: int,
        day: date,
        hours: float,
        reason: str | None,
        requested_by: int,
    ) -> OvertimeRecord:
        if not 0 < hours <= MAX_HOURS_PER_DAY:
            raise ValidationError(
                f"hours must be greater than 0 and at most {MAX_HOURS_PER_DAY:g}", field="hours"
            )
        record = OvertimeRecord(
            user_id=worker_id,
            day=day,
            hours=float(hours),
            reason=reason,
            status="pending",
            requested_by=requested_by,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        logger.info(
            "Overtime #%d requested: user %d, %s, %.2fh (by user %d)",
            record.id, worker_id, day, hours, requested_by,
        )
        return record

    async def _decide(self, record_id: int, status: str, actor_id: int) -> OvertimeRecord:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OvertimeRecord).where(OvertimeRecord.id == record_id).with_for_update()
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFound(f"Overtime record {record_id} not found")
            if record.status == status:
                return record
            if record.status != "pending":
                raise StateConflict(
                    f"Overtime record {record_id} is already {record.status}",
                    context={"record_id": record_id, "status": record.status},
                )
            record.status = status
            record.decided_by = actor_id
            await session.commit()
            await session.refresh(record)
        logger.info("Overtime #%d %s by user %d", record_id, status, actor_id)
        return record

    async def approve(self, record_id: int, actor_id: int) -> OvertimeRecord:
        return await self._decide(record_id, "approved", actor_id)

    async def reject(self, record_id: int, actor_id: int) -> OvertimeRecord:
        return await self._decide(record_id, "rejected", actor_id)

    async def list_requests(
        self,
        *,
        status: str | None = None,
        worker_id: int | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[OvertimeRecord]:
        stmt = select(OvertimeRecord).order_by(OvertimeRecord.day.desc(), OvertimeRecord.id)
        if status:
            stmt = stmt.where(OvertimeRecord.status == status)
        if worker_id is not None:
            stmt = stmt.where(OvertimeRecord.user_id == worker_id)
        if start is not None:
            stmt = stmt.where(OvertimeRecord.day >= start)
        if end is not None:
            stmt = stmt.where(OvertimeRecord.day <= end)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def sum_approved_and_pending(
        self, worker_ids: Iterable[int], start: date, end: date
    ) -> dict[tuple[int, date], float]:
        """Hours per (worker, day); rejected requests never count."""
        ids = list(worker_ids)
        if not ids:
            return {}
        async with self._session_factory() as session:
            result = await session.execute(
                select(OvertimeRecord.user_id, OvertimeRecord.day, OvertimeRecord.hours).where(
                    OvertimeRecord.user_id.in_(ids),
                    OvertimeRecord.day >= start,
                    OvertimeRecord.day <= end,
                    OvertimeRecord.status.in_(COUNTED_STATUSES),
                )
            )
            totals: dict[tuple[int, date], float] = defaultdict(float)
            for user_id, day, hours in result.all():
                totals[(user_id, day)] += hours
        return dict(totals)
