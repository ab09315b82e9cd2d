"""
Administrator adjudication of pending records and leave marking.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone

from rollcall.core.exceptions import NotFound
from rollcall.models.attendance import AttendanceRecord
from rollcall.services.directory import UserDirectory
from rollcall.services.record_store import RecordStore
from rollcall.services.session_machine import Decision, SessionStateMachine

logger = logging.getLogger(__name__)


class ReviewDesk:
    def __init__(
        self,
        store: RecordStore,
        machine: SessionStateMachine,
        directory: UserDirectory,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._machine = machine
        self._directory = directory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def pending(self, start: date | None = None, end: date | None = None) -> list[AttendanceRecord]:
        return await self._store.list_pending(start, end)

    async def decide(self, record_id: int, decision: Decision, actor_id: int) -> AttendanceRecord:
        at = self._clock()
        record = await self._store.update_record(
            record_id, lambda row: self._machine.adjudicate(row, decision, actor_id, at)
        )
        logger.info("Attendance #%d %s by user %d -> %s", record_id, decision.value, actor_id, record.status)
        return record

    async def mark_leave(
        self, worker_id: int, day: date, actor_id: int, reason: str | None = None
    ) -> AttendanceRecord:
        worker = await self._directory.find_by_id(worker_id)
        if worker is None or not worker.is_active:
            raise NotFound(f"Worker {worker_id} not found or inactive")
        at = self._clock()
        record = await self._store.upsert_for_day(
            worker_id,
            day,
            lambda current: self._machine.mark_leave(current, worker_id, day, actor_id, at, reason),
        )
        logger.info("Leave recorded for user %d on %s by user %d", worker_id, day, actor_id)
        return record
