"""
Attendance record persistence.

Writes for one (worker, day) key are linearised. An in-process keyed
``asyncio.Lock`` serialises callers in this worker process.
``SELECT ... FOR UPDATE`` serialises updates to an existing row across
processes. An empty result locks nothing, so two processes may both try to
insert the first row for a key; the partial unique index on active rows lets
only one of them commit, and the loser re-reads the key and runs its mutation
against the winner. Each attempt is one transaction, so a failed mutation
leaves nothing half-written. Connectivity failures are retried with bounded
exponential backoff; business errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import date
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import (DBAPIError, IntegrityError, InterfaceError,
                            OperationalError)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.exceptions import NotFound, ServerError
from rollcall.models.attendance import AttendanceRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")
Key = tuple[int, date]
Mutation = Callable[[AttendanceRecord | None], AttendanceRecord]


def pick_effective(rows: Sequence[AttendanceRecord]) -> AttendanceRecord | None:
    """Choose the authoritative row among several for one key.

    The newest non-rejected row wins; if every row was rejected, the newest
    rejected row is returned so callers can still see the outcome.
    """
    if not rows:
        return None
    live = [r for r in rows if r.status != "rejected"]
    return max(live or rows, key=lambda r: r.id)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, TimeoutError))


class KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[Key, asyncio.Lock] = {}
        self._users: dict[Key, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Key) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class RecordStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retry_attempts: int = 3,
        retry_backoff: float = 0.2,
    ) -> None:
        self._session_factory = session_factory
        self._retry_attempts = max(1, retry_attempts)
        self._retry_backoff = retry_backoff
        self._locks = KeyedLocks()

    # ── Retry boundary ──────────────────────────────────────────────
    async def _with_retries(self, operation: Callable[[], Awaitable[T]], what: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if not _is_transient(exc):
                    raise
                if attempt >= self._retry_attempts:
                    logger.error("%s failed after %d attempts: %s", what, attempt, exc)
                    raise ServerError(
                        "Attendance storage is temporarily unavailable"
                    ) from exc
                delay = self._retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    what, attempt, self._retry_attempts, delay, exc,
                )
                await asyncio.sleep(delay)

    @staticmethod
    async def _rows_for_day(
        session: AsyncSession, worker_id: int, day: date, *, lock: bool = False
    ) -> list[AttendanceRecord]:
        stmt = (
            select(AttendanceRecord)
            .where(AttendanceRecord.user_id == worker_id, AttendanceRecord.day == day)
            .order_by(AttendanceRecord.id)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── Writes ──────────────────────────────────────────────────────
    async def upsert_for_day(self, worker_id: int, day: date, mutation: Mutation) -> AttendanceRecord:
        """Apply *mutation* to the key's authoritative record and persist the result."""

        async def _attempt() -> AttendanceRecord:
            async with self._session_factory() as session:
                async with session.begin():
                    rows = await self._rows_for_day(session, worker_id, day, lock=True)
                    record = mutation(pick_effective(rows))
                    session.add(record)
                return record

        what = f"upsert attendance {worker_id}/{day}"
        async with self._locks.hold((worker_id, day)):
            races = 0
            while True:
                try:
                    return await self._with_retries(_attempt, what)
                except IntegrityError:
                    # Another process inserted the key's active row first
                    races += 1
                    if races >= self._retry_attempts:
                        raise
                    logger.info("Lost insert race for attendance %d/%s, re-reading", worker_id, day)

    async def update_record(self, record_id: int, mutation: Mutation) -> AttendanceRecord:
        """Apply *mutation* to one specific row, under its key's lock."""
        record = await self.get(record_id)
        key = (record.user_id, record.day)

        async def _attempt() -> AttendanceRecord:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(AttendanceRecord)
                        .where(AttendanceRecord.id == record_id)
                        .with_for_update()
                    )
                    row = result.scalar_one()
                    updated = mutation(row)
                    session.add(updated)
                return updated

        async with self._locks.hold(key):
            return await self._with_retries(_attempt, f"update attendance #{record_id}")

    # ── Reads ───────────────────────────────────────────────────────
    async def get(self, record_id: int) -> AttendanceRecord:
        async def _read() -> AttendanceRecord | None:
            async with self._session_factory() as session:
                return await session.get(AttendanceRecord, record_id)

        record = await self._with_retries(_read, f"read attendance #{record_id}")
        if record is None:
            raise NotFound(f"Attendance record {record_id} not found")
        return record

    async def find_for_day(self, worker_id: int, day: date) -> AttendanceRecord | None:
        async def _read() -> AttendanceRecord | None:
            async with self._session_factory() as session:
                return pick_effective(await self._rows_for_day(session, worker_id, day))

        return await self._with_retries(_read, f"read attendance {worker_id}/{day}")

    async def find_range(
        self, worker_ids: Iterable[int], start: date, end: date
    ) -> dict[Key, AttendanceRecord]:
        """Authoritative record per (worker, day) for every key that has one."""
        ids = list(worker_ids)
        if not ids:
            return {}

        async def _read() -> list[AttendanceRecord]:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AttendanceRecord)
                    .where(
                        AttendanceRecord.user_id.in_(ids),
                        AttendanceRecord.day >= start,
                        AttendanceRecord.day <= end,
                    )
                    .order_by(AttendanceRecord.id)
                )
                return list(result.scalars().all())

        rows = await self._with_retries(_read, "read attendance range")
        grouped: dict[Key, list[AttendanceRecord]] = defaultdict(list)
        for row in rows:
            grouped[(row.user_id, row.day)].append(row)
        return {key: pick_effective(group) for key, group in grouped.items()}  # type: ignore[misc]

    async def list_pending(
        self, start: date | None = None, end: date | None = None
    ) -> list[AttendanceRecord]:
        async def _read() -> list[AttendanceRecord]:
            stmt = select(AttendanceRecord).where(AttendanceRecord.status == "pending")
            if start is not None:
                stmt = stmt.where(AttendanceRecord.day >= start)
            if end is not None:
                stmt = stmt.where(AttendanceRecord.day <= end)
            async with self._session_factory() as session:
                result = await session.execute(
                    stmt.order_by(AttendanceRecord.day.desc(), AttendanceRecord.id)
                )
                return list(result.scalars().all())

        return await self._with_retries(_read, "list pending attendance")
