"""
Reconciliation / reporting engine.

Absence is never stored; it is the complement of (active workers x working
days) minus the records that exist. Reports read three collections
(attendance, overtime, holidays) bucketed by the same business-day key, take
no locks and never write.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from rollcall.core.calendar import date_range, day_key, ensure_utc, local_time_of
from rollcall.core.exceptions import AuthorizationError, ValidationError
from rollcall.models.attendance import AttendanceRecord
from rollcall.services.directory import UserDirectory, WorkerIdentity
from rollcall.services.holidays import HolidayCalendar
from rollcall.services.overtime import OvertimeLedger
from rollcall.services.record_store import RecordStore

logger = logging.getLogger(__name__)

ROLE_PRIORITY = {"management": 0, "supervisor": 1, "worker": 2}
ALL_WORKERS_ROLES = frozenset({"admin", "management"})


def role_priority(role: str) -> int:
    return ROLE_PRIORITY.get(role, len(ROLE_PRIORITY))


@dataclass(frozen=True)
class DailyRow:
    worker: WorkerIdentity
    day: date
    status: str
    record: AttendanceRecord | None
    overtime_hours: float
    is_late: bool = False
    is_holiday: bool = False


@dataclass
class MonthlyRow:
    worker: WorkerIdentity
    working_days: int
    present_days: int = 0
    absent_days: int = 0
    leave_days: int = 0
    late_days: int = 0
    pending_days: int = 0
    rejected_days: int = 0
    overtime_hours_total: float = 0.0


@dataclass
class TodaySummary:
    day: date
    is_holiday: bool
    total_workers: int
    counts: dict[str, int] = field(default_factory=dict)


class ReportingEngine:
    def __init__(
        self,
        store: RecordStore,
        ledger: OvertimeLedger,
        holidays: HolidayCalendar,
        directory: UserDirectory,
        *,
        offset: tzinfo,
        work_start: time,
        late_grace: timedelta,
        max_days: int = 366,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._holidays = holidays
        self._directory = directory
        self._offset = offset
        self._late_cutoff = (datetime.combine(date.min, work_start) + late_grace).time()
        self._max_days = max_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Helpers ─────────────────────────────────────────────────────
    def _window(self, start: date, end: date) -> list[date]:
        days = list(date_range(start, end))
        if len(days) > self._max_days:
            raise ValidationError(
                f"Report range is limited to {self._max_days} days", field="end_date"
            )
        return days

    async def _scope(self, actor: WorkerIdentity, roles: Iterable[str] | None) -> list[WorkerIdentity]:
        if actor.role == "supervisor":
            return [actor]
        if actor.role not in ALL_WORKERS_ROLES:
            raise AuthorizationError(f"Role '{actor.role}' may not view attendance reports")
        return await self._directory.list_active(roles)

    def is_late(self, record: AttendanceRecord | None) -> bool:
        if record is None or record.status != "present" or record.check_in_time is None:
            return False
        return local_time_of(record.check_in_time, self._offset) > self._late_cutoff

    def today(self) -> date:
        return day_key(ensure_utc(self._clock()), self._offset)

    async def working_days(self, start: date, end: date) -> int:
        """Days in the range that are not holidays."""
        days = self._window(start, end)
        holidays = await self._holidays.list_in_range(start, end)
        return sum(1 for d in days if d not in holidays)

    # ── Daily ───────────────────────────────────────────────────────
    async def daily_report(
        self,
        actor: WorkerIdentity,
        start: date,
        end: date,
        roles: Iterable[str] | None = None,
    ) -> list[DailyRow]:
        """One row per (worker, day); holidays appear only where a record exists.

        Ordering: day descending, then management / supervisor / worker /
        other, then name, then worker id.
        """
        days = self._window(start, end)
        workers = await self._scope(actor, roles)
        ids = [w.id for w in workers]

        holidays = await self._holidays.list_in_range(start, end)
        records = await self._store.find_range(ids, start, end)
        overtime = await self._ledger.sum_approved_and_pending(ids, start, end)

        rows: list[DailyRow] = []
        for worker in workers:
            for day in days:
                record = records.get((worker.id, day))
                is_holiday = day in holidays
                if record is None and is_holiday:
                    continue
                rows.append(
                    DailyRow(
                        worker=worker,
                        day=day,
                        status=record.status if record else "absent",
                        record=record,
                        overtime_hours=overtime.get((worker.id, day), 0.0),
                        is_late=self.is_late(record),
                        is_holiday=is_holiday,
                    )
                )

        rows.sort(
            key=lambda r: (
                -r.day.toordinal(),
                role_priority(r.worker.role),
                r.worker.name.lower(),
                r.worker.id,
            )
        )
        logger.info(
            "Daily report %s..%s for user %d: %d workers, %d rows",
            start, end, actor.id, len(workers), len(rows),
        )
        return rows

    # ── Monthly ─────────────────────────────────────────────────────
    async def monthly_report(
        self,
        actor: WorkerIdentity,
        start: date,
        end: date,
        roles: Iterable[str] | None = None,
    ) -> list[MonthlyRow]:
        days = self._window(start, end)
        workers = await self._scope(actor, roles)
        ids = [w.id for w in workers]

        holidays = await self._holidays.list_in_range(start, end)
        working_days = [d for d in days if d not in holidays]
        records = await self._store.find_range(ids, start, end)
        overtime = await self._ledger.sum_approved_and_pending(ids, start, end)

        overtime_by_worker: dict[int, float] = defaultdict(float)
        for (worker_id, _day), hours in overtime.items():
            overtime_by_worker[worker_id] += hours

        summary: list[MonthlyRow] = []
        for worker in workers:
            row = MonthlyRow(worker=worker, working_days=len(working_days))
            for day in working_days:
                record = records.get((worker.id, day))
                if record is None:
                    continue
                if record.status == "present":
                    row.present_days += 1
                    if self.is_late(record):
                        row.late_days += 1
                elif record.status == "leave":
                    row.leave_days += 1
                elif record.status == "pending":
                    row.pending_days += 1
                elif record.status == "rejected":
                    row.rejected_days += 1
            row.absent_days = row.working_days - row.present_days - row.leave_days
            row.overtime_hours_total = round(overtime_by_worker.get(worker.id, 0.0), 2)
            summary.append(row)

        summary.sort(key=lambda r: (role_priority(r.worker.role), r.worker.name.lower(), r.worker.id))
        return summary

    # ── Today ───────────────────────────────────────────────────────
    async def today_summary(self) -> TodaySummary:
        today = self.today()
        workers = await self._directory.list_active()
        records = await self._store.find_range([w.id for w in workers], today, today)
        is_holiday = await self._holidays.is_holiday(today)

        counts: Counter[str] = Counter(r.status for r in records.values())
        counts["late"] = sum(1 for r in records.values() if self.is_late(r))
        counts["absent"] = 0 if is_holiday else len(workers) - len(records)
        return TodaySummary(
            day=today,
            is_holiday=is_holiday,
            total_workers=len(workers),
            counts={
                status: counts.get(status, 0)
                for status in ("present", "absent", "leave", "pending", "rejected", "late")
            },
        )
