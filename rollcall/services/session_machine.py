"""
Per-(worker, day) check-in / check-out lifecycle.

The machine is pure: it receives the authoritative record for the key (or
``None``) plus a command, and returns the record that should be persisted.
It never touches the database; the record store runs it under the key's
exclusive lock, so legality is decided in arrival order.

States::

    NoRecord ──check-in──▶ OpenSession ──check-out──▶ ClosedSession
       │                        (present)                 (present)
       └── offline sync (any state) ──▶ Pending ──approve──▶ present
                                               └─reject───▶ rejected (terminal row)

A rejected row never changes again. The next event for that day starts a
fresh row.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from rollcall.core.calendar import ensure_utc
from rollcall.core.exceptions import (
    AlreadyCheckedIn,
    AlreadyCheckedOut,
    InvalidTimestamp,
    NotCheckedIn,
    StateConflict,
)
from rollcall.models.attendance import AttendanceRecord
from rollcall.services.location import Location


class EventKind(str, enum.Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class Channel(str, enum.Enum):
    LIVE = "live"
    OFFLINE_SYNC = "offline_sync"


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class SessionCommand:
    worker_id: int
    day: date
    kind: EventKind
    channel: Channel
    instant: datetime  # when the event happened (client time for offline sync)
    received_at: datetime  # server receipt time
    photo_ref: str
    actor_id: int
    location: Location | None = None
    on_behalf: bool = False


def _record_context(record: AttendanceRecord) -> dict:
    return {
        "record_id": record.id,
        "status": record.status,
        "check_in_time": ensure_utc(record.check_in_time).isoformat() if record.check_in_time else None,
        "check_out_time": ensure_utc(record.check_out_time).isoformat() if record.check_out_time else None,
    }


class SessionStateMachine:
    def __init__(self, offset: tzinfo) -> None:
        self._offset = offset

    # ── Audit trail ─────────────────────────────────────────────────
    def _stamp(self, at: datetime) -> str:
        return ensure_utc(at).astimezone(self._offset).strftime("%Y-%m-%d %H:%M:%S%z")

    def _audit(self, cmd: SessionCommand, detail: str | None = None) -> str:
        who = f"user {cmd.actor_id}" + (
            f" on behalf of user {cmd.worker_id}" if cmd.on_behalf else " (self)"
        )
        action = cmd.kind.value.replace("_", "-")
        line = f"[{self._stamp(cmd.received_at)}] {action} via {cmd.channel.value} by {who}"
        if cmd.channel is Channel.OFFLINE_SYNC:
            line += f", device time {self._stamp(cmd.instant)}"
        return f"{line}: {detail}" if detail else line

    # ── Entry point ─────────────────────────────────────────────────
    def apply(self, current: AttendanceRecord | None, cmd: SessionCommand) -> AttendanceRecord:
        if current is not None and current.status == "rejected":
            current = None  # rejected rows are terminal; start a new cycle

        if cmd.channel is Channel.OFFLINE_SYNC:
            return self._apply_offline(current, cmd)
        if cmd.kind is EventKind.CHECK_IN:
            return self._live_check_in(current, cmd)
        return self._live_check_out(current, cmd)

    # ── Live channel ────────────────────────────────────────────────
    def _new_record(self, cmd: SessionCommand, status: str) -> AttendanceRecord:
        return AttendanceRecord(user_id=cmd.worker_id, day=cmd.day, status=status)

    def _set_check_in(self, record: AttendanceRecord, cmd: SessionCommand) -> None:
        record.check_in_time = ensure_utc(cmd.instant)
        record.check_in_photo = cmd.photo_ref
        record.check_in_location = cmd.location.model_dump() if cmd.location else None

    def _set_check_out(self, record: AttendanceRecord, cmd: SessionCommand) -> None:
        record.check_out_time = ensure_utc(cmd.instant)
        record.check_out_photo = cmd.photo_ref
        record.check_out_location = cmd.location.model_dump() if cmd.location else None

    def _live_check_in(self, current: AttendanceRecord | None, cmd: SessionCommand) -> AttendanceRecord:
        if current is None:
            record = self._new_record(cmd, "present")
            self._set_check_in(record, cmd)
            record.append_note(self._audit(cmd))
            return record

        if current.status == "leave":
            raise StateConflict(
                "This day is marked as leave", context=_record_context(current)
            )
        if current.is_open:
            raise AlreadyCheckedIn("Already checked in today", context=_record_context(current))
        raise AlreadyCheckedIn(
            "Attendance for today is already recorded", context=_record_context(current)
        )

    def _live_check_out(self, current: AttendanceRecord | None, cmd: SessionCommand) -> AttendanceRecord:
        if current is None:
            raise NotCheckedIn("You have not checked in today")
        if current.status == "leave":
            raise StateConflict(
                "This day is marked as leave", context=_record_context(current)
            )
        if current.check_in_time is None:
            raise NotCheckedIn("You have not checked in today", context=_record_context(current))
        if current.check_out_time is not None:
            raise AlreadyCheckedOut("Already checked out", context=_record_context(current))
        if ensure_utc(cmd.instant) < ensure_utc(current.check_in_time):
            raise InvalidTimestamp(
                "Check-out time is before check-in time",
                field="timestamp",
                context=_record_context(current),
            )

        self._set_check_out(current, cmd)
        current.append_note(self._audit(cmd))
        return current

    # ── Offline sync ────────────────────────────────────────────────
    def _apply_offline(self, current: AttendanceRecord | None, cmd: SessionCommand) -> AttendanceRecord:
        instant = ensure_utc(cmd.instant)
        if current is None:
            record = self._new_record(cmd, "pending")
            if cmd.kind is EventKind.CHECK_IN:
                self._set_check_in(record, cmd)
            else:
                self._set_check_out(record, cmd)
            record.append_note(self._audit(cmd, "awaiting review"))
            return record

        kept: list[str] = []
        if cmd.kind is EventKind.CHECK_IN:
            if current.check_in_time is None:
                if current.check_out_time is not None and instant > ensure_utc(current.check_out_time):
                    raise InvalidTimestamp(
                        "Check-in time is after the recorded check-out",
                        field="client_timestamp",
                        context=_record_context(current),
                    )
                self._set_check_in(current, cmd)
            else:
                kept.append(f"kept existing check-in {self._stamp(current.check_in_time)}")
        else:
            if current.check_out_time is None:
                if current.check_in_time is not None and instant < ensure_utc(current.check_in_time):
                    raise InvalidTimestamp(
                        "Check-out time is before check-in time",
                        field="client_timestamp",
                        context=_record_context(current),
                    )
                self._set_check_out(current, cmd)
            else:
                kept.append(f"kept existing check-out {self._stamp(current.check_out_time)}")

        if current.status != "pending":
            kept.append(f"status {current.status} -> pending")
        current.status = "pending"
        if kept:
            kept.append(f"offline photo {cmd.photo_ref}")
        current.append_note(self._audit(cmd, "; ".join(kept) or "awaiting review"))
        return current

    # ── Administrator actions ───────────────────────────────────────
    def adjudicate(
        self, record: AttendanceRecord, decision: Decision, actor_id: int, at: datetime
    ) -> AttendanceRecord:
        target = "present" if decision is Decision.APPROVE else "rejected"
        verb = "approved" if decision is Decision.APPROVE else "rejected"
        if record.status == target:
            return record  # idempotent
        if record.status != "pending":
            raise StateConflict(
                f"Only pending records can be {verb}",
                context=_record_context(record),
            )
        record.status = target
        record.append_note(f"[{self._stamp(at)}] {verb} by user {actor_id}")
        return record

    def mark_leave(
        self,
        current: AttendanceRecord | None,
        worker_id: int,
        day: date,
        actor_id: int,
        at: datetime,
        reason: str | None = None,
    ) -> AttendanceRecord:
        if current is not None and current.status == "leave":
            return current
        if current is not None and current.status != "rejected":
            raise StateConflict(
                "Attendance already recorded for this day",
                context=_record_context(current),
            )
        record = AttendanceRecord(user_id=worker_id, day=day, status="leave")
        line = f"[{self._stamp(at)}] leave marked by user {actor_id}"
        record.append_note(f"{line}: {reason}" if reason else line)
        return record
