"""
Attendance record: one row per (worker, business day) cycle.

A rejected record stays on file and a resubmission for the same day starts a
new row, so (user_id, day) is unique only among rows that are not rejected.
The record store decides which row is authoritative.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (JSON, Column, Date, DateTime, ForeignKey, Index, Integer,
                        String, Text, text)

from rollcall.db.base import Base


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        Index("ix_attendance_user_day", "user_id", "day"),
        # At most one active row per key; a racing insert fails here.
        Index(
            "uq_attendance_user_day_active",
            "user_id",
            "day",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    day: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default="pending")  # type: ignore[assignment]
    # present | leave | pending | rejected  (absent is only ever synthesised)
    check_in_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    check_out_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    check_in_location: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    check_out_location: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    check_in_photo: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    check_out_photo: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    notes: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def append_note(self, line: str) -> None:
        """Append one audit line; earlier lines are never rewritten."""
        self.notes = f"{self.notes}\n{line}" if self.notes else line

    @property
    def is_open(self) -> bool:
        return self.check_in_time is not None and self.check_out_time is None
