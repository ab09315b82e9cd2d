"""
Overtime request: independent of attendance, joined at report time.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String

from rollcall.db.base import Base


class OvertimeRecord(Base):
    __tablename__ = "overtime_records"
    __table_args__ = (Index("ix_overtime_user_day", "user_id", "day"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    day: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    hours: float = Column(Float, nullable=False)  # type: ignore[assignment]
    reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default="pending")  # type: ignore[assignment]
    # pending | approved | rejected
    requested_by: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    decided_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
