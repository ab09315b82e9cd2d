"""
Holiday calendar entry: the day column is unique.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Column, Date, Integer, String

from rollcall.db.base import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    day: date = Column(Date, unique=True, nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False, default="company")  # type: ignore[assignment]
    # national | company
