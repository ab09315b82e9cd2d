"""Pydantic schemas for the holiday calendar."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, field_validator


class HolidayCreate(BaseModel):
    day: date
    name: str
    type: str = "company"

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v


class HolidayRead(BaseModel):
    id: int
    day: date
    name: str
    type: str

    model_config = {"from_attributes": True}


class DeleteResponse(BaseModel):
    success: bool
    message: str
