"""Pydantic schemas for users (worker identities)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from rollcall.models.user import ROLES


class UserCreate(BaseModel):
    user_code: str
    name: str
    password: str
    email: str | None = None
    phone: str | None = None
    role: str = "worker"
    designation: str | None = None

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v

    @field_validator("user_code", "name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("password")
    @classmethod
    def _password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class UserRead(BaseModel):
    id: int
    user_code: str
    name: str
    email: str | None
    phone: str | None
    role: str
    designation: str | None
    profile_image_ref: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}
