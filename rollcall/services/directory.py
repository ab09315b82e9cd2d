"""
Read-only view of the user directory used by the core.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.models.user import User

WORKFORCE_ROLES = ("worker", "supervisor", "management")


@dataclass(frozen=True)
class WorkerIdentity:
    id: int
    name: str
    role: str
    is_active: bool
    user_code: str | None = None
    designation: str | None = None
    reference_photo: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "WorkerIdentity":
        return cls(
            id=user.id,
            name=user.name,
            role=user.role,
            is_active=bool(user.is_active),
            user_code=user.user_code,
            designation=user.designation,
            reference_photo=user.profile_image_ref,
        )


class UserDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, user_id: int) -> WorkerIdentity | None:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            return WorkerIdentity.from_user(user) if user else None

    async def list_active(self, roles: Iterable[str] | None = None) -> list[WorkerIdentity]:
        wanted = tuple(roles) if roles else WORKFORCE_ROLES
        async with self._session_factory() as session:
            result = await session.execute(
                select(User)
                .where(User.is_active.is_(True), User.role.in_(wanted))
                .order_by(User.name, User.id)
            )
            return [WorkerIdentity.from_user(u) for u in result.scalars().all()]
