"""
Shared test fixtures for the Rollcall test suite.

Every test gets its own aiosqlite database file, a frozen clock and
in-memory fakes for photo storage and face verification, all injected
through the service container.
"""

import itertools
import os
import sys
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["FACE_VERIFICATION_BYPASS"] = "false"
os.environ["FACE_VERIFY_SELF_EVENTS"] = "false"
os.environ["ORG_UTC_OFFSET"] = "+05:30"
os.environ["WORK_START"] = "09:30"
os.environ["LATE_GRACE_MINUTES"] = "15"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.api.v1.deps import get_db
from rollcall.api.v1.endpoints.auth import limiter
from rollcall.core.config import settings
from rollcall.core.exceptions import NoFaceDetected, NotFound
from rollcall.core.security import create_access_token, get_password_hash
from rollcall.db.base import Base
from rollcall.db.session import make_engine, make_session_factory
from rollcall.main import app
from rollcall.models.user import User
from rollcall.services.container import Services, build_services

IST = timezone(timedelta(hours=5, minutes=30))
PASSWORD = "secret123"
_PASSWORD_HASH = get_password_hash(PASSWORD)


def ist(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """An instant given as wall-clock time in the organisation's offset."""
    return datetime(year, month, day, hour, minute, tzinfo=IST)


# ── Fakes ───────────────────────────────────────────────────────────
class FrozenClock:
    """Callable clock the tests can move around."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class InMemoryPhotoStorage:
    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self._next = itertools.count(1)

    async def store(self, data: bytes, content_type: str | None = None, *, prefix: str = "photo") -> str:
        ref = f"{prefix}/{next(self._next)}.jpg"
        self.blobs[ref] = data
        return ref

    async def fetch(self, ref: str) -> bytes:
        try:
            return self.blobs[ref]
        except KeyError:
            raise NotFound(f"Photo {ref!r} not found") from None

    async def delete(self, ref: str) -> None:
        self.blobs.pop(ref, None)


class FakeFaceVerifier:
    """Matches when both images carry the same bytes, unless told otherwise."""

    def __init__(self) -> None:
        self.force: bool | None = None
        self.no_face = False
        self.calls = 0

    async def compare(self, reference: bytes, candidate: bytes) -> bool:
        self.calls += 1
        if self.no_face:
            raise NoFaceDetected("No face detected in the submitted photo")
        if self.force is not None:
            return self.force
        return reference == candidate


# ── Database / services ─────────────────────────────────────────────
@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """A fresh database file per test; tables created up front."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'rollcall.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    # 09:00 in the organisation's offset on a Thursday
    return FrozenClock(ist(2026, 1, 15, 9, 0))


@pytest.fixture
def storage() -> InMemoryPhotoStorage:
    return InMemoryPhotoStorage()


@pytest.fixture
def verifier() -> FakeFaceVerifier:
    return FakeFaceVerifier()


@pytest.fixture
def services(session_factory, storage, verifier, clock) -> Services:
    return build_services(settings, session_factory, storage=storage, verifier=verifier, clock=clock)


@pytest.fixture
async def async_client(services, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app and the test services."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    previous = app.state.services
    app.state.services = services
    app.dependency_overrides[get_db] = _override_get_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.services = previous


# ── Users ───────────────────────────────────────────────────────────
@pytest.fixture
def make_user(session_factory, storage):
    """Factory: insert a user, optionally with a reference photo."""
    counter = {"n": 0}

    async def _make(
        role: str = "worker",
        name: str | None = None,
        *,
        face: bytes | None = b"face-of-default",
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        ref = await storage.store(face, prefix="profile") if face else None
        user = User(
            user_code=f"{role[:3].upper()}-{counter['n']:03d}",
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@rollcall.test",
            hashed_password=_PASSWORD_HASH,
            role=role,
            profile_image_ref=ref,
            is_active=is_active,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin", "Ada Admin", face=None)


@pytest.fixture
async def manager(make_user) -> User:
    return await make_user("management", "Mona Manager")


@pytest.fixture
async def supervisor(make_user) -> User:
    return await make_user("supervisor", "Sam Supervisor")


@pytest.fixture
async def worker(make_user) -> User:
    return await make_user("worker", "Wendy Worker", face=b"wendy-face")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


def photo(data: bytes = b"wendy-face") -> dict:
    return {"photo": ("photo.jpg", data, "image/jpeg")}


def day(value: str) -> date:
    return date.fromisoformat(value)
