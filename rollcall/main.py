"""
Rollcall: application entry point.

This is the **only** file that assembles the app. Business logic lives in
the `services/` package; `api/` is a thin HTTP layer over it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import or_, select

from rollcall.api.v1.api import api_router
from rollcall.api.v1.endpoints.auth import limiter
from rollcall.core.config import settings
from rollcall.core.exceptions import register_exception_handlers
from rollcall.core.security import get_password_hash
from rollcall.db.base import Base
from rollcall.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from rollcall.models.attendance import AttendanceRecord  # noqa: F401
from rollcall.models.holiday import Holiday  # noqa: F401
from rollcall.models.overtime import OvertimeRecord  # noqa: F401
from rollcall.models.user import User
from rollcall.services.container import build_services

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def _seed_admin() -> None:
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(
                or_(User.email == settings.FIRST_ADMIN_EMAIL, User.user_code == "admin")
            )
        )
        if result.scalars().first() is not None:
            return
        session.add(
            User(
                user_code="admin",
                name="System Administrator",
                email=settings.FIRST_ADMIN_EMAIL,
                hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                role="admin",
            )
        )
        await session.commit()
        logger.info(
            "Default admin created: %s (password: <redacted>)",
            settings.FIRST_ADMIN_EMAIL,
        )


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await _seed_admin()

    logger.info(
        "Rollcall v%s started (business day offset %s)",
        settings.VERSION, settings.ORG_UTC_OFFSET,
    )
    yield
    await app.state.services.aclose()
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title="Rollcall",
        description="Workforce attendance backend",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.state.services = build_services(settings, async_session_factory)

    # Rate limiting (login / refresh)
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return application


app = create_app()
