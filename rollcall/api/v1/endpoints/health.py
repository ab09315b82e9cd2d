"""
Public health check.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.api.v1.deps import get_db, get_services
from rollcall.schemas.report import HealthResponse
from rollcall.services.container import Services

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> HealthResponse:
    """Database connectivity plus the face verification mode."""
    result = HealthResponse(db=False, face_verification="disabled")

    try:
        await db.execute(select(1))
        result.db = True
    except (SQLAlchemyError, OSError) as e:
        logger.error("Health check DB failure: %s", e)

    if services.settings.FACE_VERIFICATION_BYPASS:
        result.face_verification = "bypass"
    elif services.verifier is not None:
        result.face_verification = "enabled"
    return result
