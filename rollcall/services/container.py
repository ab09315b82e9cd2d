"""
Service wiring.

Collaborators (storage, face verification, user directory) and settings are
injected here once at startup; the FastAPI layer reaches services through
``request.app.state.services``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rollcall.core.calendar import parse_offset
from rollcall.core.config import Settings
from rollcall.services.directory import UserDirectory
from rollcall.services.face import FaceVerificationGate, FaceVerifier, HttpFaceVerifier
from rollcall.services.holidays import HolidayCalendar
from rollcall.services.intake import EventIntake
from rollcall.services.overtime import OvertimeLedger
from rollcall.services.record_store import RecordStore
from rollcall.services.reports import ReportingEngine
from rollcall.services.review import ReviewDesk
from rollcall.services.session_machine import SessionStateMachine
from rollcall.services.storage import LocalPhotoStorage, PhotoStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    settings: Settings
    directory: UserDirectory
    storage: PhotoStorage
    verifier: FaceVerifier | None
    store: RecordStore
    intake: EventIntake
    review: ReviewDesk
    overtime: OvertimeLedger
    holidays: HolidayCalendar
    reports: ReportingEngine

    async def aclose(self) -> None:
        if isinstance(self.verifier, HttpFaceVerifier):
            await self.verifier.aclose()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    storage: PhotoStorage | None = None,
    verifier: FaceVerifier | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    offset = parse_offset(settings.ORG_UTC_OFFSET)
    hours, minutes = (int(p) for p in settings.WORK_START.split(":"))

    storage = storage or LocalPhotoStorage(settings.PHOTO_STORAGE_DIR)
    if verifier is None and settings.FACE_VERIFICATION_URL:
        verifier = HttpFaceVerifier(
            settings.FACE_VERIFICATION_URL,
            similarity_threshold=settings.FACE_SIMILARITY_THRESHOLD,
            timeout=settings.FACE_VERIFICATION_TIMEOUT_SECONDS,
        )
    if verifier is None and not settings.FACE_VERIFICATION_BYPASS:
        logger.warning("No face verification service configured; on-behalf events will be refused")

    directory = UserDirectory(session_factory)
    store = RecordStore(
        session_factory,
        retry_attempts=settings.STORE_RETRY_ATTEMPTS,
        retry_backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
    )
    machine = SessionStateMachine(offset)
    gate = FaceVerificationGate(
        verifier,
        storage,
        bypass=settings.FACE_VERIFICATION_BYPASS,
        timeout=settings.FACE_VERIFICATION_TIMEOUT_SECONDS,
    )
    overtime = OvertimeLedger(session_factory)
    holidays = HolidayCalendar(session_factory)

    return Services(
        settings=settings,
        directory=directory,
        storage=storage,
        verifier=verifier,
        store=store,
        intake=EventIntake(
            store,
            machine,
            directory,
            gate,
            offset=offset,
            verify_self_events=settings.FACE_VERIFY_SELF_EVENTS,
            clock_skew=timedelta(seconds=settings.CLOCK_SKEW_SECONDS),
            clock=clock,
        ),
        review=ReviewDesk(store, machine, directory, clock=clock),
        overtime=overtime,
        holidays=holidays,
        reports=ReportingEngine(
            store,
            overtime,
            holidays,
            directory,
            offset=offset,
            work_start=time(hours, minutes),
            late_grace=timedelta(minutes=settings.LATE_GRACE_MINUTES),
            max_days=settings.MAX_REPORT_DAYS,
            clock=clock,
        ),
    )
