"""
Event intake: validates an attendance event, resolves who it is for and
when it happened, then hands it to the session state machine through the
record store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

from rollcall.core.calendar import day_key, ensure_utc
from rollcall.core.exceptions import AuthorizationError, MissingEvidence, NotFound, ValidationError
from rollcall.models.attendance import AttendanceRecord
from rollcall.services.directory import UserDirectory, WorkerIdentity
from rollcall.services.face import FaceVerificationGate
from rollcall.services.location import normalize_location
from rollcall.services.record_store import RecordStore
from rollcall.services.session_machine import (
    Channel,
    EventKind,
    SessionCommand,
    SessionStateMachine,
)

logger = logging.getLogger(__name__)

ON_BEHALF_ROLES = frozenset({"supervisor", "management", "admin"})


@dataclass(frozen=True)
class AttendanceEvent:
    acting_user_id: int
    kind: EventKind
    channel: Channel
    photo_ref: str | None
    target_worker_id: int | None = None
    client_timestamp: datetime | None = None
    location: Any = None  # any shape accepted by normalize_location


async def resolve_target(
    directory: UserDirectory, acting_user_id: int, target_worker_id: int | None
) -> tuple[WorkerIdentity, WorkerIdentity]:
    """Return ``(actor, target)``; acting for someone else needs a supervising role."""
    actor = await directory.find_by_id(acting_user_id)
    if actor is None or not actor.is_active:
        raise AuthorizationError("Acting user is unknown or inactive")

    if target_worker_id is None or target_worker_id == actor.id:
        return actor, actor

    if actor.role not in ON_BEHALF_ROLES:
        raise AuthorizationError(
            f"Role '{actor.role}' may not submit on behalf of another worker",
            context={"target_worker_id": target_worker_id},
        )
    target = await directory.find_by_id(target_worker_id)
    if target is None or not target.is_active:
        raise NotFound(f"Worker {target_worker_id} not found or inactive")
    return actor, target


class EventIntake:
    def __init__(
        self,
        store: RecordStore,
        machine: SessionStateMachine,
        directory: UserDirectory,
        face_gate: FaceVerificationGate,
        *,
        offset: tzinfo,
        verify_self_events: bool = False,
        clock_skew: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._machine = machine
        self._directory = directory
        self._face_gate = face_gate
        self._offset = offset
        self._verify_self_events = verify_self_events
        self._clock_skew = clock_skew
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _effective_instant(self, event: AttendanceEvent, received_at: datetime) -> datetime:
        if event.channel is Channel.LIVE:
            if event.client_timestamp is not None:
                logger.debug("Ignoring client timestamp on live event from user %d", event.acting_user_id)
            return received_at

        if event.client_timestamp is None:
            raise ValidationError(
                "client_timestamp is required for offline sync", field="client_timestamp"
            )
        instant = ensure_utc(event.client_timestamp)
        if instant > received_at + self._clock_skew:
            raise ValidationError(
                "client_timestamp lies in the future", field="client_timestamp"
            )
        return instant

    async def submit(self, event: AttendanceEvent) -> AttendanceRecord:
        if not event.photo_ref:
            raise MissingEvidence("A photo is required for every attendance event", field="photo")

        received_at = ensure_utc(self._clock())
        instant = self._effective_instant(event, received_at)
        location = normalize_location(event.location)
        actor, target = await resolve_target(
            self._directory, event.acting_user_id, event.target_worker_id
        )
        on_behalf = actor.id != target.id

        if event.channel is Channel.LIVE and (on_behalf or self._verify_self_events):
            await self._face_gate.verify(target, event.photo_ref)

        command = SessionCommand(
            worker_id=target.id,
            day=day_key(instant, self._offset),
            kind=event.kind,
            channel=event.channel,
            instant=instant,
            received_at=received_at,
            photo_ref=event.photo_ref,
            actor_id=actor.id,
            location=location,
            on_behalf=on_behalf,
        )
        record = await self._store.upsert_for_day(
            command.worker_id, command.day, lambda current: self._machine.apply(current, command)
        )
        logger.info(
            "%s via %s for user %d on %s by user %d -> %s",
            event.kind.value, event.channel.value, target.id, command.day, actor.id, record.status,
        )
        return record
