"""Tests for the /attendance endpoints and the intake pipeline behind them."""

import asyncio
from datetime import date, datetime, timezone

import pytest
from httpx import AsyncClient

from conftest import auth_headers, ist, photo
from rollcall.core.exceptions import AlreadyCheckedIn
from rollcall.services.intake import AttendanceEvent
from rollcall.services.session_machine import Channel, EventKind


def _utc(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


# ── Live, self ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_check_in_then_out(async_client: AsyncClient, worker, clock):
    """09:00 check-in and 18:00 check-out land on the same business day."""
    r1 = await async_client.post(
        "/api/v1/attendance/checkin",
        data={"latitude": "12.97", "longitude": "77.59", "address": "Site A"},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert r1.status_code == 200
    data = r1.json()["data"]
    assert data["status"] == "present"
    assert data["day"] == "2026-01-15"
    assert _utc(data["check_in_time"]) == ist(2026, 1, 15, 9, 0)
    assert data["check_in_location"] == {"latitude": 12.97, "longitude": 77.59, "address": "Site A"}
    assert data["check_in_photo"].startswith("checkin/")

    clock.set(ist(2026, 1, 15, 18, 0))
    r2 = await async_client.post(
        "/api/v1/attendance/checkout",
        data={"location": "12.97,77.59"},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert r2.status_code == 200
    data = r2.json()["data"]
    assert data["id"] == r1.json()["data"]["id"]
    assert _utc(data["check_out_time"]) == ist(2026, 1, 15, 18, 0)
    assert data["status"] == "present"


@pytest.mark.asyncio
async def test_duplicate_check_in_conflicts(async_client: AsyncClient, worker, storage):
    first = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker)
    )
    assert first.status_code == 200
    stored = set(storage.blobs)

    second = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker)
    )
    assert second.status_code == 409
    body = second.json()
    assert body["success"] is False
    assert body["kind"] == "AlreadyCheckedIn"
    assert body["context"]["record_id"] == first.json()["data"]["id"]
    # the refused photo is not kept
    assert set(storage.blobs) == stored


@pytest.mark.asyncio
async def test_check_out_without_check_in(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkout", files=photo(), headers=auth_headers(worker)
    )
    assert resp.status_code == 409
    assert resp.json()["kind"] == "NotCheckedIn"


@pytest.mark.asyncio
async def test_missing_photo(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin", data={"address": "Gate 1"}, headers=auth_headers(worker)
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "MissingEvidence"


@pytest.mark.asyncio
async def test_non_image_upload_rejected(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin",
        files={"photo": ("notes.txt", b"hello", "text/plain")},
        headers=auth_headers(worker),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "photo"


@pytest.mark.asyncio
async def test_invalid_location_rejected(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin",
        data={"latitude": "123", "longitude": "10"},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "location.latitude"


@pytest.mark.asyncio
async def test_requires_authentication(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/attendance/checkin", files=photo())
    assert resp.status_code == 401
    assert resp.json()["kind"] == "AuthenticationError"


@pytest.mark.asyncio
async def test_admin_cannot_self_check_in(async_client: AsyncClient, admin):
    resp = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(admin)
    )
    assert resp.status_code == 403


# ── Offline sync ────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_offline_check_in_is_pending_on_device_day(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin-pending",
        data={"client_timestamp": ist(2026, 1, 14, 9, 5).isoformat()},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "pending"
    assert data["day"] == "2026-01-14"
    assert "device time 2026-01-14 09:05:00+0530" in data["notes"]


@pytest.mark.asyncio
async def test_offline_requires_client_timestamp(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin-pending", files=photo(), headers=auth_headers(worker)
    )
    assert resp.status_code == 422
    assert resp.json()["kind"] == "ValidationError"


@pytest.mark.asyncio
async def test_offline_rejects_future_timestamp(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/attendance/checkin-pending",
        data={"client_timestamp": ist(2026, 1, 15, 11, 0).isoformat()},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "client_timestamp"


@pytest.mark.asyncio
async def test_offline_after_live_check_in_goes_to_review(async_client: AsyncClient, worker, clock):
    live = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker)
    )
    assert live.status_code == 200

    clock.set(ist(2026, 1, 15, 19, 0))
    offline = await async_client.post(
        "/api/v1/attendance/checkout-pending",
        data={"client_timestamp": ist(2026, 1, 15, 17, 45).isoformat()},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert offline.status_code == 200
    data = offline.json()["data"]
    assert data["id"] == live.json()["data"]["id"]
    assert data["status"] == "pending"
    assert _utc(data["check_in_time"]) == ist(2026, 1, 15, 9, 0)
    assert _utc(data["check_out_time"]) == ist(2026, 1, 15, 17, 45)


# ── On behalf ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_supervisor_offline_check_in_for_yesterday(
    async_client: AsyncClient, supervisor, worker, verifier
):
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin-pending",
        data={
            "target_worker_id": str(worker.id),
            "client_timestamp": ist(2026, 1, 14, 9, 0).isoformat(),
        },
        files=photo(b"anything"),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user_id"] == worker.id
    assert data["day"] == "2026-01-14"
    assert data["status"] == "pending"
    assert f"by user {supervisor.id} on behalf of user {worker.id}" in data["notes"]
    assert verifier.calls == 0


@pytest.mark.asyncio
async def test_supervisor_live_check_in_verifies_face(
    async_client: AsyncClient, supervisor, worker, verifier
):
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(worker.id)},
        files=photo(b"wendy-face"),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["user_id"] == worker.id
    assert resp.json()["data"]["status"] == "present"
    assert verifier.calls == 1


@pytest.mark.asyncio
async def test_face_mismatch_leaves_no_record(
    async_client: AsyncClient, supervisor, worker, services, storage
):
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(worker.id)},
        files=photo(b"someone-else"),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "FaceMismatch"
    assert await services.store.find_for_day(worker.id, date(2026, 1, 15)) is None
    assert not [ref for ref in storage.blobs if ref.startswith("checkin/")]


@pytest.mark.asyncio
async def test_no_face_detected(async_client: AsyncClient, supervisor, worker, verifier):
    verifier.no_face = True
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(worker.id)},
        files=photo(),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "NoFaceDetected"


@pytest.mark.asyncio
async def test_target_without_reference_photo(async_client: AsyncClient, supervisor, make_user):
    faceless = await make_user("worker", "No Face", face=None)
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(faceless.id)},
        files=photo(),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "MissingEvidence"


@pytest.mark.asyncio
async def test_lost_reference_photo_is_missing_evidence(
    async_client: AsyncClient, supervisor, worker, storage
):
    storage.blobs.clear()
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(worker.id)},
        files=photo(),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["kind"] == "MissingEvidence"
    assert "profile/" not in body["detail"]
    assert storage.blobs == {}


@pytest.mark.asyncio
async def test_worker_cannot_act_on_behalf(async_client: AsyncClient, worker, make_user):
    colleague = await make_user("worker", "Colleague")
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": str(colleague.id)},
        files=photo(),
        headers=auth_headers(worker),
    )
    assert resp.status_code == 403
    assert resp.json()["kind"] == "AuthorizationError"


@pytest.mark.asyncio
async def test_unknown_target_worker(async_client: AsyncClient, supervisor):
    resp = await async_client.post(
        "/api/v1/attendance/supervisor/checkin",
        data={"target_worker_id": "9999"},
        files=photo(),
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 404
    assert resp.json()["kind"] == "NotFound"


# ── Concurrency ─────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_concurrent_check_ins_yield_one_record(services, worker, storage):
    """N simultaneous check-ins: exactly one wins, the rest conflict."""
    ref = await storage.store(b"wendy-face", prefix="checkin")
    event = AttendanceEvent(
        acting_user_id=worker.id,
        kind=EventKind.CHECK_IN,
        channel=Channel.LIVE,
        photo_ref=ref,
    )
    results = await asyncio.gather(
        *(services.intake.submit(event) for _ in range(5)), return_exceptions=True
    )

    successes = [r for r in results if not isinstance(r, BaseException)]
    conflicts = [r for r in results if isinstance(r, AlreadyCheckedIn)]
    assert len(successes) == 1
    assert len(conflicts) == 4

    record = await services.store.find_for_day(worker.id, date(2026, 1, 15))
    assert record.id == successes[0].id


# ── Review ──────────────────────────────────────────────────────────
async def _offline_check_in(async_client: AsyncClient, user, when: datetime) -> dict:
    resp = await async_client.post(
        "/api/v1/attendance/checkin-pending",
        data={"client_timestamp": when.isoformat()},
        files=photo(),
        headers=auth_headers(user),
    )
    assert resp.status_code == 200
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_pending_list_and_approval(async_client: AsyncClient, admin, worker):
    record = await _offline_check_in(async_client, worker, ist(2026, 1, 14, 9, 0))

    listing = await async_client.get("/api/v1/attendance/pending", headers=auth_headers(admin))
    assert listing.status_code == 200
    items = listing.json()
    assert [i["id"] for i in items] == [record["id"]]
    assert items[0]["name"] == "Wendy Worker"
    assert items[0]["role"] == "worker"

    approved = await async_client.put(
        f"/api/v1/attendance/{record['id']}/approve", headers=auth_headers(admin)
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "present"
    assert f"approved by user {admin.id}" in approved.json()["data"]["notes"]

    # Idempotent re-approval, conflicting reject
    again = await async_client.put(
        f"/api/v1/attendance/{record['id']}/approve", headers=auth_headers(admin)
    )
    assert again.status_code == 200
    assert again.json()["data"]["notes"] == approved.json()["data"]["notes"]
    conflict = await async_client.put(
        f"/api/v1/attendance/{record['id']}/reject", headers=auth_headers(admin)
    )
    assert conflict.status_code == 409

    listing = await async_client.get("/api/v1/attendance/pending", headers=auth_headers(admin))
    assert listing.json() == []


@pytest.mark.asyncio
async def test_rejected_day_can_be_resubmitted(async_client: AsyncClient, manager, worker, services):
    record = await _offline_check_in(async_client, worker, ist(2026, 1, 15, 8, 50))
    rejected = await async_client.put(
        f"/api/v1/attendance/{record['id']}/reject", headers=auth_headers(manager)
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["status"] == "rejected"

    fresh = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker)
    )
    assert fresh.status_code == 200
    assert fresh.json()["data"]["id"] != record["id"]
    assert fresh.json()["data"]["status"] == "present"

    effective = await services.store.find_for_day(worker.id, date(2026, 1, 15))
    assert effective.id == fresh.json()["data"]["id"]


@pytest.mark.asyncio
async def test_review_requires_admin_or_management(async_client: AsyncClient, supervisor, worker):
    record = await _offline_check_in(async_client, worker, ist(2026, 1, 14, 9, 0))
    for user in (worker, supervisor):
        resp = await async_client.put(
            f"/api/v1/attendance/{record['id']}/approve", headers=auth_headers(user)
        )
        assert resp.status_code == 403
    resp = await async_client.get("/api/v1/attendance/pending", headers=auth_headers(supervisor))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_approve_unknown_record(async_client: AsyncClient, admin):
    resp = await async_client.put("/api/v1/attendance/4242/approve", headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json()["kind"] == "NotFound"


# ── Leave ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_leave_blocks_check_in(async_client: AsyncClient, supervisor, worker):
    leave = await async_client.post(
        "/api/v1/attendance/leave",
        json={"worker_id": worker.id, "day": "2026-01-15", "reason": "Medical"},
        headers=auth_headers(supervisor),
    )
    assert leave.status_code == 201
    assert leave.json()["data"]["status"] == "leave"

    resp = await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker)
    )
    assert resp.status_code == 409
    assert resp.json()["kind"] == "StateConflict"


@pytest.mark.asyncio
async def test_leave_on_recorded_day_conflicts(async_client: AsyncClient, admin, worker):
    await async_client.post("/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker))
    resp = await async_client.post(
        "/api/v1/attendance/leave",
        json={"worker_id": worker.id, "day": "2026-01-15"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 409


# ── Today ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_today_summary(async_client: AsyncClient, admin, supervisor, worker, make_user, clock):
    absentee = await make_user("worker", "Absent Annie")
    await async_client.post("/api/v1/attendance/checkin", files=photo(), headers=auth_headers(worker))
    clock.set(ist(2026, 1, 15, 10, 0))
    await async_client.post(
        "/api/v1/attendance/checkin", files=photo(), headers=auth_headers(supervisor)
    )
    await async_client.post(
        "/api/v1/attendance/checkin-pending",
        data={"client_timestamp": ist(2026, 1, 15, 9, 20).isoformat()},
        files=photo(),
        headers=auth_headers(absentee),
    )

    resp = await async_client.get("/api/v1/attendance/summary/today", headers=auth_headers(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["date"] == "2026-01-15"
    assert body["total_workers"] == 3
    assert body["present"] == 2
    assert body["pending"] == 1
    assert body["absent"] == 0
    assert body["late"] == 1  # supervisor at 10:00 is past 09:45


@pytest.mark.asyncio
async def test_today_summary_forbidden_for_workers(async_client: AsyncClient, worker):
    resp = await async_client.get("/api/v1/attendance/summary/today", headers=auth_headers(worker))
    assert resp.status_code == 403
