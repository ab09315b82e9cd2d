"""Tests for overtime requests and the ledger totals used by reports."""

from datetime import date

import pytest
from httpx import AsyncClient

from conftest import auth_headers
from rollcall.core.exceptions import ValidationError

DAY = date(2026, 1, 15)


@pytest.mark.asyncio
async def test_rejected_hours_never_count(services, worker, admin):
    approved = await services.overtime.create(worker.id, DAY, 5, "Stocktake", worker.id)
    rejected = await services.overtime.create(worker.id, DAY, 3, "Extra", worker.id)
    await services.overtime.approve(approved.id, admin.id)
    await services.overtime.reject(rejected.id, admin.id)

    totals = await services.overtime.sum_approved_and_pending([worker.id], DAY, DAY)
    assert totals == {(worker.id, DAY): 5.0}


@pytest.mark.asyncio
async def test_pending_hours_count(services, worker):
    await services.overtime.create(worker.id, DAY, 1.5, None, worker.id)
    await services.overtime.create(worker.id, DAY, 2, None, worker.id)
    totals = await services.overtime.sum_approved_and_pending([worker.id], DAY, DAY)
    assert totals[(worker.id, DAY)] == pytest.approx(3.5)


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, -1, 24.5])
async def test_ledger_rejects_bad_hours(services, worker, hours):
    with pytest.raises(ValidationError):
        await services.overtime.create(worker.id, DAY, hours, None, worker.id)


@pytest.mark.asyncio
async def test_worker_files_own_request(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/overtime",
        json={"day": "2026-01-15", "hours": 2.5, "reason": "Late delivery"},
        headers=auth_headers(worker),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["user_id"] == worker.id
    assert data["requested_by"] == worker.id
    assert data["status"] == "pending"
    assert data["hours"] == 2.5


@pytest.mark.asyncio
async def test_worker_cannot_file_for_others(async_client: AsyncClient, worker, make_user):
    other = await make_user("worker", "Other")
    resp = await async_client.post(
        "/api/v1/overtime",
        json={"day": "2026-01-15", "hours": 1, "worker_id": other.id},
        headers=auth_headers(worker),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_supervisor_files_for_worker(async_client: AsyncClient, supervisor, worker):
    resp = await async_client.post(
        "/api/v1/overtime",
        json={"day": "2026-01-15", "hours": 1, "worker_id": worker.id},
        headers=auth_headers(supervisor),
    )
    assert resp.status_code == 201
    assert resp.json()["user_id"] == worker.id
    assert resp.json()["requested_by"] == supervisor.id


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, 25])
async def test_hours_out_of_range(async_client: AsyncClient, worker, hours):
    resp = await async_client.post(
        "/api/v1/overtime",
        json={"day": "2026-01-15", "hours": hours},
        headers=auth_headers(worker),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "hours"


@pytest.mark.asyncio
async def test_decision_lifecycle(async_client: AsyncClient, worker, manager):
    created = await async_client.post(
        "/api/v1/overtime", json={"day": "2026-01-15", "hours": 4}, headers=auth_headers(worker)
    )
    record_id = created.json()["id"]

    forbidden = await async_client.put(
        f"/api/v1/overtime/{record_id}/approve", headers=auth_headers(worker)
    )
    assert forbidden.status_code == 403

    approved = await async_client.put(
        f"/api/v1/overtime/{record_id}/approve", headers=auth_headers(manager)
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["decided_by"] == manager.id

    again = await async_client.put(
        f"/api/v1/overtime/{record_id}/approve", headers=auth_headers(manager)
    )
    assert again.status_code == 200

    conflict = await async_client.put(
        f"/api/v1/overtime/{record_id}/reject", headers=auth_headers(manager)
    )
    assert conflict.status_code == 409
    assert conflict.json()["kind"] == "StateConflict"

    missing = await async_client.put("/api/v1/overtime/999/reject", headers=auth_headers(manager))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_listing_is_scoped(async_client: AsyncClient, worker, make_user, admin):
    other = await make_user("worker", "Other")
    for user in (worker, other):
        await async_client.post(
            "/api/v1/overtime", json={"day": "2026-01-15", "hours": 1}, headers=auth_headers(user)
        )

    own = await async_client.get("/api/v1/overtime", headers=auth_headers(worker))
    assert [r["user_id"] for r in own.json()] == [worker.id]

    everyone = await async_client.get("/api/v1/overtime", headers=auth_headers(admin))
    assert {r["user_id"] for r in everyone.json()} == {worker.id, other.id}

    filtered = await async_client.get(
        f"/api/v1/overtime?worker_id={other.id}&status=pending", headers=auth_headers(admin)
    )
    assert [r["user_id"] for r in filtered.json()] == [other.id]
