"""Tests for login, token refresh and user administration."""

import pytest
from httpx import AsyncClient

from conftest import PASSWORD, auth_headers
from rollcall.core.security import (create_access_token, create_refresh_token,
                                    decode_access_token, decode_refresh_token)


@pytest.mark.asyncio
async def test_login_with_user_code_and_email(async_client: AsyncClient, worker):
    for username in (worker.user_code, worker.email.upper()):
        resp = await async_client.post(
            "/api/v1/auth/login", data={"username": username, "password": PASSWORD}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "bearer"
        payload = decode_access_token(body["access_token"])
        assert payload["sub"] == str(worker.id)
        assert payload["role"] == "worker"
        assert any(h.startswith("access_token=") for h in resp.headers.get_list("set-cookie"))


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/auth/login", data={"username": worker.user_code, "password": "nope-nope"}
    )
    assert resp.status_code == 401
    assert resp.json()["kind"] == "AuthenticationError"


@pytest.mark.asyncio
async def test_inactive_user_cannot_login(async_client: AsyncClient, make_user):
    ghost = await make_user("worker", "Ghost", is_active=False)
    resp = await async_client.post(
        "/api/v1/auth/login", data={"username": ghost.user_code, "password": PASSWORD}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refresh_rotates_tokens(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": create_refresh_token(worker.id)}
    )
    assert resp.status_code == 200
    assert decode_refresh_token(resp.json()["refresh_token"])["sub"] == str(worker.id)


@pytest.mark.asyncio
async def test_access_token_is_not_a_refresh_token(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": create_access_token(worker.id)}
    )
    assert resp.status_code == 401


def test_token_types_are_not_interchangeable():
    assert decode_access_token(create_refresh_token(1)) is None
    assert decode_refresh_token(create_access_token(1)) is None
    assert decode_access_token("not-a-jwt") is None


@pytest.mark.asyncio
async def test_me(async_client: AsyncClient, supervisor):
    resp = await async_client.get("/api/v1/auth/me", headers=auth_headers(supervisor))
    assert resp.status_code == 200
    assert resp.json()["user_code"] == supervisor.user_code
    assert resp.json()["role"] == "supervisor"


@pytest.mark.asyncio
async def test_me_with_garbage_token(async_client: AsyncClient):
    resp = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer garbage"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_logout(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/logout")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Logged out"


@pytest.mark.asyncio
async def test_admin_creates_user(async_client: AsyncClient, admin):
    body = {
        "user_code": "W-100",
        "name": "New Hire",
        "password": "welcome1",
        "email": "New.Hire@Example.com",
        "role": "worker",
        "designation": "Packer",
    }
    resp = await async_client.post("/api/v1/auth/users", json=body, headers=auth_headers(admin))
    assert resp.status_code == 201
    assert resp.json()["email"] == "new.hire@example.com"
    assert resp.json()["is_active"] is True

    dup = await async_client.post("/api/v1/auth/users", json=body, headers=auth_headers(admin))
    assert dup.status_code == 409


@pytest.mark.asyncio
async def test_user_creation_validation(async_client: AsyncClient, admin):
    resp = await async_client.post(
        "/api/v1/auth/users",
        json={"user_code": "X-1", "name": "Bad Role", "password": "welcome1", "role": "owner"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "role"


@pytest.mark.asyncio
async def test_only_admin_creates_users(async_client: AsyncClient, manager):
    resp = await async_client.post(
        "/api/v1/auth/users",
        json={"user_code": "W-101", "name": "Nope", "password": "welcome1"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_reference_photo_upload(async_client: AsyncClient, admin, make_user, storage):
    newbie = await make_user("worker", "Newbie", face=None)
    resp = await async_client.put(
        f"/api/v1/auth/users/{newbie.id}/photo",
        files={"photo": ("me.png", b"newbie-face", "image/png")},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    ref = resp.json()["profile_image_ref"]
    assert ref.startswith("profile/")
    assert storage.blobs[ref] == b"newbie-face"

    missing = await async_client.put(
        "/api/v1/auth/users/9999/photo",
        files={"photo": ("me.png", b"x", "image/png")},
        headers=auth_headers(admin),
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_auth_cookies_httponly(async_client: AsyncClient, worker):
    resp = await async_client.post(
        "/api/v1/auth/login", data={"username": worker.user_code, "password": PASSWORD}
    )
    cookies = resp.headers.get_list("set-cookie")
    assert all("HttpOnly" in c for c in cookies)
    assert {c.split("=", 1)[0] for c in cookies} == {"access_token", "refresh_token"}


@pytest.mark.asyncio
async def test_cookie_token_authenticates(async_client: AsyncClient, worker):
    token = create_access_token(worker.id)
    resp = await async_client.get(
        "/api/v1/auth/me", headers={"Cookie": f'access_token="Bearer {token}"'}
    )
    assert resp.status_code == 200
    assert resp.json()["id"] == worker.id
