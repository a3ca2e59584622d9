"""Tests for request-level protections."""
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from jobportal.api.middleware import CONTENT_SECURITY_POLICY, looks_suspicious
from jobportal.config.settings import RateLimitSettings, SecuritySettings
from jobportal.models.audit import AuditLog
from jobportal.services.audit import SYSTEM_USER, AuditAction

from .conftest import STRONG_PASSWORD, build_settings


def client_for(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def csrf_client(make_app):
    app = make_app(build_settings(security=SecuritySettings(csrf_enabled=True)))
    async with client_for(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def limited_client(make_app):
    app = make_app(build_settings(
        rate_limit=RateLimitSettings(enabled=True, auth_max_requests=2, api_max_requests=3)
    ))
    async with client_for(app) as test_client:
        yield test_client


async def suspicious_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.SUSPICIOUS_REQUEST.value)
        )
        return list(result.scalars().all())


# CSRF


async def test_state_change_without_csrf_token_is_rejected(csrf_client):
    response = await csrf_client.post(
        "/api/v1/auth/forgot-password", json={"email": "someone@example.com"}
    )

    assert response.status_code == 403
    assert response.json()["error_code"] == "CSRF_ERROR"


async def test_csrf_token_is_single_use(csrf_client):
    """Test that an issued token admits exactly one request."""
    issued = await csrf_client.get("/api/v1/auth/csrf-token")
    token = issued.json()["csrf_token"]
    assert issued.headers["X-CSRF-Token"] == token

    first = await csrf_client.post(
        "/api/v1/auth/forgot-password",
        json={"email": "someone@example.com"},
        headers={"X-CSRF-Token": token},
    )
    second = await csrf_client.post(
        "/api/v1/auth/forgot-password",
        json={"email": "someone@example.com"},
        headers={"X-CSRF-Token": token},
    )

    assert first.status_code == 200
    assert second.status_code == 403


async def test_login_is_exempt_from_csrf(csrf_client):
    response = await csrf_client.post(
        "/api/v1/auth/login", json={"email": "ghost@example.com", "password": STRONG_PASSWORD}
    )

    assert response.status_code == 401


async def test_unknown_csrf_token_is_rejected(csrf_client):
    response = await csrf_client.post(
        "/api/v1/auth/forgot-password",
        json={"email": "someone@example.com"},
        headers={"X-CSRF-Token": "f" * 64},
    )

    assert response.status_code == 403


# Rate limiting


async def test_auth_endpoints_are_rate_limited(limited_client):
    """Test that the third auth call in the window is refused."""
    payload = {"email": "ghost@example.com", "password": STRONG_PASSWORD}
    first = await limited_client.post("/api/v1/auth/login", json=payload)
    second = await limited_client.post("/api/v1/auth/login", json=payload)
    third = await limited_client.post("/api/v1/auth/login", json=payload)

    assert first.status_code == 401
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.status_code == 401
    assert third.status_code == 429
    assert third.json()["error_code"] == "RATE_LIMIT_EXCEEDED"
    assert int(third.headers["Retry-After"]) > 0


async def test_general_api_limit_is_separate(limited_client):
    for _ in range(2):
        await limited_client.post(
            "/api/v1/auth/login", json={"email": "ghost@example.com", "password": "x"}
        )

    responses = [await limited_client.get("/api/v1/auth/csrf-token") for _ in range(4)]

    assert [r.status_code for r in responses] == [200, 200, 200, 429]


async def test_non_api_paths_are_not_limited(limited_client):
    responses = [await limited_client.get("/health") for _ in range(5)]

    assert all(r.status_code == 200 for r in responses)


async def test_store_failure_rejects_request(limited_client, kv_store, monkeypatch):
    async def broken_incr(key, ttl_seconds):
        raise ConnectionError("store down")

    monkeypatch.setattr(kv_store, "incr", broken_incr)

    response = await limited_client.get("/api/v1/auth/csrf-token")

    assert response.status_code == 503
    assert response.json()["error_code"] == "RATE_LIMIT_UNAVAILABLE"


# Suspicious requests


def test_pattern_matching():
    assert looks_suspicious("/files/../../etc/passwd")
    assert looks_suspicious("", "name=<SCRIPT>alert(1)</script>")
    assert looks_suspicious("q=1 UNION   SELECT password")
    assert not looks_suspicious("/api/v1/auth/profile", "")


async def test_suspicious_query_is_audited(client, session_factory):
    """Test that a matching request is recorded and still served."""
    response = await client.get(
        "/api/v1/auth/csrf-token", params={"q": "<script>alert(1)</script>"}
    )

    assert response.status_code == 200
    rows = await suspicious_rows(session_factory)
    assert len(rows) == 1
    assert rows[0].user_id == SYSTEM_USER
    assert rows[0].details["method"] == "GET"
    assert "<script>" in rows[0].details["url"]


async def test_suspicious_body_is_audited(client, session_factory):
    response = await client.post(
        "/api/v1/auth/password-strength",
        json={"password": "x' UNION SELECT * FROM users --"},
    )

    assert response.status_code == 200
    rows = await suspicious_rows(session_factory)
    assert len(rows) == 1
    assert "UNION SELECT" in rows[0].details["body"]


async def test_ordinary_request_is_not_audited(client, session_factory):
    await client.get("/api/v1/auth/csrf-token")

    assert await suspicious_rows(session_factory) == []


# Headers and errors


async def test_security_headers(client):
    response = await client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Content-Security-Policy"] == CONTENT_SECURITY_POLICY
    assert "default-src 'self'" in CONTENT_SECURITY_POLICY
    assert response.headers["X-Request-ID"]


async def test_unhandled_error_becomes_envelope(app, client):
    async def boom():
        raise RuntimeError("secret detail")

    app.add_api_route("/boom", boom)

    response = await client.get("/boom")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "INTERNAL_ERROR"
    assert "secret detail" not in response.text
