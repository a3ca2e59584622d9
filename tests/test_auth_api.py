"""Tests for the authentication HTTP API."""
from jobportal.api.routes.auth import FORGOT_PASSWORD_MESSAGE

from .conftest import OTHER_PASSWORDS, STRONG_PASSWORD


async def register_via_api(client, email="api@example.com", **extra):
    payload = {"email": email, "name": "Api User", "password": STRONG_PASSWORD}
    payload.update(extra)
    return await client.post("/api/v1/auth/register", json=payload)


async def test_root_and_health(client):
    root = await client.get("/")
    health = await client.get("/health")

    assert root.json()["success"] is True
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"


async def test_register_returns_envelope(client, email_service):
    """Test registration response shape and that no credentials leak."""
    response = await register_via_api(client, role="employer", company="Acme")

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["requires_verification"] is True
    assert body["user"]["email"] == "api@example.com"
    assert body["user"]["role"] == "employer"
    assert body["user"]["is_verified"] is False
    assert "hashed_password" not in body["user"]
    assert "password_history" not in body["user"]
    assert email_service.sent[-1]["to"] == "api@example.com"


async def test_register_with_bad_email_is_validation_error(client):
    response = await register_via_api(client, email="not-an-email")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "VALIDATION_ERROR"
    assert any(error["field"] == "email" for error in body["errors"])


async def test_register_with_unknown_role_is_validation_error(client):
    response = await register_via_api(client, role="admin")

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


async def test_register_weak_password_reports_strength(client):
    response = await register_via_api(client, password="weak")

    assert response.status_code == 400
    body = response.json()
    assert body["details"]["password_strength"]["is_valid"] is False
    assert body["errors"]


async def test_register_duplicate_is_conflict(client):
    await register_via_api(client)
    response = await register_via_api(client, email="API@example.com")

    assert response.status_code == 409
    assert response.json()["success"] is False


async def test_register_delivery_failure(client, email_service, orchestrator, session_factory):
    email_service.fail = True

    response = await register_via_api(client)

    assert response.status_code == 502
    async with session_factory() as session:
        assert await orchestrator.get_user_by_email(session, "api@example.com") is None


async def test_verify_email_returns_token(client, orchestrator):
    """Test that a verified registration receives a usable session token."""
    await register_via_api(client)
    wrong = await client.post(
        "/api/v1/auth/verify-email", json={"email": "api@example.com", "code": "000000"}
    )
    assert wrong.status_code == 400
    assert wrong.json()["success"] is False

    code = await orchestrator.codes.peek("api@example.com")
    response = await client.post(
        "/api/v1/auth/verify-email", json={"email": "api@example.com", "code": code.code}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["token_type"] == "bearer"
    assert body["user"]["is_verified"] is True

    profile = await client.get(
        "/api/v1/auth/profile", headers={"Authorization": f"Bearer {body['token']}"}
    )
    assert profile.status_code == 200
    assert profile.json()["user"]["email"] == "api@example.com"


async def test_login_unverified_is_forbidden(client):
    await register_via_api(client)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "api@example.com", "password": STRONG_PASSWORD}
    )

    assert response.status_code == 403
    assert response.json()["details"]["requires_verification"] is True


async def test_login_success(client, test_user):
    response = await client.post(
        "/api/v1/auth/login", json={"email": test_user.email, "password": STRONG_PASSWORD}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["mfa_required"] is False
    assert body["expires_in"] > 0
    assert body["password_expiry"]["is_expired"] is False


async def test_login_failures_look_identical(client, test_user):
    unknown = await client.post(
        "/api/v1/auth/login", json={"email": "ghost@example.com", "password": STRONG_PASSWORD}
    )
    wrong = await client.post(
        "/api/v1/auth/login", json={"email": test_user.email, "password": "Wr0ng!Pass"}
    )

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["message"] == wrong.json()["message"]


async def test_forgot_password_responses_are_identical(client, test_user, email_service):
    """Test that the reply does not reveal whether the account exists."""
    known = await client.post("/api/v1/auth/forgot-password", json={"email": test_user.email})
    unknown = await client.post(
        "/api/v1/auth/forgot-password", json={"email": "ghost@example.com"}
    )

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert known.json()["message"] == FORGOT_PASSWORD_MESSAGE
    assert len([mail for mail in email_service.sent if "Password Reset" in mail["subject"]]) == 1


async def test_reset_password_over_api(client, test_user, email_service):
    await client.post("/api/v1/auth/forgot-password", json={"email": test_user.email})
    token = email_service.last_reset_token()

    valid = await client.post("/api/v1/auth/validate-reset-token", json={"token": token})
    assert valid.json()["valid"] is True
    assert valid.json()["email"] == test_user.email

    reset = await client.post(
        "/api/v1/auth/reset-password",
        json={"token": token, "new_password": OTHER_PASSWORDS[0]},
    )
    assert reset.status_code == 200

    reused = await client.post(
        "/api/v1/auth/reset-password",
        json={"token": token, "new_password": OTHER_PASSWORDS[1]},
    )
    assert reused.status_code == 400
    assert reused.json()["error_code"] == "INVALID_TOKEN"

    login = await client.post(
        "/api/v1/auth/login", json={"email": test_user.email, "password": OTHER_PASSWORDS[0]}
    )
    assert login.status_code == 200


async def test_validate_unknown_reset_token(client):
    response = await client.post("/api/v1/auth/validate-reset-token", json={"token": "nope"})

    assert response.status_code == 400
    assert response.json()["success"] is False


# Token transport


async def test_missing_token(client):
    response = await client.get("/api/v1/auth/profile")

    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No token provided."


async def test_invalid_token(client):
    response = await client.get(
        "/api/v1/auth/profile", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


async def test_header_token_wins_over_cookie(client, auth_headers):
    client.cookies.set("token", "garbage")

    response = await client.get("/api/v1/auth/profile", headers=auth_headers)

    assert response.status_code == 200


async def test_cookie_token(client, auth_headers):
    client.cookies.set("token", auth_headers["Authorization"].split(" ", 1)[1])

    response = await client.get("/api/v1/auth/profile")

    assert response.status_code == 200


async def test_query_token_only_on_get(client, auth_headers):
    """Test that ``?token=`` authenticates GET requests but not POSTs."""
    token = auth_headers["Authorization"].split(" ", 1)[1]

    profile = await client.get("/api/v1/auth/profile", params={"token": token})
    logout = await client.post("/api/v1/auth/logout", params={"token": token})

    assert profile.status_code == 200
    assert logout.status_code == 401


# Session-bound operations


async def test_logout_revokes_session(client, auth_headers):
    response = await client.post("/api/v1/auth/logout", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"

    # The token still decodes but its session is gone
    change = await client.post(
        "/api/v1/auth/change-password",
        headers=auth_headers,
        json={"current_password": STRONG_PASSWORD, "new_password": OTHER_PASSWORDS[0]},
    )
    assert change.status_code == 401
    assert change.json()["message"] == "Session expired or revoked"


async def test_change_password_over_api(client, auth_headers, test_user):
    wrong = await client.post(
        "/api/v1/auth/change-password",
        headers=auth_headers,
        json={"current_password": "Wr0ng!Pass", "new_password": OTHER_PASSWORDS[0]},
    )
    assert wrong.status_code == 401

    response = await client.post(
        "/api/v1/auth/change-password",
        headers=auth_headers,
        json={"current_password": STRONG_PASSWORD, "new_password": OTHER_PASSWORDS[0]},
    )
    assert response.status_code == 200

    old = await client.post(
        "/api/v1/auth/login", json={"email": test_user.email, "password": STRONG_PASSWORD}
    )
    assert old.status_code == 401


async def test_update_profile_over_api(client, auth_headers):
    response = await client.put(
        "/api/v1/auth/profile", headers=auth_headers, json={"name": "New Name", "company": "Acme"}
    )

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["name"] == "New Name"
    assert user["company"] == "Acme"


async def test_blank_profile_name_is_rejected(client, auth_headers):
    """Test that a whitespace-only name is not stored as empty."""
    response = await client.put("/api/v1/auth/profile", headers=auth_headers, json={"name": "   "})

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"

    profile = await client.get("/api/v1/auth/profile", headers=auth_headers)
    assert profile.json()["user"]["name"].strip()


async def test_password_strength_endpoint(client):
    weak = await client.post("/api/v1/auth/password-strength", json={"password": "abc"})
    strong = await client.post(
        "/api/v1/auth/password-strength",
        json={"password": "Jane!Pass1", "email": "jane@example.com"},
    )

    assert weak.json()["strength"] == "weak"
    assert weak.json()["is_valid"] is False
    assert strong.json()["score"] == 5
    assert strong.json()["contains_email"] is True
    assert strong.json()["is_valid"] is False
