"""
Tests des routes HTTP (TestClient FastAPI)

Le client utilise une base https: les cookies Secure ne sont renvoyés
que sur ce schéma.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from gatekeeper.api import create_app
from gatekeeper.api.routes import ATTEMPT_COOKIE
from gatekeeper.auth import INotifier, InMemoryCredentialStore, Principal, Role
from gatekeeper.core import AuthSettings, CryptoProvider, DeliverySettings, SessionSettings
from gatekeeper.logging import StructuredLogger
from gatekeeper.notify import OutboxNotifier
from gatekeeper.service import build_components

from conftest import ADMIN_PASSWORD, EDITOR_PASSWORD, NEW_PASSWORD


BASE_URL = "https://testserver"
SESSION_COOKIE = "gk_session"


def _components(notifier=None, settings=None):
    store = InMemoryCredentialStore(
        [
            Principal("u-admin", "admin@estate.test", Role.ADMIN),
            Principal("u-editor", "editor@estate.test", Role.DATA_EDITOR),
            Principal("u-new", "new@estate.test", Role.SALES_SPECIALIST),
        ]
    )
    components = build_components(
        settings or AuthSettings(otp_required_roles=["admin"]),
        credential_store=store,
        notifier=notifier or OutboxNotifier(),
        crypto_provider=CryptoProvider(secret_key=b"k" * 32),
        logger=StructuredLogger("gatekeeper.api", output_handler=None),
    )

    async def provision():
        await components.credentials.provision("u-admin", ADMIN_PASSWORD, must_change_password=False)
        await components.credentials.provision("u-editor", EDITOR_PASSWORD, must_change_password=False)
        await components.credentials.provision("u-new", ADMIN_PASSWORD, must_change_password=True)

    asyncio.run(provision())
    return components


@pytest.fixture
def components():
    return _components()


@pytest.fixture
def client(components):
    return TestClient(create_app(components), base_url=BASE_URL)


def _set_cookie(response, name):
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def _login_editor(client):
    response = client.post("/login", json={"email": "editor@estate.test", "password": EDITOR_PASSWORD})
    assert response.status_code == 200
    return response.json()


def _login_admin(client, components):
    started = client.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD}).json()
    code = components.notifier.last_code("u-admin")
    response = client.post("/verify-otp", json={"principalId": "u-admin", "code": code})
    assert response.status_code == 200
    return started, response.json()


# ══════════════════════════════════════════════════════════════════════════════
# TESTS /login
# ══════════════════════════════════════════════════════════════════════════════


class TestLogin:
    def test_failures_have_identical_bodies(self, client):
        unknown = client.post("/login", json={"email": "nobody@estate.test", "password": ADMIN_PASSWORD})
        wrong = client.post("/login", json={"email": "admin@estate.test", "password": "Wrong#2024pass"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {"error": "LoginFailed"}
        assert unknown.content == wrong.content

    def test_direct_login_sets_session_cookie(self, client):
        body = _login_editor(client)

        assert body["status"] == "authenticated"
        assert body["principalId"] == "u-editor"
        assert "attemptToken" not in body

    def test_session_cookie_attributes(self, client):
        response = client.post("/login", json={"email": "editor@estate.test", "password": EDITOR_PASSWORD})

        cookie = _set_cookie(response, SESSION_COOKIE).lower()
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "samesite=strict" in cookie
        assert "path=/" in cookie
        assert "max-age=86400" in cookie
        assert response.json()["sessionToken"] in _set_cookie(response, SESSION_COOKIE)

    def test_admin_receives_otp_challenge(self, client, components):
        response = client.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD})

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "otp_required"
        assert body["principalId"] == "u-admin"
        assert body["attemptToken"]
        assert "challengeExpiresAt" in body
        assert "sessionToken" not in body
        assert _set_cookie(response, SESSION_COOKIE) is None
        assert "httponly" in _set_cookie(response, ATTEMPT_COOKIE).lower()
        assert components.notifier.last_code("u-admin")

    def test_invalid_payload(self, client):
        assert client.post("/login", json={"email": "admin@estate.test"}).status_code == 422

    def test_delivery_failure(self):
        notifier = Mock(spec=INotifier)
        notifier.deliver = AsyncMock(side_effect=ConnectionError("smtp down"))
        settings = AuthSettings(otp_required_roles=["admin"], delivery=DeliverySettings(max_attempts=1))
        client = TestClient(create_app(_components(notifier, settings)), base_url=BASE_URL)

        response = client.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD})

        body = response.json()
        assert response.status_code == 503
        assert body["error"] == "DeliveryFailed"
        assert body["principalId"] == "u-admin"
        assert body["attemptToken"]
        assert _set_cookie(response, ATTEMPT_COOKIE) is not None


# ══════════════════════════════════════════════════════════════════════════════
# TESTS /verify-otp
# ══════════════════════════════════════════════════════════════════════════════


class TestVerifyOTP:
    def test_correct_code_issues_session(self, client, components):
        _, body = _login_admin(client, components)

        assert body["status"] == "authenticated"
        assert body["sessionToken"]
        session = client.get("/session")
        assert session.status_code == 200
        assert session.json()["role"] == "admin"

    def test_wrong_code(self, client, components):
        client.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD})
        code = components.notifier.last_code("u-admin")
        wrong = "000000" if code != "000000" else "111111"

        response = client.post("/verify-otp", json={"principalId": "u-admin", "code": wrong})

        assert response.status_code == 401
        assert response.json() == {"error": "OTPMismatch", "remainingAttempts": 4}

    def test_attempt_token_in_body(self, components):
        first = TestClient(create_app(components), base_url=BASE_URL)
        started = first.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD}).json()

        # Client sans cookie: le jeton d'essai est passé dans le corps
        second = TestClient(create_app(components), base_url=BASE_URL)
        response = second.post(
            "/verify-otp",
            json={
                "principalId": "u-admin",
                "code": components.notifier.last_code("u-admin"),
                "attemptToken": started["attemptToken"],
            },
        )

        assert response.json()["status"] == "authenticated"

    def test_code_reuse_rejected(self, client, components):
        _login_admin(client, components)
        code = components.notifier.last_code("u-admin")

        response = client.post("/verify-otp", json={"principalId": "u-admin", "code": code})

        assert response.status_code == 401
        assert response.json() == {"error": "LoginFailed"}

    def test_resend(self, client, components):
        client.post("/login", json={"email": "admin@estate.test", "password": ADMIN_PASSWORD})

        response = client.post("/resend-otp")

        assert response.status_code == 200
        assert response.json()["status"] == "otp_required"
        assert len(components.notifier.messages("u-admin")) == 2

    def test_forged_attempt_tokens_leave_no_lock(self, client, components):
        for i in range(100):
            response = client.post(
                "/verify-otp",
                json={"principalId": "u-admin", "code": "123456", "attemptToken": f"forged-{i}"},
            )
            assert response.json() == {"error": "LoginFailed"}

        assert len(components.login._attempts._locks) == 0


# ══════════════════════════════════════════════════════════════════════════════
# TESTS /change-password
# ══════════════════════════════════════════════════════════════════════════════


class TestChangePassword:
    def test_forced_change_then_session(self, client):
        started = client.post("/login", json={"email": "new@estate.test", "password": ADMIN_PASSWORD}).json()
        assert started["status"] == "password_change_required"
        assert client.get("/session").status_code == 401

        response = client.post(
            "/change-password",
            json={"currentPassword": ADMIN_PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "authenticated"
        session = client.get("/session").json()
        assert session["role"] == "salesSpecialist"
        assert session["roleName"] == "Sales Specialist"

    def test_policy_violation(self, client):
        client.post("/login", json={"email": "new@estate.test", "password": ADMIN_PASSWORD})

        response = client.post("/change-password", json={"currentPassword": ADMIN_PASSWORD, "newPassword": "abc"})

        assert response.status_code == 422
        assert response.json() == {
            "error": "PasswordPolicyViolation",
            "violations": ["min_length", "uppercase", "digit", "special"],
        }

    def test_authenticated_rotation_revokes_other_sessions(self, client, components):
        _login_editor(client)
        other = asyncio.run(components.sessions.issue("u-editor", Role.DATA_EDITOR))

        response = client.post(
            "/change-password",
            json={"currentPassword": EDITOR_PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json() == {"revokedSessions": 1}
        assert client.get("/session").status_code == 200
        stale = TestClient(create_app(components), base_url=BASE_URL)
        revoked = stale.get("/session", headers={"Cookie": f"{SESSION_COOKIE}={other.token}"})
        assert revoked.json() == {"error": "SessionRevoked"}

    def test_wrong_current_password(self, client):
        _login_editor(client)

        response = client.post(
            "/change-password",
            json={"currentPassword": "Wrong#2024pass", "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 403
        assert response.json() == {"error": "InvalidCredentials"}

    def test_reuse(self, client):
        _login_editor(client)

        response = client.post(
            "/change-password",
            json={"currentPassword": EDITOR_PASSWORD, "newPassword": EDITOR_PASSWORD},
        )

        assert response.json() == {"error": "PasswordReuse"}

    def test_pending_attempt_wins_over_revoked_session_cookie(self, components):
        stale = asyncio.run(components.sessions.issue("u-new", Role.SALES_SPECIALIST))
        asyncio.run(components.sessions.revoke_all("u-new", reason="admin_revocation"))
        client = TestClient(create_app(components), base_url=BASE_URL)
        started = client.post("/login", json={"email": "new@estate.test", "password": ADMIN_PASSWORD}).json()
        assert started["status"] == "password_change_required"

        response = client.post(
            "/change-password",
            json={"currentPassword": ADMIN_PASSWORD, "newPassword": NEW_PASSWORD},
            headers={"Cookie": f"{SESSION_COOKIE}={stale.token}; {ATTEMPT_COOKIE}={started['attemptToken']}"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "authenticated"
        fresh = TestClient(create_app(components), base_url=BASE_URL)
        session = fresh.get("/session", headers={"Cookie": f"{SESSION_COOKIE}={body['sessionToken']}"})
        assert session.json()["principalId"] == "u-new"

    def test_session_rotation_ignores_finished_attempt_cookie(self, client):
        _login_editor(client)
        client.cookies.set(ATTEMPT_COOKIE, "finished-attempt")

        response = client.post(
            "/change-password",
            json={"currentPassword": EDITOR_PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json() == {"revokedSessions": 0}

    def test_without_session_or_attempt(self, client):
        response = client.post(
            "/change-password",
            json={"currentPassword": EDITOR_PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "SessionNotFound"}


# ══════════════════════════════════════════════════════════════════════════════
# TESTS SESSIONS
# ══════════════════════════════════════════════════════════════════════════════


class TestSessions:
    def test_logout_revokes_session(self, client, components):
        token = _login_editor(client)["sessionToken"]

        response = client.post("/logout")

        assert response.status_code == 200
        assert response.json() == {}
        fresh = TestClient(create_app(components), base_url=BASE_URL)
        after = fresh.get("/session", headers={"Cookie": f"{SESSION_COOKIE}={token}"})
        assert after.status_code == 401
        assert after.json() == {"error": "SessionRevoked"}

    def test_logout_without_session(self, client):
        assert client.post("/logout").status_code == 200

    def test_session_view_carries_permissions(self, client):
        _login_editor(client)

        body = client.get("/session").json()

        assert body["principalId"] == "u-editor"
        assert body["resources"] == ["content", "dashboards", "successStories", "teamMembers"]
        assert body["permissions"]["dashboards"] == ["read"]
        assert body["permissions"]["leads"] == []

    def test_fixed_expiry_leaves_cookie_alone(self, client):
        _login_editor(client)

        assert _set_cookie(client.get("/session"), SESSION_COOKIE) is None

    def test_sliding_expiration_refreshes_cookie(self):
        settings = AuthSettings(otp_required_roles=["admin"], session=SessionSettings(sliding_expiration=True))
        client = TestClient(create_app(_components(settings=settings)), base_url=BASE_URL)
        token = _login_editor(client)["sessionToken"]

        response = client.get("/session")

        cookie = _set_cookie(response, SESSION_COOKIE)
        assert cookie is not None
        assert token in cookie
        assert "max-age=86400" in cookie.lower()
        assert "httponly" in cookie.lower()

    def test_no_cookie(self, client):
        response = client.get("/session")

        assert response.status_code == 401
        assert response.json() == {"error": "SessionNotFound"}

    def test_list_sessions_marks_current(self, client, components):
        _login_editor(client)
        asyncio.run(components.sessions.issue("u-editor", Role.DATA_EDITOR))

        listed = client.get("/sessions").json()

        assert len(listed) == 2
        assert sum(1 for s in listed if s["current"]) == 1

    def test_admin_revokes_sessions(self, client, components):
        other = TestClient(create_app(components), base_url=BASE_URL)
        _login_editor(other)
        _login_admin(client, components)

        response = client.post("/principals/u-editor/revoke-sessions")

        assert response.status_code == 200
        assert response.json() == {"revoked": 1}
        assert other.get("/session").json() == {"error": "SessionRevoked"}

    def test_permission_denied(self, client):
        _login_editor(client)

        response = client.post("/principals/u-admin/revoke-sessions")

        assert response.status_code == 403
        assert response.json() == {"error": "PermissionDenied"}
