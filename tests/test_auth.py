"""
BankDash - Authentication API Test Suite

End-to-end tests through the FastAPI app for:
- Login success/failure scenarios and status gates
- Progressive lockout
- Token refresh, validation and status
- Signup, password change and logout
- Error response shape

Run with: pytest tests/test_auth.py -v
"""

import pytest
from datetime import timedelta

import httpx
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.auth.credentials import MAX_FAILED_ATTEMPTS
from backend.auth.models import AccountStatus, Role
from backend.auth.tokens import to_epoch
from tests.conftest import (
    DEFAULT_PASSWORD,
    create_account,
    login_user,
    auth_headers,
    make_settings,
)


LOGIN_URL = "/api/v1/auth/login"
REFRESH_URL = "/api/v1/auth/refresh"
STATUS_URL = "/api/v1/auth/status"
VALIDATE_URL = "/api/v1/auth/validate-token"


def attempt_login(client, password, email="customer@test.com"):
    return client.post(LOGIN_URL, json={"email": email, "password": password})


# =============================================================================
# LOGIN TESTS
# =============================================================================

class TestLogin:
    """Integration tests for POST /auth/login."""

    def test_login_success_returns_token(self, client, active_account):
        response = attempt_login(client, DEFAULT_PASSWORD)

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert len(data["access_token"]) > 50
        assert data["expires_in"] == 1800
        assert data["external_credential_embedded"] is False
        assert data["account"]["email"] == "customer@test.com"
        assert data["account"]["account_status"] == "active"
        assert data["account"]["last_login"] is not None

    def test_login_email_is_case_insensitive(self, client, active_account):
        response = attempt_login(client, DEFAULT_PASSWORD, email="  Customer@TEST.com ")

        assert response.status_code == 200

    def test_login_echoes_remember_me(self, client, active_account):
        data = login_user(client, remember_me=True)

        assert data["remember_me"] is True

    def test_wrong_password_and_unknown_email_are_indistinguishable(self, client, active_account):
        wrong = attempt_login(client, "Wrong#Password1")
        unknown = attempt_login(client, DEFAULT_PASSWORD, email="nobody@test.com")

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["error_code"] == unknown.json()["error_code"] == "AUTHENTICATION_FAILED"
        assert wrong.json()["detail"] == unknown.json()["detail"]

    def test_suspended_account_rejected(self, client, make_account):
        make_account(status=AccountStatus.SUSPENDED)

        response = attempt_login(client, DEFAULT_PASSWORD)

        assert response.status_code == 403
        assert response.json()["error_code"] == "ACCOUNT_SUSPENDED"

    def test_closed_account_rejected(self, client, make_account):
        make_account(status=AccountStatus.CLOSED)

        response = attempt_login(client, DEFAULT_PASSWORD)

        assert response.status_code == 403
        assert response.json()["error_code"] == "ACCOUNT_CLOSED"

    def test_pending_verification_may_log_in(self, client, make_account):
        make_account(status=AccountStatus.PENDING_VERIFICATION)

        response = attempt_login(client, DEFAULT_PASSWORD)

        assert response.status_code == 200
        assert response.json()["account"]["is_verified"] is False

    def test_admin_role_reported(self, client, make_account):
        make_account(role=Role.ADMIN)

        data = login_user(client)

        assert data["account"]["role"] == "admin"
        assert data["account"]["is_admin"] is True

    def test_short_password_rejected_by_validation(self, client, active_account):
        response = attempt_login(client, "short")

        assert response.status_code == 422

    def test_low_work_factor_hash_upgraded_on_login(self, client, service, make_account):
        account = make_account(work_factor=4)
        service._work_factor = 5

        assert attempt_login(client, DEFAULT_PASSWORD).status_code == 200

        stored = service.repository.get_by_id(account.id)
        assert stored.password_hash.startswith("$2b$05$")
        assert stored.password_changed_at == account.password_changed_at


# =============================================================================
# LOCKOUT TESTS
# =============================================================================

class TestLockout:
    """Brute-force protection through the login endpoint."""

    def fail(self, client, times):
        for _ in range(times):
            response = attempt_login(client, "Wrong#Password1")
            assert response.status_code == 401

    def test_fifth_failure_locks_account(self, client, service, active_account):
        self.fail(client, MAX_FAILED_ATTEMPTS)

        response = attempt_login(client, DEFAULT_PASSWORD)

        assert response.status_code == 423
        assert response.json()["error_code"] == "ACCOUNT_LOCKED"

    def test_four_failures_do_not_lock(self, client, active_account):
        self.fail(client, MAX_FAILED_ATTEMPTS - 1)

        assert attempt_login(client, DEFAULT_PASSWORD).status_code == 200

    def test_attempts_while_locked_do_not_count(self, client, service, active_account):
        self.fail(client, MAX_FAILED_ATTEMPTS)

        for _ in range(3):
            assert attempt_login(client, "Wrong#Password1").status_code == 423

        stored = service.repository.get_by_id(active_account.id)
        assert stored.failed_attempt_count == MAX_FAILED_ATTEMPTS

    def test_lock_expires_after_two_hours(self, client, clock, service, active_account):
        self.fail(client, MAX_FAILED_ATTEMPTS)

        clock.advance(hours=1, minutes=59)
        assert attempt_login(client, DEFAULT_PASSWORD).status_code == 423

        clock.advance(minutes=1, seconds=1)
        assert attempt_login(client, DEFAULT_PASSWORD).status_code == 200

        stored = service.repository.get_by_id(active_account.id)
        assert stored.failed_attempt_count == 0
        assert stored.locked_until is None

    def test_failure_after_expired_lock_starts_fresh_window(self, client, clock, service, active_account):
        self.fail(client, MAX_FAILED_ATTEMPTS)
        clock.advance(hours=2, seconds=1)

        self.fail(client, 1)

        stored = service.repository.get_by_id(active_account.id)
        assert stored.failed_attempt_count == 1
        assert stored.locked_until is None

    def test_success_resets_counter(self, client, service, active_account):
        self.fail(client, 3)

        assert attempt_login(client, DEFAULT_PASSWORD).status_code == 200

        assert service.repository.get_by_id(active_account.id).failed_attempt_count == 0


# =============================================================================
# REFRESH TESTS
# =============================================================================

class TestRefresh:
    """Integration tests for POST /auth/refresh."""

    def test_fresh_token_not_refreshed(self, client, active_account):
        token = login_user(client)["access_token"]

        response = client.post(REFRESH_URL, headers=auth_headers(token))

        assert response.status_code == 200
        data = response.json()
        assert data["refresh_required"] is False
        assert data["access_token"] is None
        assert data["valid_for"] == 1800

    def test_token_inside_window_is_reissued(self, client, clock, active_account):
        login = login_user(client)
        clock.advance(minutes=26)

        response = client.post(REFRESH_URL, headers=auth_headers(login["access_token"]))

        data = response.json()
        assert data["refresh_required"] is True
        assert data["access_token"] != login["access_token"]
        assert data["valid_for"] == 1800
        assert data["expires_at"] > login["expires_at"]

    def test_refreshed_token_is_usable(self, client, clock, active_account):
        login = login_user(client)
        clock.advance(minutes=26)
        new_token = client.post(REFRESH_URL, headers=auth_headers(login["access_token"])).json()["access_token"]

        clock.advance(minutes=10)

        assert client.get(STATUS_URL, headers=auth_headers(new_token)).status_code == 200
        assert client.get(STATUS_URL, headers=auth_headers(login["access_token"])).status_code == 401

    def test_recently_expired_token_can_still_refresh(self, client, clock, active_account):
        token = login_user(client)["access_token"]
        clock.advance(minutes=30, seconds=30)

        response = client.post(REFRESH_URL, headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json()["refresh_required"] is True

    def test_long_expired_token_requires_reauthentication(self, client, clock, active_account):
        token = login_user(client)["access_token"]
        clock.advance(minutes=31, seconds=1)

        response = client.post(REFRESH_URL, headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_REFRESH_REQUIRED"

    def test_suspension_enforced_at_refresh(self, client, clock, service, active_account):
        token = login_user(client)["access_token"]
        service.repository.update_status(active_account.id, AccountStatus.SUSPENDED)

        # Claims are not re-read on ordinary requests
        assert client.get(STATUS_URL, headers=auth_headers(token)).status_code == 200

        clock.advance(minutes=26)
        response = client.post(REFRESH_URL, headers=auth_headers(token))

        assert response.status_code == 403
        assert response.json()["error_code"] == "ACCOUNT_SUSPENDED"

    def test_password_change_blocks_refresh_of_older_tokens(self, client, clock, active_account):
        old_token = login_user(client)["access_token"]
        clock.advance(minutes=1)

        response = client.post(
            "/api/v1/auth/password",
            json={"current_password": DEFAULT_PASSWORD, "new_password": "N3w$ecretPass"},
            headers=auth_headers(old_token),
        )
        assert response.status_code == 200

        clock.advance(minutes=25)
        response = client.post(REFRESH_URL, headers=auth_headers(old_token))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_REFRESH_REQUIRED"

    def test_refresh_without_token(self, client):
        response = client.post(REFRESH_URL)

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_INVALID"


# =============================================================================
# VALIDATION AND STATUS TESTS
# =============================================================================

class TestValidateAndStatus:

    def test_validate_valid_token(self, client, active_account):
        token = login_user(client)["access_token"]

        response = client.post(VALIDATE_URL, json={"token": token})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["expired"] is False
        assert data["account"]["email"] == "customer@test.com"

    def test_validate_expired_token_still_200(self, client, clock, active_account):
        token = login_user(client)["access_token"]
        clock.advance(minutes=30)

        response = client.post(VALIDATE_URL, json={"token": token})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["expired"] is True
        assert data["error_code"] == "TOKEN_EXPIRED"

    def test_validate_garbage_token(self, client):
        response = client.post(VALIDATE_URL, json={"token": "not-a-real-token-at-all"})

        assert response.status_code == 200
        assert response.json()["error_code"] == "TOKEN_INVALID"

    def test_status_reports_remaining_lifetime(self, client, clock, active_account):
        token = login_user(client)["access_token"]
        clock.advance(minutes=10)

        response = client.get(STATUS_URL, headers=auth_headers(token))

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["token"]["valid_for"] == 1200
        assert data["account"]["id"] == str(active_account.id)

    def test_status_expired_token(self, client, clock, active_account):
        token = login_user(client)["access_token"]
        clock.advance(minutes=30)

        response = client.get(STATUS_URL, headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["error_code"] == "TOKEN_EXPIRED"
        assert response.headers["WWW-Authenticate"] == "Bearer"


# =============================================================================
# ACCOUNT LIFECYCLE TESTS
# =============================================================================

class TestAccountLifecycle:

    SIGNUP = {
        "email": "New.Customer@test.com",
        "password": "Str0ng!Pass",
        "confirm_password": "Str0ng!Pass",
        "first_name": "New",
        "last_name": "Customer",
    }

    def test_signup_creates_pending_account(self, client):
        response = client.post("/api/v1/auth/signup", json=self.SIGNUP)

        assert response.status_code == 201
        account = response.json()["account"]
        assert account["email"] == "new.customer@test.com"
        assert account["account_status"] == "pending_verification"

    def test_duplicate_signup_conflicts(self, client):
        client.post("/api/v1/auth/signup", json=self.SIGNUP)

        response = client.post("/api/v1/auth/signup", json=self.SIGNUP)

        assert response.status_code == 409
        assert response.json()["error_code"] == "USER_EXISTS"

    def test_signup_password_mismatch(self, client):
        body = dict(self.SIGNUP, confirm_password="Different!1")

        assert client.post("/api/v1/auth/signup", json=body).status_code == 422

    def test_signup_weak_password(self, client):
        body = dict(self.SIGNUP, password="alllowercase", confirm_password="alllowercase")

        assert client.post("/api/v1/auth/signup", json=body).status_code == 422

    def test_signup_password_over_72_bytes_rejected(self, client):
        # 44 characters but 84 bytes of UTF-8
        password = "Aa1!" + "é" * 40
        body = dict(self.SIGNUP, password=password, confirm_password=password)

        response = client.post("/api/v1/auth/signup", json=body)

        assert response.status_code == 422

    def test_new_password_over_72_bytes_rejected(self, client, active_account):
        token = login_user(client)["access_token"]

        response = client.post(
            "/api/v1/auth/password",
            json={"current_password": DEFAULT_PASSWORD, "new_password": "Aa1!" + "é" * 40},
            headers=auth_headers(token),
        )

        assert response.status_code == 422
        assert login_user(client, password=DEFAULT_PASSWORD) is not None

    def test_change_password_wrong_current_counts_as_failure(self, client, service, active_account):
        token = login_user(client)["access_token"]

        response = client.post(
            "/api/v1/auth/password",
            json={"current_password": "Wrong#Password1", "new_password": "N3w$ecretPass"},
            headers=auth_headers(token),
        )

        assert response.status_code == 401
        assert service.repository.get_by_id(active_account.id).failed_attempt_count == 1

    def test_change_password_switches_credentials(self, client, active_account):
        token = login_user(client)["access_token"]

        response = client.post(
            "/api/v1/auth/password",
            json={"current_password": DEFAULT_PASSWORD, "new_password": "N3w$ecretPass"},
            headers=auth_headers(token),
        )

        assert response.status_code == 200
        assert response.json()["access_token"] != token
        assert login_user(client, password=DEFAULT_PASSWORD) is None
        assert login_user(client, password="N3w$ecretPass") is not None

    def test_logout_acknowledged(self, client, active_account):
        token = login_user(client)["access_token"]

        response = client.post("/api/v1/auth/logout", headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json()["logged_out"] is True

    def test_logout_requires_token(self, client):
        assert client.post("/api/v1/auth/logout").status_code == 401


# =============================================================================
# ERROR SHAPE AND HEALTH TESTS
# =============================================================================

class TestErrorsAndHealth:

    def test_error_carries_request_id(self, client):
        response = client.post(
            LOGIN_URL,
            json={"email": "nobody@test.com", "password": DEFAULT_PASSWORD},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.json()["request_id"] == "req-123"
        assert response.headers["X-Request-ID"] == "req-123"

    def test_security_headers_present(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"

    def test_auth_health_reports_integration_disabled(self, client):
        response = client.get("/api/v1/auth/health")

        assert response.status_code == 200
        assert response.json()["external_auth"]["enabled"] is False


# =============================================================================
# EXTERNAL CREDENTIAL INTEGRATION TESTS
# =============================================================================

class TestExternalCredentialIntegration:
    """App wired to a mocked external authority."""

    def build_client(self, clock, handler):
        settings = make_settings(
            EXTERNAL_AUTH_ENABLED=True,
            EXTERNAL_AUTH_BASE_URL="https://authority.test",
            EXTERNAL_AUTH_CLIENT_ID="client-1",
            EXTERNAL_AUTH_API_KEY="key-1",
        )
        app = create_app(settings, clock=clock, external_transport=httpx.MockTransport(handler))
        return TestClient(app)

    def test_credential_embedded_when_authority_answers(self, clock):
        def handler(request):
            return httpx.Response(200, json={
                "token": "ext-credential-0123456789abcdef",
                "expires_at": to_epoch(clock() + timedelta(hours=1)),
            })

        with self.build_client(clock, handler) as client:
            create_account(client.app.state.auth_service.repository, clock())
            login = login_user(client)

            assert login["external_credential_embedded"] is True
            status = client.get(STATUS_URL, headers=auth_headers(login["access_token"]))
            assert status.status_code == 200
            assert status.json()["external_credential_embedded"] is True

    def test_login_survives_authority_outage_but_token_is_not_usable(self, clock):
        def handler(request):
            return httpx.Response(503)

        with self.build_client(clock, handler) as client:
            create_account(client.app.state.auth_service.repository, clock())
            login = login_user(client)

            assert login is not None
            assert login["external_credential_embedded"] is False

            status = client.get(STATUS_URL, headers=auth_headers(login["access_token"]))
            assert status.status_code == 401
            assert status.json()["error_code"] == "MISSING_EXTERNAL_CREDENTIAL"
