"""
Authorization tests for POSDesk.

Verifies:
- Unauthenticated requests return 401
- Users without return permissions are denied (403) and the denial is audited
- Login, me and logout round-trip
- Health endpoint is public
"""

import pytest

from posdesk.models import SecurityEvent
from posdesk.services import permission_service

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


PROTECTED_ROUTES = [
    ("GET", "/api/returns/sales/search"),
    ("GET", "/api/returns/sales/1"),
    ("GET", "/api/returns/sales/1/returns"),
    ("POST", "/api/returns/"),
    ("GET", "/api/returns/1"),
    ("GET", "/api/returns/options"),
    ("GET", "/api/auth/me"),
]


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a valid token."""

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    def test_rejects_unknown_token(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_rejects_non_bearer_scheme(self, client, db_session):
        resp = client.get("/api/returns/options", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401


# =============================================================================
# MISSING PERMISSIONS - 403
# =============================================================================


class TestPermissionDenied:

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES[:-1])
    def test_roleless_user_denied(self, client, roleless_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=roleless_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Permission denied"

    def test_denial_is_recorded(self, client, roleless_headers, roleless_user, db_session):
        client.get("/api/returns/options", headers=roleless_headers)

        event = db_session.query(SecurityEvent).filter_by(
            user_id=roleless_user.id,
            event_type="PERMISSION_DENIED",
        ).one()
        assert event.action == "PROCESS_RETURN"
        assert event.resource == "/api/returns/options"
        assert event.success is False


# =============================================================================
# ROLE GRANTS
# =============================================================================


class TestRoleGrants:

    def test_cashier_cannot_see_contact_details(self, cashier_user):
        assert permission_service.user_has_permission(cashier_user.id, "PROCESS_RETURN")
        assert permission_service.user_has_permission(cashier_user.id, "VIEW_RETURNS")
        assert not permission_service.user_has_permission(cashier_user.id, "VIEW_CUSTOMER_CONTACT")

    def test_manager_can_see_contact_details(self, manager_user):
        assert permission_service.user_has_permission(manager_user.id, "VIEW_CUSTOMER_CONTACT")

    def test_admin_has_everything(self, admin_user):
        permissions = permission_service.get_user_permissions(admin_user.id)
        assert permissions == {"PROCESS_RETURN", "VIEW_RETURNS", "VIEW_CUSTOMER_CONTACT"}

    def test_roleless_user_has_nothing(self, roleless_user):
        assert permission_service.get_user_permissions(roleless_user.id) == set()

    def test_role_names(self, admin_user):
        assert permission_service.get_user_role_names(admin_user.id) == ["admin"]


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================


class TestSessionLifecycle:

    def test_login_returns_token_and_permissions(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": TEST_PASSWORD})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["token"]
        assert data["user"]["username"] == "cashier"
        assert "PROCESS_RETURN" in data["permissions"]
        assert "password_hash" not in data["user"]

    def test_login_by_email(self, client, cashier_user):
        token = get_auth_token(client, cashier_user.email)
        assert token

    def test_bad_password_rejected_and_audited(self, client, cashier_user, db_session):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Wrong123!"})

        assert resp.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_missing_credentials(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "cashier"})
        assert resp.status_code == 400

    def test_me_then_logout(self, client, manager_user):
        headers = auth_headers(get_auth_token(client, "manager"))

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert "VIEW_CUSTOMER_CONTACT" in me.get_json()["permissions"]

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
        assert client.post("/api/auth/logout", headers=headers).status_code == 401

    def test_deactivated_user_token_rejected(self, client, cashier_user, db_session):
        headers = auth_headers(get_auth_token(client, "cashier"))

        cashier_user.is_active = False
        db_session.commit()

        assert client.get("/api/returns/options", headers=headers).status_code == 401


# =============================================================================
# PUBLIC ENDPOINTS - NO AUTH REQUIRED
# =============================================================================


class TestPublicEndpoints:

    def test_health_degraded_before_init(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"

    def test_health_after_init(self, client, setup_roles):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_cors_header_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_no_cors_header_for_other_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
