"""
Authentication, session and user management tests.
"""

import pytest

from conftest import PASSWORD, auth_headers, get_auth_token
from temple.services import auth_service
from temple.services.auth_service import PasswordValidationError, UserValidationError


class TestLogin:
    def test_login_returns_token_and_user(self, client, users):
        resp = client.post("/api/auth/login", json={"username": "treasurer", "password": PASSWORD})

        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["token"]) == 64
        assert data["user"]["role"] == "Treasurer"
        assert data["expires_at"].endswith("Z")
        assert "password_hash" not in data["user"]

    def test_login_by_email(self, client, users):
        resp = client.post("/api/auth/login", json={"email": "Viewer@Temple.local", "password": PASSWORD})
        assert resp.status_code == 200

    def test_wrong_password(self, client, users):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, users):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400

    def test_inactive_user_cannot_login(self, client, users):
        auth_service.update_user(users["Viewer"].id, is_active=False)
        resp = client.post("/api/auth/login", json={"username": "viewer", "password": PASSWORD})
        assert resp.status_code == 401

    def test_self_registration_disabled(self, client, users):
        resp = client.post("/api/auth/register", json={"username": "x"})
        assert resp.status_code == 403


class TestSession:
    def test_me(self, client, admin_headers):
        resp = client.get("/api/auth/me", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["username"] == "admin"

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401
        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 401

    def test_change_password_revokes_other_sessions(self, client, users):
        current = auth_headers(get_auth_token(client, "treasurer"))
        other = auth_headers(get_auth_token(client, "treasurer"))

        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "NewPassword456!"},
            headers=current,
        )

        assert resp.status_code == 200
        assert resp.get_json()["sessions_revoked"] == 1
        assert client.get("/api/auth/me", headers=current).status_code == 200
        assert client.get("/api/auth/me", headers=other).status_code == 401

        resp = client.post("/api/auth/login", json={"username": "treasurer", "password": "NewPassword456!"})
        assert resp.status_code == 200

    def test_change_password_requires_current(self, client, treasurer_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": "Nope123!x", "new_password": "NewPassword456!"},
            headers=treasurer_headers,
        )
        assert resp.status_code == 401

    def test_change_password_rejects_weak(self, client, treasurer_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "weak"},
            headers=treasurer_headers,
        )
        assert resp.status_code == 422


class TestUserManagement:
    def test_create_user(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "accountant",
            "email": "accountant@temple.local",
            "password": "Accounts#2024",
            "role": "Treasurer",
        }, headers=admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["role"] == "Treasurer"
        assert get_auth_token(client, "accountant", "Accounts#2024")

    def test_duplicate_username(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "viewer",
            "email": "other@temple.local",
            "password": "Accounts#2024",
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_bad_role(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "someone",
            "email": "someone@temple.local",
            "password": "Accounts#2024",
            "role": "Superuser",
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_weak_password(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "someone",
            "email": "someone@temple.local",
            "password": "password",
        }, headers=admin_headers)
        assert resp.status_code == 422

    def test_deactivate_revokes_sessions(self, client, admin_headers, users):
        viewer = auth_headers(get_auth_token(client, "viewer"))

        resp = client.delete(f"/api/users/{users['Viewer'].id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["user"]["is_active"] is False
        assert client.get("/api/auth/me", headers=viewer).status_code == 401

    def test_cannot_deactivate_self(self, client, admin_headers, users):
        resp = client.delete(f"/api/users/{users['Admin'].id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_change_role(self, client, admin_headers, users):
        resp = client.put(
            f"/api/users/{users['Viewer'].id}",
            json={"role": "Treasurer"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["role"] == "Treasurer"

    def test_unknown_user(self, client, admin_headers):
        assert client.get("/api/users/9999", headers=admin_headers).status_code == 404


class TestAuthService:
    @pytest.mark.parametrize(
        "password",
        ["Short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
    )
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_verify_password(self):
        hashed = auth_service.hash_password(PASSWORD, rounds=4)
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Other123!", hashed)
        assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")

    def test_invalid_email(self, db_session):
        with pytest.raises(UserValidationError):
            auth_service.create_user("x", "not-an-email", PASSWORD, bcrypt_rounds=4)
