"""Administrator login, management (super-admin only) and account moderation."""
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, HASH_SHAPED_PASSWORD, SUPER_ADMIN_EMAIL, admin_headers, bearer

from marketplace.models.account import Account
from marketplace.models.administrator import Administrator, AdminRole
from marketplace.models.audit_log import AuditLog
from marketplace.models.refresh_token import OwnerKind, RefreshToken
from marketplace.services.audit_log import CATEGORY_STATUS_CHANGE


def _create(client, headers, **overrides):
    payload = {"fullName": "New Admin", "email": "new@marketplace.io", "password": "12345678"}
    payload.update(overrides)
    return client.post("/admin/admins", json=payload, headers=headers)


class TestAdminSession:
    def test_login_and_me(self, client, super_admin):
        response = client.post("/admin/login", json={"email": SUPER_ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["admin"]["role"] == "super-admin"
        assert set(data["admin"]["permissions"]) == {
            "canManageUsers", "canManageProviders", "canManageSettings", "canViewReports",
        }

        me = client.get("/admin/me", headers=bearer(data["accessToken"]))
        assert me.status_code == 200
        assert me.json()["data"]["admin"]["email"] == SUPER_ADMIN_EMAIL

    def test_wrong_password(self, client, super_admin):
        response = client.post("/admin/login", json={"email": SUPER_ADMIN_EMAIL, "password": "wrong-pass"})
        assert response.status_code == 401
        assert response.json()["error"] == "InvalidCredentials"

    def test_deactivated_admin(self, client, plain_admin, db):
        plain_admin.active = False
        db.commit()
        response = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert response.status_code == 403
        assert response.json()["error"] == "AccountDeactivated"

    def test_refresh_and_logout(self, client, super_admin):
        data = client.post("/admin/login", json={"email": SUPER_ADMIN_EMAIL, "password": ADMIN_PASSWORD}).json()["data"]
        response = client.post("/admin/refresh-token", json={"refreshToken": data["refreshToken"]})
        assert response.status_code == 200
        rotated = response.json()["data"]

        response = client.post(
            "/admin/logout", json={"refreshToken": rotated["refreshToken"]}, headers=bearer(rotated["accessToken"])
        )
        assert response.status_code == 200
        assert client.post("/admin/refresh-token", json={"refreshToken": rotated["refreshToken"]}).status_code == 401

    def test_account_refresh_token_refused(self, client, registered_user):
        response = client.post("/admin/refresh-token", json={"refreshToken": registered_user["refreshToken"]})
        assert response.status_code == 401

    def test_admin_refresh_token_refused_by_account_gateway(self, client, super_admin):
        data = client.post("/admin/login", json={"email": SUPER_ADMIN_EMAIL, "password": ADMIN_PASSWORD}).json()["data"]
        assert client.post("/auth/refresh", json={"refreshToken": data["refreshToken"]}).status_code == 401

    def test_account_token_refused(self, client, registered_user):
        response = client.get("/admin/me", headers=bearer(registered_user["accessToken"]))
        assert response.status_code == 401


class TestAdminManagement:
    def test_create_admin(self, client, super_admin, super_admin_headers, db):
        response = _create(client, super_admin_headers)
        assert response.status_code == 201
        admin = response.json()["data"]["admin"]
        assert admin["role"] == "admin"
        assert admin["createdBy"] == super_admin.id
        assert "canManageSettings" not in admin["permissions"]
        stored = db.query(Administrator).filter(Administrator.email == "new@marketplace.io").one()
        assert stored.password_hash.startswith("$2")

    def test_password_boundaries(self, client, super_admin_headers):
        assert _create(client, super_admin_headers, password="1234567").status_code == 400
        assert _create(client, super_admin_headers, password="12345678").status_code == 201

    def test_invalid_role(self, client, super_admin_headers):
        response = _create(client, super_admin_headers, role="owner")
        assert response.status_code == 400
        assert "super-admin" in response.json()["message"]

    def test_duplicate_email(self, client, super_admin_headers):
        _create(client, super_admin_headers)
        response = _create(client, super_admin_headers, email="NEW@marketplace.io")
        assert response.status_code == 409
        assert response.json()["error"] == "Conflict"

    def test_plain_admin_cannot_manage_admins(self, client, plain_admin_headers):
        response = _create(client, plain_admin_headers)
        assert response.status_code == 403
        assert client.get("/admin/admins", headers=plain_admin_headers).status_code == 403

    def test_list_newest_first(self, client, super_admin_headers):
        _create(client, super_admin_headers, email="first@marketplace.io")
        _create(client, super_admin_headers, email="second@marketplace.io")
        response = client.get("/admin/admins", params={"page": 1, "limit": 2}, headers=super_admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert data["totalPages"] == 2
        assert data["currentPage"] == 1
        assert len(data["admins"]) == 2

    def test_get_unknown_admin(self, client, super_admin_headers):
        response = client.get("/admin/admins/does-not-exist", headers=super_admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_update_role_recomputes_permissions(self, client, super_admin_headers):
        admin_id = _create(client, super_admin_headers).json()["data"]["admin"]["id"]
        response = client.put(f"/admin/admins/{admin_id}", json={"role": "super-admin"}, headers=super_admin_headers)
        assert response.status_code == 200
        assert "canManageSettings" in response.json()["data"]["admin"]["permissions"]

    def test_update_password_is_hashed(self, client, super_admin_headers):
        admin_id = _create(client, super_admin_headers).json()["data"]["admin"]["id"]
        response = client.put(f"/admin/admins/{admin_id}", json={"password": "another-pass"}, headers=super_admin_headers)
        assert response.status_code == 200
        assert client.post(
            "/admin/login", json={"email": "new@marketplace.io", "password": "another-pass"}
        ).status_code == 200

    def test_hash_shaped_password_is_hashed(self, client, super_admin_headers, db):
        admin_id = _create(client, super_admin_headers, password=HASH_SHAPED_PASSWORD).json()["data"]["admin"]["id"]
        stored = db.query(Administrator).filter(Administrator.id == admin_id).one()
        assert stored.password_hash != HASH_SHAPED_PASSWORD
        login = {"email": "new@marketplace.io", "password": HASH_SHAPED_PASSWORD}
        assert client.post("/admin/login", json=login).status_code == 200

        other = "$2a$10$" + "b" * 53
        client.put(f"/admin/admins/{admin_id}", json={"password": other}, headers=super_admin_headers)
        assert client.post("/admin/login", json={**login, "password": other}).status_code == 200

    def test_update_email_conflict(self, client, super_admin_headers, plain_admin):
        admin_id = _create(client, super_admin_headers).json()["data"]["admin"]["id"]
        response = client.put(f"/admin/admins/{admin_id}", json={"email": ADMIN_EMAIL}, headers=super_admin_headers)
        assert response.status_code == 409

    def test_self_demotion_forbidden(self, client, super_admin, super_admin_headers):
        response = client.put(f"/admin/admins/{super_admin.id}", json={"role": "admin"}, headers=super_admin_headers)
        assert response.status_code == 403

    def test_self_deactivation_forbidden(self, client, super_admin, super_admin_headers):
        response = client.put(f"/admin/admins/{super_admin.id}", json={"isActive": False}, headers=super_admin_headers)
        assert response.status_code == 403
        response = client.put(f"/admin/admins/{super_admin.id}/toggle-status", headers=super_admin_headers)
        assert response.status_code == 403

    def test_self_delete_forbidden(self, client, super_admin, super_admin_headers):
        response = client.delete(f"/admin/admins/{super_admin.id}", headers=super_admin_headers)
        assert response.status_code == 403

    def test_toggle_status_revokes_sessions(self, client, plain_admin, super_admin_headers, db):
        headers = admin_headers(client, ADMIN_EMAIL)
        response = client.put(f"/admin/admins/{plain_admin.id}/toggle-status", headers=super_admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["admin"]["isActive"] is False

        assert client.get("/admin/me", headers=headers).status_code == 403
        live = db.query(RefreshToken).filter(
            RefreshToken.owner_kind == OwnerKind.administrator,
            RefreshToken.owner_id == plain_admin.id,
            RefreshToken.revoked.is_(False),
        )
        assert live.count() == 0
        assert db.query(AuditLog).filter(AuditLog.category == CATEGORY_STATUS_CHANGE).count() >= 1

    def test_delete_admin(self, client, plain_admin, super_admin_headers, db):
        response = client.delete(f"/admin/admins/{plain_admin.id}", headers=super_admin_headers)
        assert response.status_code == 200
        db.expire_all()
        assert db.query(Administrator).filter(Administrator.role == AdminRole.admin).count() == 0


class TestAccountModeration:
    def _account_id(self, db):
        return db.query(Account).one().id

    def test_get_user(self, client, registered_user, plain_admin_headers, db):
        response = client.get(f"/admin/users/{self._account_id(db)}", headers=plain_admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "a@b.c"

    def test_toggle_user_status(self, client, registered_user, plain_admin_headers, db):
        account_id = self._account_id(db)
        response = client.put(f"/admin/users/{account_id}/toggle-status", headers=plain_admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["user"]["isActive"] is False

        assert client.get("/auth/me", headers=bearer(registered_user["accessToken"])).status_code == 403
        assert client.post("/auth/refresh", json={"refreshToken": registered_user["refreshToken"]}).status_code == 401

        response = client.put(f"/admin/users/{account_id}/toggle-status", headers=plain_admin_headers)
        assert response.json()["data"]["user"]["isActive"] is True

    def test_requires_permission(self, client, registered_user, plain_admin, super_admin_headers, db):
        plain_admin.permissions = ["canViewReports"]
        db.commit()
        headers = admin_headers(client, ADMIN_EMAIL)
        assert client.get(f"/admin/users/{self._account_id(db)}", headers=headers).status_code == 403
        assert client.get(f"/admin/users/{self._account_id(db)}", headers=super_admin_headers).status_code == 200

    def test_unknown_user(self, client, plain_admin_headers):
        assert client.get("/admin/users/nope", headers=plain_admin_headers).status_code == 404
