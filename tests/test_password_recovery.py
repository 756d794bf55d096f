"""Password reset via OTP and reset token, and authenticated password change."""
from datetime import timedelta

import pytest

from conftest import HASH_SHAPED_PASSWORD, bearer

from marketplace.config import get_settings
from marketplace.models.account import Account
from marketplace.models.refresh_token import RefreshToken
from marketplace.services.security import fingerprint, utcnow, verify_password

GENERIC_MESSAGE = "If an account exists with this email or phone number, an OTP has been sent."


def _forgot(client, **contact):
    return client.post("/auth/forgot-password", json=contact)


def _reset_token(client, delivery, email="a@b.c"):
    _forgot(client, email=email)
    response = client.post("/auth/verify-otp", json={"email": email, "otp": delivery.last_code})
    assert response.status_code == 200, response.text
    return response.json()["data"]["resetToken"]


class TestRequestReset:
    def test_known_account_gets_otp(self, client, delivery, registered_user, db):
        response = _forgot(client, email="a@b.c")
        assert response.status_code == 200
        assert response.json()["message"] == GENERIC_MESSAGE
        assert delivery.sent[-1]["purpose"] == "passwordReset"
        assert delivery.sent[-1]["display_name"] == "A B"
        account = db.query(Account).one()
        assert account.reset_otp_hash == fingerprint(delivery.last_code)

    def test_unknown_account_is_silent(self, client, delivery, db):
        response = _forgot(client, email="unknown@x.y")
        assert response.status_code == 200
        assert response.json()["message"] == GENERIC_MESSAGE
        assert delivery.sent == []
        assert db.query(Account).count() == 0

    def test_repeat_request_keeps_only_latest_otp(self, client, delivery, registered_user, db):
        first = _forgot(client, email="a@b.c")
        first_code = delivery.last_code
        second = _forgot(client, email="a@b.c")
        assert first.json() == second.json()
        account = db.query(Account).one()
        assert account.reset_otp_hash == fingerprint(delivery.last_code)
        if first_code != delivery.last_code:
            response = client.post("/auth/verify-otp", json={"email": "a@b.c", "otp": first_code})
            assert response.json()["error"] == "OtpInvalid"

    def test_deactivated_account_is_signalled(self, client, delivery, registered_user, db):
        db.query(Account).one().active = False
        db.commit()
        response = _forgot(client, email="a@b.c")
        assert response.status_code == 403
        assert response.json()["error"] == "AccountDeactivated"

    def test_delivery_failure_clears_otp(self, client, delivery, registered_user, db):
        delivery.fail = True
        response = _forgot(client, email="a@b.c")
        assert response.status_code == 500
        assert db.query(Account).one().reset_otp_hash is None

    def test_provider_variant_ignores_users(self, client, delivery, registered_user):
        sent_before = len(delivery.sent)
        response = client.post("/providers/forgot-password", json={"email": "a@b.c"})
        assert response.status_code == 200
        assert len(delivery.sent) == sent_before


class TestVerifyReset:
    def test_issues_one_shot_reset_token(self, client, delivery, registered_user, db):
        token = _reset_token(client, delivery)
        assert len(token) == 64
        account = db.query(Account).one()
        assert account.reset_token_hash == fingerprint(token)
        assert account.reset_otp_hash is None

    def test_wrong_otp(self, client, delivery, registered_user):
        _forgot(client, email="a@b.c")
        wrong = "000000" if delivery.last_code != "000000" else "111111"
        response = client.post("/auth/verify-otp", json={"email": "a@b.c", "otp": wrong})
        assert response.status_code == 400
        assert response.json()["error"] == "OtpInvalid"

    def test_expired_otp(self, client, delivery, registered_user, db):
        _forgot(client, email="a@b.c")
        account = db.query(Account).one()
        account.reset_otp_expires_at = utcnow() - timedelta(seconds=1)
        db.commit()
        response = client.post("/auth/verify-otp", json={"email": "a@b.c", "otp": delivery.last_code})
        assert response.status_code == 400
        assert response.json()["error"] == "OtpExpired"

    def test_otp_shape(self, client, registered_user):
        response = client.post("/auth/verify-otp", json={"email": "a@b.c", "otp": "12345"})
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidInput"


class TestApplyReset:
    def test_sets_new_password(self, client, delivery, registered_user, db):
        token = _reset_token(client, delivery)
        response = client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass"})
        assert response.status_code == 200

        account = db.query(Account).one()
        assert verify_password("newpass", account.password_hash)
        assert account.reset_token_hash is None
        assert client.post("/auth/login", json={"email": "a@b.c", "password": "newpass"}).status_code == 200
        assert client.post("/auth/login", json={"email": "a@b.c", "password": "secret1"}).status_code == 401

    def test_hash_shaped_password_is_hashed(self, client, delivery, registered_user, db):
        token = _reset_token(client, delivery)
        response = client.post("/auth/reset-password", json={"resetToken": token, "newPassword": HASH_SHAPED_PASSWORD})
        assert response.status_code == 200
        assert db.query(Account).one().password_hash != HASH_SHAPED_PASSWORD
        login = client.post("/auth/login", json={"email": "a@b.c", "password": HASH_SHAPED_PASSWORD})
        assert login.status_code == 200

    def test_token_is_one_shot(self, client, delivery, registered_user):
        token = _reset_token(client, delivery)
        client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass"})
        response = client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass2"})
        assert response.status_code == 401
        assert response.json()["error"] == "InvalidToken"

    def test_expired_token(self, client, delivery, registered_user, db):
        token = _reset_token(client, delivery)
        account = db.query(Account).one()
        account.reset_token_expires_at = utcnow() - timedelta(seconds=1)
        db.commit()
        response = client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass"})
        assert response.status_code == 401

    def test_short_password(self, client, delivery, registered_user):
        token = _reset_token(client, delivery)
        response = client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "12345"})
        assert response.status_code == 400

    def test_sessions_survive_by_default(self, client, delivery, registered_user):
        token = _reset_token(client, delivery)
        client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass"})
        response = client.post("/auth/refresh", json={"refreshToken": registered_user["refreshToken"]})
        assert response.status_code == 200

    def test_sessions_revoked_when_configured(self, client, delivery, registered_user, db, monkeypatch):
        monkeypatch.setattr(get_settings(), "revoke_sessions_on_password_change", True)
        token = _reset_token(client, delivery)
        client.post("/auth/reset-password", json={"resetToken": token, "newPassword": "newpass"})
        assert db.query(RefreshToken).filter(RefreshToken.revoked.is_(False)).count() == 0


class TestChangePassword:
    def _change(self, client, registered_user, current, new):
        return client.post(
            "/auth/change-password",
            json={"currentPassword": current, "newPassword": new},
            headers=bearer(registered_user["accessToken"]),
        )

    def test_changes_password(self, client, registered_user, db):
        assert self._change(client, registered_user, "secret1", "secret2").status_code == 200
        assert verify_password("secret2", db.query(Account).one().password_hash)

    def test_hash_shaped_password_is_hashed(self, client, registered_user, db):
        assert self._change(client, registered_user, "secret1", HASH_SHAPED_PASSWORD).status_code == 200
        stored = db.query(Account).one().password_hash
        assert stored != HASH_SHAPED_PASSWORD
        assert verify_password(HASH_SHAPED_PASSWORD, stored)

    @pytest.mark.parametrize(
        "current,new",
        [("wrong-password", "secret2"), ("secret1", "secret1"), ("secret1", "12345")],
    )
    def test_rejections(self, client, registered_user, current, new):
        response = self._change(client, registered_user, current, new)
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidInput"

    def test_requires_authentication(self, client):
        response = client.post("/auth/change-password", json={"currentPassword": "a", "newPassword": "secret2"})
        assert response.status_code == 401
