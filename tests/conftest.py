import os
import sys
import tempfile
from pathlib import Path

# Point settings at a throwaway database and upload root before any marketplace import
_test_tmp_dir = tempfile.mkdtemp(prefix="marketplace_test_")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_tmp_dir}/test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("JWT_REFRESH_SECRET_KEY", "test-refresh-secret-do-not-use-in-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CLEANUP_JOB_ENABLED", "false")
os.environ.setdefault("UPLOAD_DIR", str(Path(_test_tmp_dir) / "uploads"))
os.environ.setdefault("MAILGUN_API_KEY", "")
os.environ.setdefault("SENDGRID_API_KEY", "")

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from marketplace.database import Base, SessionLocal, engine  # noqa: E402
from marketplace.main import app  # noqa: E402
from marketplace.models import Administrator, AdminRole  # noqa: E402
from marketplace.services.errors import DeliveryFailed  # noqa: E402
from marketplace.services.notifications import get_otp_delivery  # noqa: E402
from marketplace.services.object_store import LocalObjectStore, get_object_store  # noqa: E402

SUPER_ADMIN_EMAIL = "root@marketplace.io"
ADMIN_EMAIL = "ops@marketplace.io"
ADMIN_PASSWORD = "admin-pass-1"
# A legal password that happens to look like a bcrypt hash
HASH_SHAPED_PASSWORD = "$2b$12$" + "a" * 53


class FakeDelivery:
    """Records every OTP instead of sending it; flip ``fail`` to simulate a provider outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def deliver(self, channel, recipient, code, display_name=None, purpose="registration"):
        if self.fail:
            raise DeliveryFailed()
        self.sent.append({
            "channel": channel,
            "recipient": recipient,
            "code": code,
            "purpose": purpose,
            "display_name": display_name,
        })

    @property
    def last_code(self):
        return self.sent[-1]["code"] if self.sent else None


@pytest.fixture(autouse=True)
def reset_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def object_store(tmp_path):
    return LocalObjectStore(base_dir=tmp_path / "uploads", max_bytes=1024)


@pytest.fixture
def client(delivery, object_store):
    app.dependency_overrides[get_otp_delivery] = lambda: delivery
    app.dependency_overrides[get_object_store] = lambda: object_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _make_admin(db, email, role, password=ADMIN_PASSWORD, full_name="Test Admin"):
    admin = Administrator(full_name=full_name, email=email, password_hash=password, role=role, active=True)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def super_admin(db):
    return _make_admin(db, SUPER_ADMIN_EMAIL, AdminRole.super_admin, full_name="Root Admin")


@pytest.fixture
def plain_admin(db):
    return _make_admin(db, ADMIN_EMAIL, AdminRole.admin, full_name="Ops Admin")


def admin_headers(client, email, password=ADMIN_PASSWORD):
    response = client.post("/admin/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['accessToken']}"}


@pytest.fixture
def super_admin_headers(client, super_admin):
    return admin_headers(client, SUPER_ADMIN_EMAIL)


@pytest.fixture
def plain_admin_headers(client, plain_admin):
    return admin_headers(client, ADMIN_EMAIL)


def register_user(client, delivery, email="a@b.c", password="secret1", full_name="A B", phone=None):
    """Run request-otp + verify-otp for a complete end-user and return the response body's data."""
    payload = {"email": email, "fullName": full_name, "password": password, "termsAccepted": True}
    if phone:
        payload["phoneNumber"] = phone
    response = client.post("/auth/register/request-otp", json=payload)
    assert response.status_code == 200, response.text
    response = client.post("/auth/register/verify-otp", json={"email": email, "otp": delivery.last_code})
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def registered_user(client, delivery):
    return register_user(client, delivery)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
