# tests/conftest.py
import os
import tempfile
import uuid

# Configuration has to be in place before the services are imported.
_DB_DIR = tempfile.mkdtemp(prefix="task-portal-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/auth.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["AUTH_SERVICE_URL"] = "http://auth.internal"
os.environ["FRONTEND_URL"] = "http://frontend.internal"

import pytest
from fastapi.testclient import TestClient

from auth_service import main as auth_main
from auth_service.db import SessionLocal
from auth_service.models import Session, User
from auth_service.verification import InMemoryVerificationCodeStore

TEST_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def clean_tables():
    """Empties the auth tables after every test."""
    yield
    db = SessionLocal()
    try:
        db.query(Session).delete()
        db.query(User).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def verification_store():
    """Fresh code store attached to the auth app for the duration of the test."""
    store = InMemoryVerificationCodeStore()
    previous = auth_main.app.state.verification_store
    auth_main.app.state.verification_store = store
    yield store
    auth_main.app.state.verification_store = previous


@pytest.fixture
def auth_client(verification_store):
    return TestClient(auth_main.app)


@pytest.fixture
def new_account():
    """Unique credentials for a user that does not exist yet."""
    suffix = uuid.uuid4().hex[:8]
    return {
        "email": f"user_{suffix}@example.com",
        "username": f"user_{suffix}",
        "password": TEST_PASSWORD,
    }


@pytest.fixture
def registered_user(auth_client, new_account):
    """
    Runs the full signup flow:
    1. Requests a verification code.
    2. Verifies it.
    3. Registers the account.
    The client keeps the session cookie set by the registration.
    """
    email = new_account["email"]
    r_send = auth_client.post("/api/auth/send-verification", json={"email": email})
    assert r_send.status_code == 200, r_send.text

    r_verify = auth_client.post("/api/auth/verify-code", json={"email": email, "code": r_send.json()["code"]})
    assert r_verify.status_code == 200, r_verify.text

    r_register = auth_client.post("/api/auth/register", json={**new_account, "email_verified": True})
    assert r_register.status_code == 201, r_register.text

    return {**new_account, "id": r_register.json()["user"]["id"]}
