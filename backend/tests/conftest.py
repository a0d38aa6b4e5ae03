import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core.config import Settings, get_settings
from app.db.base import Base
from app.main import app
from app.services.rate_limit import clear_rate_limiter

SUPER_ADMIN_EMAIL = "root@uni.edu"
CRON_SECRET = "cron-test-secret"


@pytest.fixture()
def test_settings():
    return Settings(
        environment="test",
        database_url="sqlite+pysqlite://",
        bootstrap_super_admin_emails=[SUPER_ADMIN_EMAIL],
        allowed_email_domains=[],
        cron_secret=CRON_SECRET,
        smtp_host=None,
        smtp_from_email=None,
    )


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory, test_settings):
    # resetting rate limiter state so earlier tests cannot trip a 429
    clear_rate_limiter()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_rate_limiter()


def register_user(client, *, name, email, password="password123"):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client, email, password="password123"):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def super_admin_token(client):
    register_user(client, name="Root Admin", email=SUPER_ADMIN_EMAIL)
    return login_user(client, SUPER_ADMIN_EMAIL)


@pytest.fixture()
def make_user(client, super_admin_token):
    """Register an account and promote it to ``role`` through the admin API."""

    def _make_user(email, role="student", name="Campus User"):
        user = register_user(client, name=name, email=email)
        if role != "student":
            response = client.patch(
                f"/api/admin/users/{user['id']}/role",
                json={"role": role},
                headers=auth_headers(super_admin_token),
            )
            assert response.status_code == 200, response.text
        return login_user(client, email)

    return _make_user
