from __future__ import annotations

import os
import tempfile
import uuid
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import pytest
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import Session

from alembic import command


def _make_admin_url(url: URL) -> URL:
    # "postgres" is present in the official image and works for admin tasks.
    return url.set(database="postgres")


def _make_test_db_name() -> str:
    return f"legal_test_{uuid.uuid4().hex}"


def _clear_caches() -> None:
    from app.core.config import get_settings
    from app.db.session import get_engine, get_sessionmaker
    from app.routers.ai import get_draft_limiter

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()
    get_draft_limiter.cache_clear()


def _upgrade_head() -> None:
    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    command.upgrade(Config(str(alembic_ini)), "head")


@pytest.fixture(scope="session", autouse=True)
def _test_database() -> None:
    # SQLite file by default; set TEST_DATABASE_URL to a local Postgres to run against it.
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("ALLOW_DEV_LOGIN", "true")
    os.environ.setdefault("COOKIE_SECURE", "false")
    os.environ.setdefault("RATE_LIMIT_REQUESTS_PER_MINUTE", "0")

    base_url = os.environ.get("TEST_DATABASE_URL")
    if not base_url:
        with tempfile.TemporaryDirectory() as tmp:
            os.environ["DATABASE_URL"] = f"sqlite:///{Path(tmp) / 'legal_test.db'}"
            _clear_caches()
            _upgrade_head()
            yield
            from app.db.session import get_engine

            with suppress(Exception):
                get_engine().dispose()
            _clear_caches()
        return

    url = make_url(base_url)
    if url.host not in {"localhost", "127.0.0.1", None}:
        raise RuntimeError(
            "Refusing to run tests against a non-local TEST_DATABASE_URL host. "
            "Point it at a local/dev Postgres instance."
        )

    db_name = _make_test_db_name()
    admin_engine = create_engine(
        _make_admin_url(url), isolation_level="AUTOCOMMIT", pool_pre_ping=True
    )
    with admin_engine.connect() as conn:
        conn.execute(text(f'CREATE DATABASE "{db_name}"'))

    os.environ["DATABASE_URL"] = url.set(database=db_name).render_as_string(hide_password=False)
    _clear_caches()
    _upgrade_head()

    yield

    from app.db.session import get_engine

    # Close pools to the test DB before dropping it.
    with suppress(Exception):
        get_engine().dispose()
    _clear_caches()

    with admin_engine.connect() as conn:
        conn.execute(
            text(
                """
                SELECT pg_terminate_backend(pid)
                FROM pg_stat_activity
                WHERE datname = :db_name AND pid <> pg_backend_pid();
                """
            ),
            {"db_name": db_name},
        )
        conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))

    admin_engine.dispose()


@dataclass
class LoggedIn:
    """A TestClient holding a dev session cookie plus its CSRF token."""

    client: TestClient
    csrf: str
    data: dict

    @property
    def firm_id(self) -> str:
        return self.data["firm"]["id"]

    @property
    def user_id(self) -> str:
        return self.data["user"]["id"]

    def get(self, url: str, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url: str, json: dict | None = None, **kwargs):
        return self.client.post(url, json=json, headers={"x-csrf-token": self.csrf}, **kwargs)

    def patch(self, url: str, json: dict | None = None, **kwargs):
        return self.client.patch(url, json=json, headers={"x-csrf-token": self.csrf}, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.client.delete(url, headers={"x-csrf-token": self.csrf}, **kwargs)


def dev_login(app, *, email: str, firm_name: str, role: str | None = None) -> LoggedIn:
    client = TestClient(app)
    res = client.get("/auth/csrf")
    assert res.status_code == 200
    body: dict = {"email": email, "firm_name": firm_name}
    if role is not None:
        body["role"] = role
    res = client.post(
        "/auth/dev/login", json=body, headers={"x-csrf-token": res.json()["csrf_token"]}
    )
    assert res.status_code == 200, res.text
    data = res.json()
    return LoggedIn(client=client, csrf=data["csrf_token"], data=data)


@pytest.fixture()
def app():
    from app.main import create_app

    return create_app()


@pytest.fixture()
def firm_name() -> str:
    return f"Firm {uuid.uuid4().hex[:10]}"


@pytest.fixture()
def login(app, firm_name):
    """Log a user into this test's firm: ``login("Paralegal")``."""

    def _login(role: str = "Partner", *, email: str | None = None, firm: str | None = None):
        return dev_login(
            app,
            email=email or f"{role.lower()}-{uuid.uuid4().hex[:8]}@lawfirm.test",
            firm_name=firm or firm_name,
            role=role,
        )

    return _login


@pytest.fixture()
def db_session() -> Session:
    from app.db.session import get_sessionmaker

    SessionLocal = get_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
