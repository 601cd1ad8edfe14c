from __future__ import annotations

from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.main import create_app


def test_healthz_ok() -> None:
    app = create_app()
    client = TestClient(app)
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_readyz_checks_database() -> None:
    client = TestClient(create_app())
    res = client.get("/readyz")
    assert res.status_code == 200
    assert res.json() == {"status": "ready", "database": "ok"}


def test_responses_carry_request_id_and_security_headers() -> None:
    client = TestClient(create_app())
    res = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["x-content-type-options"] == "nosniff"
    assert res.headers["x-frame-options"] == "DENY"


def test_per_ip_rate_limit_spares_probes(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "2")
    get_settings.cache_clear()
    try:
        client = TestClient(create_app())
        assert client.get("/me").status_code == 401
        assert client.get("/me").status_code == 401

        blocked = client.get("/me")
        assert blocked.status_code == 429
        assert blocked.json()["code"] == "RATE_LIMITED"
        assert blocked.headers["retry-after"] == "60"

        for _ in range(3):
            assert client.get("/healthz").status_code == 200
    finally:
        get_settings.cache_clear()
