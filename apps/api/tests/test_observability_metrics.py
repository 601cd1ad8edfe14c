from __future__ import annotations

from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.main import create_app


def test_metrics_endpoint_exposes_http_metrics() -> None:
    app = create_app()
    client = TestClient(app)

    assert client.get("/healthz").status_code == 200
    assert client.get("/readyz").status_code == 200

    res = client.get("/metrics")
    assert res.status_code == 200
    assert "text/plain" in (res.headers.get("content-type") or "")

    body = res.text
    assert "legal_http_requests_total" in body
    assert "legal_http_request_duration_seconds" in body
    assert 'path="/healthz"' in body


def test_metrics_label_routes_by_template(login) -> None:
    partner = login("Partner")
    missing = "00000000-0000-0000-0000-000000000000"
    assert partner.get(f"/cases/{missing}").status_code == 404

    body = partner.get("/metrics").text
    assert 'path="/cases/{case_id}"' in body
    assert missing not in body


def test_classification_counter_is_exported(login) -> None:
    partner = login("Partner")
    res = partner.post("/emails", json={"from_address": "stranger@nowhere.test", "subject": "Hi"})
    assert res.status_code == 201

    body = partner.get("/metrics").text
    assert "legal_email_classifications_total" in body
    assert 'source="ingest"' in body


def test_metrics_endpoint_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_PROMETHEUS_METRICS", "false")
    get_settings.cache_clear()
    try:
        app = create_app()
        client = TestClient(app)
        assert client.get("/metrics").status_code == 404
    finally:
        get_settings.cache_clear()
