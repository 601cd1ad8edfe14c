from __future__ import annotations

import json

import httpx
import pytest

from app.core.config import get_settings
from app.core.http import get_ai_http_client
from app.core.middleware import FixedWindowLimiter
from app.routers.ai import get_draft_limiter


@pytest.fixture()
def ai_calls(app):
    """Route the AI proxy to an in-memory upstream; yields the recorded requests."""
    calls: list[tuple[str, dict]] = []
    replies: dict[str, httpx.Response] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        calls.append((request.url.path, body))
        if request.url.path in replies:
            return replies[request.url.path]
        return httpx.Response(200, json={"ok": True, "echo": body})

    def override():
        with httpx.Client(transport=httpx.MockTransport(handler), base_url="http://ai.test") as c:
            yield c

    app.dependency_overrides[get_ai_http_client] = override
    get_draft_limiter.cache_clear()
    try:
        yield calls, replies
    finally:
        app.dependency_overrides.pop(get_ai_http_client, None)
        get_draft_limiter.cache_clear()


def test_parse_task_forwards_firm_and_user(login, ai_calls) -> None:
    calls, _ = ai_calls
    partner = login("Partner")

    res = partner.post("/ai/parse-task", json={"text": "Call the notary on Monday"})
    assert res.status_code == 200
    assert res.json()["ok"] is True

    path, body = calls[-1]
    assert path == "/api/tasks/parse"
    assert body["text"] == "Call the notary on Monday"
    assert body["firm_id"] == partner.firm_id
    assert body["user_id"] == partner.user_id


def test_every_operation_hits_its_upstream_path(login, ai_calls) -> None:
    calls, _ = ai_calls
    partner = login("Partner")

    assert partner.post(
        "/ai/suggest-clauses", json={"document_text": "Art. 1", "cursor_context": "liability"}
    ).status_code == 200
    assert partner.post(
        "/ai/compare-versions", json={"previous_text": "a", "current_text": "b"}
    ).status_code == 200
    assert partner.post(
        "/ai/research-jurisprudence", json={"query": "clauza penala", "max_results": 5}
    ).status_code == 200

    assert [path for path, _ in calls] == [
        "/api/clauses/suggest",
        "/api/documents/semantic-diff",
        "/api/research/jurisprudence",
    ]
    assert calls[-1][1]["max_results"] == 5


def test_upstream_failures_surface_as_503(login, ai_calls) -> None:
    _, replies = ai_calls
    partner = login("Partner")

    replies["/api/tasks/parse"] = httpx.Response(500, json={"error": "model crashed"})
    res = partner.post("/ai/parse-task", json={"text": "x"})
    assert res.status_code == 503
    assert res.json() == {"detail": "AI service unavailable", "code": "SERVICE_UNAVAILABLE"}

    replies["/api/clauses/suggest"] = httpx.Response(200, text="<html>gateway</html>")
    res = partner.post("/ai/suggest-clauses", json={"document_text": "x"})
    assert res.status_code == 503
    assert "model crashed" not in res.text


def test_draft_document_sends_case_context_and_audits(login, ai_calls, db_session) -> None:
    calls, _ = ai_calls
    partner = login("Partner")
    paralegal = login("Paralegal")
    case = partner.post(
        "/cases", json={"title": "Lease", "reference_numbers": ["12/3/2026"]}
    ).json()

    res = partner.post(
        "/ai/draft-document",
        json={"document_type": "notice", "instructions": "Terminate lease", "case_id": case["id"]},
    )
    assert res.status_code == 200
    assert res.headers["cache-control"] == "no-store"

    _, body = calls[-1]
    assert body["case_context"]["case_number"] == case["case_number"]
    assert body["case_context"]["reference_numbers"] == ["12/3/2026"]

    # Case context follows the same visibility rules as the case itself.
    denied = paralegal.post(
        "/ai/draft-document",
        json={"document_type": "notice", "instructions": "x", "case_id": case["id"]},
    )
    assert denied.status_code == 403
    assert len(calls) == 1


def test_draft_document_is_rate_limited_per_user(login, ai_calls, monkeypatch) -> None:
    monkeypatch.setenv("AI_GENERATION_LIMIT_PER_HOUR", "2")
    get_settings.cache_clear()
    get_draft_limiter.cache_clear()
    try:
        partner = login("Partner")
        associate = login("Associate")
        payload = {"document_type": "memo", "instructions": "Summarize"}

        assert partner.post("/ai/draft-document", json=payload).status_code == 200
        assert partner.post("/ai/draft-document", json=payload).status_code == 200

        res = partner.post("/ai/draft-document", json=payload)
        assert res.status_code == 429
        assert res.json()["code"] == "RATE_LIMITED"
        assert 0 < int(res.headers["retry-after"]) <= 3600

        # Other users have their own window.
        assert associate.post("/ai/draft-document", json=payload).status_code == 200
    finally:
        get_settings.cache_clear()


def test_rejected_and_failed_drafts_do_not_spend_quota(login, ai_calls, monkeypatch) -> None:
    _, replies = ai_calls
    monkeypatch.setenv("AI_GENERATION_LIMIT_PER_HOUR", "1")
    get_settings.cache_clear()
    get_draft_limiter.cache_clear()
    try:
        partner = login("Partner")
        paralegal = login("Paralegal")
        hidden = partner.post("/cases", json={"title": "Sealed"}).json()["id"]
        payload = {"document_type": "memo", "instructions": "Summarize"}

        denied = paralegal.post("/ai/draft-document", json={**payload, "case_id": hidden})
        assert denied.status_code == 403
        assert paralegal.post("/ai/draft-document", json=payload).status_code == 200

        replies["/api/documents/draft"] = httpx.Response(502, json={"error": "overloaded"})
        assert partner.post("/ai/draft-document", json=payload).status_code == 503
        del replies["/api/documents/draft"]
        assert partner.post("/ai/draft-document", json=payload).status_code == 200
        assert partner.post("/ai/draft-document", json=payload).status_code == 429
    finally:
        get_settings.cache_clear()


def test_draft_limiter_forgets_expired_windows() -> None:
    limiter = FixedWindowLimiter(max_requests=1, window_seconds=60)
    assert limiter.allow("user-a", now_ts=0.0)
    assert limiter.allow("user-b", now_ts=10.0)
    assert not limiter.allow("user-a", now_ts=30.0)
    assert len(limiter) == 2

    assert limiter.allow("user-c", now_ts=75.0)
    assert len(limiter) == 1

    limiter.release("user-c")
    assert limiter.allow("user-c", now_ts=80.0)
