from __future__ import annotations

from prometheus_client import Counter, Histogram

_HTTP_REQUESTS_TOTAL = Counter(
    "legal_http_requests_total",
    "Total HTTP requests handled by the API.",
    labelnames=("method", "path", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "legal_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "path"),
)
_HTTP_RATE_LIMITED_TOTAL = Counter(
    "legal_http_rate_limited_total",
    "Total HTTP requests blocked by rate limiting.",
    labelnames=("method", "path"),
)
_EMAIL_CLASSIFICATIONS_TOTAL = Counter(
    "legal_email_classifications_total",
    "Email classification outcomes.",
    labelnames=("source", "state", "match_type"),
)
_EMAIL_CLASSIFICATION_ERRORS_TOTAL = Counter(
    "legal_email_classification_errors_total",
    "Emails whose classification raised and was routed to a fallback state.",
    labelnames=("source",),
)
_BG_JOBS_TOTAL = Counter(
    "legal_bg_jobs_total",
    "Background jobs processed by the worker.",
    labelnames=("type", "outcome"),
)
_AI_REQUESTS_TOTAL = Counter(
    "legal_ai_requests_total",
    "Calls made to the external AI service.",
    labelnames=("operation", "outcome"),
)


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    safe_path = path or "unknown"
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        path=safe_path,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, path=safe_path).observe(
        max(0.0, duration_ms / 1000.0)
    )
    if rate_limited:
        _HTTP_RATE_LIMITED_TOTAL.labels(method=safe_method, path=safe_path).inc()


def observe_classification(*, source: str, state: str, match_type: str | None) -> None:
    _EMAIL_CLASSIFICATIONS_TOTAL.labels(
        source=source, state=state, match_type=match_type or "none"
    ).inc()


def observe_classification_error(*, source: str) -> None:
    _EMAIL_CLASSIFICATION_ERRORS_TOTAL.labels(source=source).inc()


def observe_job(*, job_type: str, outcome: str) -> None:
    _BG_JOBS_TOTAL.labels(type=job_type, outcome=outcome).inc()


def observe_ai_request(*, operation: str, outcome: str) -> None:
    _AI_REQUESTS_TOTAL.labels(operation=operation, outcome=outcome).inc()
