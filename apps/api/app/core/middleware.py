from __future__ import annotations

import logging
import threading
import time
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from app.core.config import Settings
from app.core.logging import log_json
from app.core.metrics import observe_http_request
from app.core.security import new_random_token

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("legal.api")


@dataclass
class RateLimiter:
    """Sliding window per key; used for the per-IP HTTP limit."""

    max_requests: int
    window_seconds: int = 60
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _buckets: dict[str, deque[float]] = field(default_factory=dict)

    def allow(self, key: str, *, now_ts: float) -> bool:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = deque()
                self._buckets[key] = bucket

            cutoff = now_ts - float(self.window_seconds)
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self.max_requests:
                return False

            bucket.append(now_ts)
            return True


@dataclass
class FixedWindowLimiter:
    """Counter per key that resets once the window has elapsed.

    Lives in process memory only; limits are per API instance.
    """

    max_requests: int
    window_seconds: int = 3600
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _windows: dict[str, tuple[float, int]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._windows)

    def allow(self, key: str, *, now_ts: float) -> bool:
        with self._lock:
            self._prune(now_ts)
            reset_at, count = self._windows.get(key, (0.0, 0))
            if now_ts >= reset_at:
                self._windows[key] = (now_ts + float(self.window_seconds), 1)
                return True
            if count >= self.max_requests:
                return False
            self._windows[key] = (reset_at, count + 1)
            return True

    def release(self, key: str) -> None:
        """Hand back one request of the current window."""
        with self._lock:
            window = self._windows.get(key)
            if window is not None and window[1] > 0:
                self._windows[key] = (window[0], window[1] - 1)

    def _prune(self, now_ts: float) -> None:
        expired = [k for k, (reset_at, _) in self._windows.items() if now_ts >= reset_at]
        for k in expired:
            del self._windows[k]

    def retry_after(self, key: str, *, now_ts: float) -> int:
        with self._lock:
            reset_at, _ = self._windows.get(key, (now_ts, 0))
        return max(0, int(reset_at - now_ts))


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:128]
    return new_random_token(nbytes=18)


def apply_security_headers(response: Response, *, settings: Settings) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "same-origin")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)


def rate_limit_key(request: Request) -> str:
    forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        return forwarded_for.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_response(*, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded", "code": "RATE_LIMITED"},
        headers={"Retry-After": str(retry_after)},
    )


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    log_json(
        logger,
        logging.INFO,
        "http.request.completed",
        request_id=request_id,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        rate_limited=rate_limited,
    )


def now_ts() -> float:
    return time.time()


def route_template(request: Request) -> str:
    # "/cases/{case_id}" rather than the raw path, so labels stay bounded.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def install_request_context(app: FastAPI, *, settings: Settings) -> None:
    """Request id, per-IP rate limit, security headers, access log and HTTP metrics."""
    limiter = (
        RateLimiter(max_requests=settings.RATE_LIMIT_REQUESTS_PER_MINUTE)
        if settings.RATE_LIMIT_REQUESTS_PER_MINUTE > 0
        else None
    )
    # Probes and scrapes are never throttled.
    exempt = {"/healthz", "/readyz", settings.PROMETHEUS_METRICS_PATH}

    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        started = now_ts()
        blocked = False
        status_code = 500
        try:
            if limiter is not None and request.url.path not in exempt:
                blocked = not limiter.allow(rate_limit_key(request), now_ts=started)
            if blocked:
                response = rate_limit_response(retry_after=limiter.window_seconds)
            else:
                response = await call_next(request)
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response, settings=settings)
            return response
        finally:
            duration_ms = int((now_ts() - started) * 1000)
            log_request_completion(
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=duration_ms,
                rate_limited=blocked,
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=request.method,
                    path=route_template(request),
                    status_code=status_code,
                    duration_ms=duration_ms,
                    rate_limited=blocked,
                )
            request_id_ctx.reset(token)
