from __future__ import annotations

from collections.abc import Generator

import httpx

from app.core.config import get_settings


def get_ai_http_client() -> Generator[httpx.Client, None, None]:
    # One place for AI service transport settings so tests can override the dependency.
    settings = get_settings()
    headers = {"Content-Type": "application/json"}
    if settings.AI_SERVICE_API_KEY:
        headers["Authorization"] = f"Bearer {settings.AI_SERVICE_API_KEY}"
    with httpx.Client(
        base_url=settings.AI_SERVICE_URL,
        headers=headers,
        timeout=settings.AI_SERVICE_TIMEOUT_SECONDS,
    ) as client:
        yield client
