from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.core.config import get_settings
from app.core.errors import install_error_handlers
from app.core.middleware import install_request_context
from app.routers.ai import router as ai_router
from app.routers.auth import router as auth_router
from app.routers.cases import router as cases_router
from app.routers.clients import router as clients_router
from app.routers.email_sources import router as email_sources_router
from app.routers.emails import router as emails_router
from app.routers.health import router as health_router
from app.routers.me import router as me_router

ROUTERS = (
    health_router,
    auth_router,
    me_router,
    clients_router,
    cases_router,
    emails_router,
    email_sources_router,
    ai_router,
)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Legal Practice API", version=settings.VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    install_request_context(app, settings=settings)

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()
