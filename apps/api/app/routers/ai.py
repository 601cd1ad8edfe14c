from __future__ import annotations

from functools import lru_cache

import httpx
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.deps import FirmContext, require_csrf_header, require_firm
from app.core.http import get_ai_http_client
from app.core.middleware import FixedWindowLimiter, now_ts
from app.db.session import get_session
from app.schemas.ai import (
    CompareVersionsRequest,
    DraftDocumentRequest,
    ParseTaskRequest,
    ResearchRequest,
    SuggestClausesRequest,
)
from app.services.ai_client import AIServiceClient, case_context
from app.services.audit import log_event
from app.services.visibility import ensure_case_access

router = APIRouter(prefix="/ai", tags=["ai"], dependencies=[Depends(require_csrf_header)])


@lru_cache(maxsize=1)
def get_draft_limiter() -> FixedWindowLimiter:
    return FixedWindowLimiter(
        max_requests=get_settings().AI_GENERATION_LIMIT_PER_HOUR, window_seconds=3600
    )


def get_ai_client(
    ctx: FirmContext = Depends(require_firm),
    http: httpx.Client = Depends(get_ai_http_client),
) -> AIServiceClient:
    return AIServiceClient(http=http, firm_id=ctx.firm_id, user_id=ctx.user_id)


@router.post("/parse-task")
def ai_parse_task(
    payload: ParseTaskRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
    client: AIServiceClient = Depends(get_ai_client),
) -> dict:
    if payload.case_id is not None:
        ensure_case_access(session=session, ctx=ctx, case_id=payload.case_id)
    return client.parse_task(text=payload.text, case_id=payload.case_id)


@router.post("/draft-document")
def ai_draft_document(
    payload: DraftDocumentRequest,
    response: Response,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
    client: AIServiceClient = Depends(get_ai_client),
) -> dict:
    context = None
    if payload.case_id is not None:
        context = case_context(ensure_case_access(session=session, ctx=ctx, case_id=payload.case_id))

    limiter = get_draft_limiter()
    key = str(ctx.user_id)
    ts = now_ts()
    if not limiter.allow(key, now_ts=ts):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Document generation limit reached",
            headers={"Retry-After": str(limiter.retry_after(key, now_ts=ts))},
        )

    # Only completed drafts count against the quota.
    try:
        result = client.draft_document(
            document_type=payload.document_type,
            instructions=payload.instructions,
            case_context=context,
        )
    except HTTPException:
        limiter.release(key)
        raise
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="ai.document_drafted",
        event_data={
            "document_type": payload.document_type,
            "case_id": str(payload.case_id) if payload.case_id else None,
        },
    )
    session.commit()
    response.headers["Cache-Control"] = "no-store"
    return result


@router.post("/suggest-clauses")
def ai_suggest_clauses(
    payload: SuggestClausesRequest, client: AIServiceClient = Depends(get_ai_client)
) -> dict:
    return client.suggest_clauses(
        document_text=payload.document_text, cursor_context=payload.cursor_context
    )


@router.post("/compare-versions")
def ai_compare_versions(
    payload: CompareVersionsRequest, client: AIServiceClient = Depends(get_ai_client)
) -> dict:
    return client.compare_versions(
        previous_text=payload.previous_text, current_text=payload.current_text
    )


@router.post("/research-jurisprudence")
def ai_research_jurisprudence(
    payload: ResearchRequest, client: AIServiceClient = Depends(get_ai_client)
) -> dict:
    return client.research_jurisprudence(
        query=payload.query, jurisdiction=payload.jurisdiction, max_results=payload.max_results
    )
