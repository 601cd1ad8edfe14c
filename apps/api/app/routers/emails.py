from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import FirmContext, require_csrf_header, require_firm
from app.db.session import get_session
from app.models.enums import ClassificationState
from app.schemas.emails import (
    CaseSuggestionOut,
    ClassificationOut,
    EmailAssignRequest,
    EmailCaseLinkOut,
    EmailIngestRequest,
    EmailOut,
    EmailSummaryOut,
    EmailWithClassificationOut,
)
from app.services.classification.scorer import ClassificationResult
from app.services.emails import (
    EmailInput,
    Recipient,
    assign_email_manually,
    get_email,
    ingest_email,
    list_email_links,
    list_emails,
    preview_classification,
    reclassify_email,
)

router = APIRouter(prefix="/emails", tags=["emails"], dependencies=[Depends(require_csrf_header)])


def _email_input(payload: EmailIngestRequest) -> EmailInput:
    return EmailInput(
        from_address=payload.from_address,
        from_name=payload.from_name,
        subject=payload.subject,
        body=payload.body,
        body_is_html=payload.body_is_html,
        to=tuple(Recipient(address=r.address, name=r.name) for r in payload.to),
        cc=tuple(Recipient(address=r.address, name=r.name) for r in payload.cc),
        direction=payload.direction,
        conversation_id=payload.conversation_id,
        external_id=payload.external_id,
        received_at=payload.received_at,
    )


def _classification_out(result: ClassificationResult) -> ClassificationOut:
    return ClassificationOut(
        state=result.state,
        confidence=result.confidence,
        reason=result.reason,
        case_id=result.case_id,
        client_id=result.client_id,
        match_type=result.match_type,
        suggestions=[
            CaseSuggestionOut(
                case_id=s.case_id,
                case_number=s.case_number,
                title=s.title,
                score=s.score,
                signals=[sig.value for sig in s.signals],
            )
            for s in result.suggestions
        ],
    )


@router.get("", response_model=list[EmailSummaryOut])
def emails_list(
    state: ClassificationState | None = None,
    case_id: UUID | None = None,
    client_id: UUID | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[EmailSummaryOut]:
    return list_emails(
        session=session, ctx=ctx, state=state, case_id=case_id, client_id=client_id, limit=limit
    )


@router.post("", response_model=EmailWithClassificationOut, status_code=status.HTTP_201_CREATED)
def emails_ingest(
    payload: EmailIngestRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> EmailWithClassificationOut:
    email, result = ingest_email(session=session, ctx=ctx, data=_email_input(payload))
    session.commit()
    return EmailWithClassificationOut(
        email=EmailOut.model_validate(email), classification=_classification_out(result)
    )


@router.post("/classify/preview", response_model=ClassificationOut)
def emails_classify_preview(
    payload: EmailIngestRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> ClassificationOut:
    result = preview_classification(session=session, ctx=ctx, data=_email_input(payload))
    # Nothing to persist; make sure nothing leaks either.
    session.rollback()
    return _classification_out(result)


@router.get("/{email_id}", response_model=EmailOut)
def emails_get(
    email_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> EmailOut:
    return get_email(session=session, ctx=ctx, email_id=email_id)


@router.get("/{email_id}/links", response_model=list[EmailCaseLinkOut])
def emails_links(
    email_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[EmailCaseLinkOut]:
    email = get_email(session=session, ctx=ctx, email_id=email_id)
    return list_email_links(session=session, email_id=email.id)


@router.post("/{email_id}/assign", response_model=EmailOut)
def emails_assign(
    email_id: UUID,
    payload: EmailAssignRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> EmailOut:
    email = assign_email_manually(
        session=session, ctx=ctx, email_id=email_id, case_id=payload.case_id
    )
    session.commit()
    return email


@router.post("/{email_id}/classify", response_model=EmailWithClassificationOut)
def emails_classify(
    email_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> EmailWithClassificationOut:
    email, result = reclassify_email(session=session, ctx=ctx, email_id=email_id)
    session.commit()
    return EmailWithClassificationOut(
        email=EmailOut.model_validate(email), classification=_classification_out(result)
    )
