from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import FirmContext
from app.models.base import utcnow
from app.models.enums import (
    CaseStatus,
    ClassificationMatchType,
    ClassificationState,
    MessageDirection,
)
from app.models.mail import Email, EmailCaseLink
from app.models.practice import Case
from app.services.audit import log_event
from app.services.classification.apply import apply_result, assign_to_case
from app.services.classification.batch import classify_or_fallback
from app.services.classification.references import normalize_address
from app.services.classification.scorer import ClassificationResult
from app.services.reclassification import trigger_manual_assignment
from app.services.sanitize import html_to_text, sanitize_email_html
from app.services.visibility import email_visibility_clause, ensure_case_access


@dataclass(frozen=True)
class Recipient:
    address: str
    name: str | None = None


@dataclass(frozen=True)
class EmailInput:
    from_address: str
    subject: str = ""
    body: str = ""
    body_is_html: bool = False
    from_name: str | None = None
    to: tuple[Recipient, ...] = ()
    cc: tuple[Recipient, ...] = ()
    direction: MessageDirection = MessageDirection.inbound
    conversation_id: str | None = None
    external_id: str | None = None
    received_at: datetime | None = None


def _recipients_json(recipients: tuple[Recipient, ...]) -> list[dict]:
    out: list[dict] = []
    for r in recipients:
        addr = normalize_address(r.address)
        if addr:
            out.append({"address": addr, "name": (r.name or "").strip() or None})
    return out


def _build_email(*, firm_id: UUID, owner_user_id: UUID | None, data: EmailInput) -> Email:
    sender = normalize_address(data.from_address)
    if "@" not in sender:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid sender address"
        )
    if data.body_is_html:
        body_content = sanitize_email_html(data.body)
        preview = html_to_text(data.body, limit=255)
    else:
        body_content = data.body or ""
        preview = " ".join(body_content.split())[:255]

    return Email(
        firm_id=firm_id,
        owner_user_id=owner_user_id,
        external_id=(data.external_id or "").strip() or None,
        conversation_id=(data.conversation_id or "").strip() or None,
        subject=(data.subject or "").strip(),
        body_preview=preview,
        body_content=body_content,
        direction=data.direction,
        from_address=sender,
        from_name=(data.from_name or "").strip() or None,
        to_recipients=_recipients_json(data.to),
        cc_recipients=_recipients_json(data.cc),
        received_at=data.received_at or utcnow(),
        classification_state=ClassificationState.pending,
    )


def _touch_case(session: Session, case_id: UUID | None) -> None:
    if case_id is None:
        return
    case = session.get(Case, case_id)
    if case is not None:
        case.last_activity_at = utcnow()


def ingest_email(
    *, session: Session, ctx: FirmContext, data: EmailInput
) -> tuple[Email, ClassificationResult]:
    """Store an email and classify it straight away."""
    email = _build_email(firm_id=ctx.firm_id, owner_user_id=ctx.user_id, data=data)
    session.add(email)
    session.flush()

    result = classify_or_fallback(session=session, email=email, source="ingest")
    apply_result(session=session, email=email, result=result, classified_by="auto")
    _touch_case(session, email.case_id)

    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="emails.ingested",
        event_data={
            "email_id": str(email.id),
            "state": email.classification_state.value,
            "case_id": str(email.case_id) if email.case_id else None,
        },
    )
    return email, result


def preview_classification(
    *, session: Session, ctx: FirmContext, data: EmailInput
) -> ClassificationResult:
    """Classify without storing anything; the email never joins the session."""
    email = _build_email(firm_id=ctx.firm_id, owner_user_id=ctx.user_id, data=data)
    return classify_or_fallback(session=session, email=email, source="preview")


def list_emails(
    *,
    session: Session,
    ctx: FirmContext,
    state: ClassificationState | None = None,
    case_id: UUID | None = None,
    client_id: UUID | None = None,
    limit: int = 50,
) -> list[Email]:
    stmt = select(Email).where(email_visibility_clause(ctx))
    if state is not None:
        stmt = stmt.where(Email.classification_state == state)
    if case_id is not None:
        stmt = stmt.where(Email.case_id == case_id)
    if client_id is not None:
        stmt = stmt.where(Email.client_id == client_id)
    stmt = stmt.order_by(Email.received_at.desc(), Email.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


def get_email(*, session: Session, ctx: FirmContext, email_id: UUID) -> Email:
    email = (
        session.execute(select(Email).where(Email.id == email_id, email_visibility_clause(ctx)))
        .scalars()
        .first()
    )
    if email is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")
    return email


def list_email_links(*, session: Session, email_id: UUID) -> list[EmailCaseLink]:
    return list(
        session.execute(
            select(EmailCaseLink)
            .where(EmailCaseLink.email_id == email_id)
            .order_by(EmailCaseLink.is_primary.desc(), EmailCaseLink.linked_at.asc())
        )
        .scalars()
        .all()
    )


def assign_email_manually(
    *, session: Session, ctx: FirmContext, email_id: UUID, case_id: UUID
) -> Email:
    email = get_email(session=session, ctx=ctx, email_id=email_id)
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    if case.status in (CaseStatus.closed, CaseStatus.archived):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Case is closed"
        )

    previous_case_id = email.case_id
    assign_to_case(
        session=session,
        email=email,
        case_id=case.id,
        confidence=1.0,
        match_type=ClassificationMatchType.manual,
        classified_by=f"user:{ctx.user_id}",
        reason="filed manually",
    )
    case.last_activity_at = utcnow()
    session.flush()

    trigger_manual_assignment(
        session=session,
        firm_id=ctx.firm_id,
        email_id=email.id,
        case_id=case.id,
        user_id=ctx.user_id,
    )
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="emails.assigned",
        event_data={
            "email_id": str(email.id),
            "case_id": str(case.id),
            "previous_case_id": str(previous_case_id) if previous_case_id else None,
        },
    )
    return email


def reclassify_email(
    *, session: Session, ctx: FirmContext, email_id: UUID
) -> tuple[Email, ClassificationResult]:
    email = get_email(session=session, ctx=ctx, email_id=email_id)
    if email.case_id is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already filed")

    result = classify_or_fallback(session=session, email=email, source="manual_reclassify")
    apply_result(session=session, email=email, result=result, classified_by="auto")
    _touch_case(session, email.case_id)
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="emails.reclassified",
        event_data={"email_id": str(email.id), "state": email.classification_state.value},
    )
    return email, result
