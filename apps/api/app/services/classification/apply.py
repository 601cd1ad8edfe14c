from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.base import utcnow
from app.models.enums import ClassificationMatchType, ClassificationState
from app.models.mail import Email, EmailCaseLink
from app.services.classification.scorer import ClassificationResult


def upsert_case_link(
    *,
    session: Session,
    email: Email,
    case_id: UUID,
    confidence: float,
    match_type: ClassificationMatchType,
    linked_by: str,
) -> EmailCaseLink:
    """Create or refresh the (email, case) link and make it the primary one."""
    link = (
        session.execute(
            select(EmailCaseLink).where(
                EmailCaseLink.email_id == email.id, EmailCaseLink.case_id == case_id
            )
        )
        .scalars()
        .first()
    )
    if link is None:
        link = EmailCaseLink(
            firm_id=email.firm_id,
            email_id=email.id,
            case_id=case_id,
            confidence=confidence,
            match_type=match_type,
            is_primary=True,
            linked_by=linked_by,
        )
        session.add(link)
    elif (link.confidence, link.match_type, link.is_primary) != (confidence, match_type, True):
        link.confidence = confidence
        link.match_type = match_type
        link.is_primary = True
        link.linked_by = linked_by

    session.execute(
        update(EmailCaseLink)
        .where(
            EmailCaseLink.email_id == email.id,
            EmailCaseLink.case_id != case_id,
            EmailCaseLink.is_primary.is_(True),
        )
        .values(is_primary=False)
    )
    session.flush()
    return link


def assign_to_case(
    *,
    session: Session,
    email: Email,
    case_id: UUID,
    confidence: float,
    match_type: ClassificationMatchType,
    classified_by: str,
    reason: str | None = None,
) -> None:
    changed = (
        email.classification_state != ClassificationState.classified
        or email.case_id != case_id
        or email.classification_confidence != confidence
    )
    email.classification_state = ClassificationState.classified
    email.case_id = case_id
    email.client_id = None
    email.classification_confidence = confidence
    email.match_type = match_type
    if reason is not None:
        email.classification_reason = reason
    if changed or email.classified_at is None:
        email.classified_at = utcnow()
        email.classified_by = classified_by
    session.flush()
    upsert_case_link(
        session=session,
        email=email,
        case_id=case_id,
        confidence=confidence,
        match_type=match_type,
        linked_by=classified_by,
    )


def route_unassigned(
    *,
    session: Session,
    email: Email,
    state: ClassificationState,
    confidence: float,
    classified_by: str,
    client_id: UUID | None = None,
    reason: str | None = None,
) -> None:
    """Put an email in a non-case bucket (Uncertain, ClientInbox, CourtUnassigned)."""
    changed = (
        email.classification_state != state
        or email.client_id != client_id
        or email.classification_confidence != confidence
    )
    email.classification_state = state
    email.case_id = None
    email.client_id = client_id
    email.classification_confidence = confidence
    email.match_type = None
    if reason is not None:
        email.classification_reason = reason
    if changed or email.classified_at is None:
        email.classified_at = utcnow()
        email.classified_by = classified_by
    session.flush()


def apply_result(
    *,
    session: Session,
    email: Email,
    result: ClassificationResult,
    classified_by: str,
) -> None:
    if result.state == ClassificationState.classified and result.case_id is not None:
        assign_to_case(
            session=session,
            email=email,
            case_id=result.case_id,
            confidence=result.confidence,
            match_type=result.match_type or ClassificationMatchType.actor,
            classified_by=classified_by,
            reason=result.reason,
        )
        return
    route_unassigned(
        session=session,
        email=email,
        state=result.state,
        confidence=result.confidence,
        classified_by=classified_by,
        client_id=result.client_id,
        reason=result.reason,
    )
