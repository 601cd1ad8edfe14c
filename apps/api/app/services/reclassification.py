"""Re-derive the state of unassigned email after contact data changes.

Edits to a client's addresses, a new contact or case actor, a newly registered
institutional source, a new case reference and a manual filing all make
previously unassignable mail assignable. The ``trigger_*`` functions queue that
work in the caller's transaction; the worker runs the matching function below.

Every pass overwrites state rather than appending: links are upserted per
(email, case) and timestamps only move when the verdict changes, so running
a pass twice leaves the rows as the first run did.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.enums import (
    ClassificationMatchType,
    ClassificationState,
    JobType,
)
from app.models.mail import Email, GlobalEmailSource
from app.models.practice import Case
from app.services.classification.apply import assign_to_case, route_unassigned
from app.services.classification.batch import (
    classify_batch,
    classify_or_fallback,
    load_firm_index,
)
from app.services.classification.references import (
    address_domain,
    extract_reference_numbers,
    normalize_address,
    normalize_address_list,
    normalize_reference,
)
from app.services.classification.scorer import (
    OPEN_CASE_STATUSES,
    ClassificationConfig,
    counterpart_addresses,
    recipient_addresses,
)
from app.worker.queue import enqueue_job

CLIENT_CONTACT_MATCH = "client_contact_match"
REFERENCE_MATCH = "system:reference-match"

_REOPENABLE_STATES = (ClassificationState.pending, ClassificationState.uncertain)


@dataclass
class ReclassificationSummary:
    candidates: int = 0
    classified: int = 0
    client_inbox: int = 0
    unchanged: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _email_addresses(email: Email) -> set[str]:
    addrs = set(recipient_addresses(email))
    sender = normalize_address(email.from_address)
    if sender:
        addrs.add(sender)
    return addrs


def select_candidate_emails(
    *,
    session: Session,
    firm_id: UUID,
    addresses: Iterable[str],
    client_id: UUID | None,
) -> list[Email]:
    """Unassigned firm email sent from or to one of ``addresses``.

    Pending and Uncertain mail always qualifies; ClientInbox mail only when it
    sits in ``client_id``'s inbox.
    """
    wanted = set(normalize_address_list(addresses))
    if not wanted:
        return []

    state_clause = Email.classification_state.in_(_REOPENABLE_STATES)
    if client_id is not None:
        state_clause = state_clause | (
            (Email.classification_state == ClassificationState.client_inbox)
            & (Email.client_id == client_id)
        )
    rows = (
        session.execute(
            select(Email)
            .where(Email.firm_id == firm_id, Email.case_id.is_(None), state_clause)
            .order_by(Email.received_at.asc())
        )
        .scalars()
        .all()
    )
    # Recipients live in JSON; match them here rather than per-dialect JSON SQL.
    return [e for e in rows if _email_addresses(e) & wanted]


def _active_case_ids(*, session: Session, firm_id: UUID, client_id: UUID) -> list[UUID]:
    return list(
        session.execute(
            select(Case.id)
            .where(
                Case.firm_id == firm_id,
                Case.client_id == client_id,
                Case.status.in_(OPEN_CASE_STATUSES),
            )
            .order_by(Case.created_at.asc())
        )
        .scalars()
        .all()
    )


def reclassify_for_client_addresses(
    *,
    session: Session,
    firm_id: UUID,
    client_id: UUID,
    addresses: Iterable[str],
    config: ClassificationConfig | None = None,
) -> ReclassificationSummary:
    summary = ReclassificationSummary()
    candidates = select_candidate_emails(
        session=session, firm_id=firm_id, addresses=addresses, client_id=client_id
    )
    summary.candidates = len(candidates)
    if not candidates:
        return summary

    case_ids = _active_case_ids(session=session, firm_id=firm_id, client_id=client_id)
    if not case_ids:
        summary.unchanged = len(candidates)
        return summary

    if len(case_ids) == 1:
        confidence = get_settings().RECLASSIFY_CLIENT_MATCH_CONFIDENCE
        for email in candidates:
            assign_to_case(
                session=session,
                email=email,
                case_id=case_ids[0],
                confidence=confidence,
                match_type=ClassificationMatchType.actor,
                classified_by=CLIENT_CONTACT_MATCH,
                reason="client has a single active case",
            )
        summary.classified = len(candidates)
        return summary

    _score_each(
        session=session,
        firm_id=firm_id,
        client_id=client_id,
        emails=candidates,
        config=config,
        summary=summary,
    )
    return summary


def reclassify_for_case_addresses(
    *,
    session: Session,
    firm_id: UUID,
    case_id: UUID,
    addresses: Iterable[str],
    config: ClassificationConfig | None = None,
) -> ReclassificationSummary:
    """A new actor on a case: follow the client rule, or score when the case has no client."""
    case = session.get(Case, case_id)
    if case is None or case.firm_id != firm_id:
        return ReclassificationSummary()
    if case.client_id is not None:
        return reclassify_for_client_addresses(
            session=session,
            firm_id=firm_id,
            client_id=case.client_id,
            addresses=addresses,
            config=config,
        )

    summary = ReclassificationSummary()
    candidates = select_candidate_emails(
        session=session, firm_id=firm_id, addresses=addresses, client_id=None
    )
    summary.candidates = len(candidates)
    if case.status not in OPEN_CASE_STATUSES:
        summary.unchanged = len(candidates)
        return summary
    _score_each(
        session=session,
        firm_id=firm_id,
        client_id=None,
        emails=candidates,
        config=config,
        summary=summary,
    )
    return summary


def rescore_released_addresses(
    *,
    session: Session,
    firm_id: UUID,
    client_id: UUID,
    addresses: Iterable[str],
    keep_addresses: Iterable[str] = (),
    config: ClassificationConfig | None = None,
) -> ReclassificationSummary:
    """Re-score loose mail from addresses the client no longer lists.

    The client is not assumed: the scorer decides, and falls back to Uncertain.
    Mail that also involves one of ``keep_addresses`` stays with the client pass.
    """
    summary = ReclassificationSummary()
    keep = set(normalize_address_list(keep_addresses))
    candidates = [
        e
        for e in select_candidate_emails(
            session=session, firm_id=firm_id, addresses=addresses, client_id=client_id
        )
        if not _email_addresses(e) & keep
    ]
    summary.candidates = len(candidates)
    if not candidates:
        return summary

    results = classify_batch(
        session=session,
        firm_id=firm_id,
        emails=candidates,
        source="reclassification",
        config=config,
    )
    for result in results.values():
        if result.failed:
            summary.failed += 1
        if result.state == ClassificationState.classified:
            summary.classified += 1
        elif result.state == ClassificationState.client_inbox:
            summary.client_inbox += 1
        else:
            summary.unchanged += 1
    return summary


def _score_each(
    *,
    session: Session,
    firm_id: UUID,
    client_id: UUID | None,
    emails: list[Email],
    config: ClassificationConfig | None,
    summary: ReclassificationSummary,
) -> None:
    cfg = config or ClassificationConfig.from_settings()
    index = load_firm_index(session=session, firm_id=firm_id, source="reclassification")
    for email in emails:
        result = classify_or_fallback(
            session=session,
            email=email,
            source="reclassification",
            config=cfg,
            index=index,
            fallback_client_id=client_id,
        )
        if result.failed:
            summary.failed += 1

        if result.state == ClassificationState.classified and result.case_id is not None:
            assign_to_case(
                session=session,
                email=email,
                case_id=result.case_id,
                confidence=result.confidence,
                match_type=result.match_type or ClassificationMatchType.manual,
                classified_by="auto",
                reason=result.reason,
            )
            summary.classified += 1
        elif client_id is not None:
            route_unassigned(
                session=session,
                email=email,
                state=ClassificationState.client_inbox,
                confidence=result.confidence,
                classified_by=CLIENT_CONTACT_MATCH,
                client_id=client_id,
                reason=result.reason,
            )
            summary.client_inbox += 1
        else:
            summary.unchanged += 1


def route_emails_for_source(*, session: Session, firm_id: UUID, source_id: UUID) -> int:
    """Move unassigned mail from a newly registered institution to CourtUnassigned."""
    source = session.get(GlobalEmailSource, source_id)
    if source is None or source.firm_id != firm_id:
        return 0

    source_addresses = set(normalize_address_list(source.emails or []))
    source_domains = {d.strip().lower() for d in source.domains or [] if d}
    rows = (
        session.execute(
            select(Email).where(
                Email.firm_id == firm_id,
                Email.case_id.is_(None),
                Email.classification_state.in_(_REOPENABLE_STATES),
            )
        )
        .scalars()
        .all()
    )

    moved = 0
    for email in rows:
        addrs = counterpart_addresses(email)
        if not any(a in source_addresses or address_domain(a) in source_domains for a in addrs):
            continue
        route_unassigned(
            session=session,
            email=email,
            state=ClassificationState.court_unassigned,
            confidence=0.0,
            classified_by=f"source:{source.id}",
            reason=f"sender registered as {source.category.value}",
        )
        moved += 1
    return moved


def assign_by_case_references(
    *,
    session: Session,
    firm_id: UUID,
    case_id: UUID,
    references: Iterable[str],
) -> int:
    """File CourtUnassigned mail that quotes one of the case's new reference numbers."""
    case = session.get(Case, case_id)
    if case is None or case.firm_id != firm_id:
        return 0
    wanted = {normalize_reference(r) for r in references if r}
    wanted.discard("")
    if not wanted:
        return 0

    rows = (
        session.execute(
            select(Email).where(
                Email.firm_id == firm_id,
                Email.case_id.is_(None),
                Email.classification_state == ClassificationState.court_unassigned,
            )
        )
        .scalars()
        .all()
    )
    assigned = 0
    for email in rows:
        refs = extract_reference_numbers(f"{email.subject}\n{email.body_content or email.body_preview}")
        if not wanted.intersection(refs):
            continue
        assign_to_case(
            session=session,
            email=email,
            case_id=case.id,
            confidence=1.0,
            match_type=ClassificationMatchType.reference_number,
            classified_by=REFERENCE_MATCH,
            reason="reference number added to case",
        )
        assigned += 1
    return assigned


def propagate_manual_assignment(
    *,
    session: Session,
    firm_id: UUID,
    email_id: UUID,
    case_id: UUID,
    user_id: UUID,
) -> int:
    """After a human files an email, file the sender's other loose mail the same way."""
    anchor = session.get(Email, email_id)
    case = session.get(Case, case_id)
    if anchor is None or case is None or anchor.firm_id != firm_id or case.firm_id != firm_id:
        return 0
    if case.status not in OPEN_CASE_STATUSES:
        return 0
    sender = normalize_address(anchor.from_address)
    if not sender:
        return 0

    stmt = select(Email).where(
        Email.firm_id == firm_id,
        Email.id != anchor.id,
        Email.case_id.is_(None),
        Email.from_address == sender,
        Email.classification_state.in_(
            [ClassificationState.uncertain, ClassificationState.client_inbox]
        ),
    )
    if anchor.conversation_id:
        stmt = stmt.where(
            (Email.conversation_id.is_(None)) | (Email.conversation_id != anchor.conversation_id)
        )

    confidence = get_settings().MANUAL_PATTERN_CONFIDENCE
    assigned = 0
    for email in session.execute(stmt).scalars().all():
        assign_to_case(
            session=session,
            email=email,
            case_id=case.id,
            confidence=confidence,
            match_type=ClassificationMatchType.manual,
            classified_by=f"system:pattern-from-{user_id}",
            reason="same sender as a manually filed email",
        )
        assigned += 1
    return assigned


# Triggers: queue the passes above without blocking the mutation.


def _address_key(addresses: Iterable[str]) -> str:
    return ",".join(sorted(normalize_address_list(addresses)))


def trigger_client_addresses_changed(
    *,
    session: Session,
    firm_id: UUID,
    client_id: UUID,
    addresses: Iterable[str],
    reason: str,
    released_addresses: Iterable[str] = (),
) -> UUID | None:
    """Queue a pass for the client's new addresses and those it dropped.

    New addresses follow the client rule; released ones are only re-scored.
    """
    addrs = normalize_address_list(addresses)
    released = [a for a in normalize_address_list(released_addresses) if a not in addrs]
    if not addrs and not released:
        return None
    return enqueue_job(
        session=session,
        job_type=JobType.reclassify_addresses,
        firm_id=firm_id,
        payload={
            "firm_id": str(firm_id),
            "client_id": str(client_id),
            "addresses": addrs,
            "released_addresses": released,
            "reason": reason,
        },
        dedupe_key=(
            f"reclassify:client:{client_id}:{_address_key(addrs)}|{_address_key(released)}"
        ),
    )


def trigger_case_address_added(
    *,
    session: Session,
    firm_id: UUID,
    case_id: UUID,
    addresses: Iterable[str],
) -> UUID | None:
    addrs = normalize_address_list(addresses)
    if not addrs:
        return None
    return enqueue_job(
        session=session,
        job_type=JobType.reclassify_addresses,
        firm_id=firm_id,
        payload={
            "firm_id": str(firm_id),
            "case_id": str(case_id),
            "addresses": addrs,
            "reason": "case_actor_added",
        },
        dedupe_key=f"reclassify:case:{case_id}:{_address_key(addrs)}",
    )


def trigger_source_registered(*, session: Session, firm_id: UUID, source_id: UUID) -> UUID | None:
    return enqueue_job(
        session=session,
        job_type=JobType.route_source_emails,
        firm_id=firm_id,
        payload={"firm_id": str(firm_id), "source_id": str(source_id)},
        dedupe_key=f"route_source:{source_id}",
    )


def trigger_case_references_added(
    *,
    session: Session,
    firm_id: UUID,
    case_id: UUID,
    references: Iterable[str],
) -> UUID | None:
    refs = sorted({r.strip() for r in references if r and r.strip()})
    if not refs:
        return None
    return enqueue_job(
        session=session,
        job_type=JobType.apply_case_reference,
        firm_id=firm_id,
        payload={"firm_id": str(firm_id), "case_id": str(case_id), "references": refs},
        dedupe_key=f"case_reference:{case_id}:{','.join(refs)}",
    )


def trigger_manual_assignment(
    *,
    session: Session,
    firm_id: UUID,
    email_id: UUID,
    case_id: UUID,
    user_id: UUID,
) -> UUID | None:
    return enqueue_job(
        session=session,
        job_type=JobType.propagate_manual_assignment,
        firm_id=firm_id,
        payload={
            "firm_id": str(firm_id),
            "email_id": str(email_id),
            "case_id": str(case_id),
            "user_id": str(user_id),
        },
        dedupe_key=f"manual_pattern:{email_id}:{case_id}",
    )
