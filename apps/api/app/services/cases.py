from __future__ import annotations

import re
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import FirmContext
from app.models.base import utcnow
from app.models.enums import CaseStatus, CaseTeamRole
from app.models.practice import Case, CaseActor, CaseNote, CaseTeamMember, Client, ClientContact
from app.services.audit import log_event
from app.services.classification.references import (
    normalize_address,
    normalize_domain,
    normalize_domain_list,
    normalize_reference,
)
from app.services.clients import ensure_firm_member
from app.services.reclassification import (
    trigger_case_address_added,
    trigger_case_references_added,
    trigger_client_addresses_changed,
)
from app.services.sanitize import render_note_html
from app.services.visibility import case_visibility_clause, ensure_case_access, note_visibility_clause

_case_number_re = re.compile(r"^(\d{4})-(\d+)$")


def _clean_list(values: list[str] | None) -> list[str]:
    out: list[str] = []
    for v in values or []:
        v = (v or "").strip()
        if v and v not in out:
            out.append(v)
    return out


def _next_case_number(*, session: Session, firm_id: UUID) -> str:
    year = utcnow().year
    numbers = session.execute(
        select(Case.case_number).where(
            Case.firm_id == firm_id, Case.case_number.like(f"{year}-%")
        )
    ).scalars()
    highest = 0
    for number in numbers:
        m = _case_number_re.match(number)
        if m:
            highest = max(highest, int(m.group(2)))
    return f"{year}-{highest + 1:03d}"


def _client_in_firm(*, session: Session, firm_id: UUID, client_id: UUID) -> Client:
    client = session.get(Client, client_id)
    if client is None or client.firm_id != firm_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


def _client_addresses(*, session: Session, client: Client) -> list[str]:
    addrs = [client.email] if client.email else []
    addrs.extend(
        session.execute(
            select(ClientContact.email).where(
                ClientContact.client_id == client.id, ClientContact.email.is_not(None)
            )
        )
        .scalars()
        .all()
    )
    return addrs


def list_cases(
    *,
    session: Session,
    ctx: FirmContext,
    status_filter: CaseStatus | None = None,
    client_id: UUID | None = None,
) -> list[Case]:
    stmt = select(Case).where(case_visibility_clause(ctx))
    if status_filter is not None:
        stmt = stmt.where(Case.status == status_filter)
    if client_id is not None:
        stmt = stmt.where(Case.client_id == client_id)
    return list(session.execute(stmt.order_by(Case.created_at.desc())).scalars().all())


def create_case(
    *,
    session: Session,
    ctx: FirmContext,
    title: str,
    client_id: UUID | None = None,
    case_number: str | None = None,
    description: str | None = None,
    case_status: CaseStatus = CaseStatus.active,
    reference_numbers: list[str] | None = None,
    keywords: list[str] | None = None,
    subject_patterns: list[str] | None = None,
    company_domain: str | None = None,
) -> Case:
    title = (title or "").strip()
    if not title:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Case title is required"
        )
    client = (
        _client_in_firm(session=session, firm_id=ctx.firm_id, client_id=client_id)
        if client_id is not None
        else None
    )

    case = Case(
        firm_id=ctx.firm_id,
        client_id=client.id if client else None,
        case_number=(case_number or "").strip()
        or _next_case_number(session=session, firm_id=ctx.firm_id),
        title=title,
        description=(description or "").strip() or None,
        status=case_status,
        reference_numbers=_clean_list(reference_numbers),
        keywords=_clean_list(keywords),
        subject_patterns=_clean_list(subject_patterns),
        company_domain=normalize_domain(company_domain) if company_domain else None,
        last_activity_at=utcnow(),
    )
    session.add(case)
    try:
        session.flush()
    except IntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Case number already exists"
        ) from e

    # The creator leads the case team.
    session.add(
        CaseTeamMember(
            firm_id=ctx.firm_id, case_id=case.id, user_id=ctx.user_id, role=CaseTeamRole.lead
        )
    )
    session.flush()

    trigger_case_references_added(
        session=session, firm_id=ctx.firm_id, case_id=case.id, references=case.reference_numbers
    )
    if client is not None and case.status in (CaseStatus.active, CaseStatus.pending_approval):
        trigger_client_addresses_changed(
            session=session,
            firm_id=ctx.firm_id,
            client_id=client.id,
            addresses=_client_addresses(session=session, client=client),
            reason="case_created",
        )
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.created",
        event_data={"case_id": str(case.id), "case_number": case.case_number},
    )
    return case


def update_case(*, session: Session, ctx: FirmContext, case_id: UUID, fields: dict) -> Case:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    changed: list[str] = []

    if "title" in fields:
        title = (fields["title"] or "").strip()
        if not title:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Case title is required"
            )
        case.title = title
        changed.append("title")
    if "description" in fields:
        case.description = (fields["description"] or "").strip() or None
        changed.append("description")
    if "status" in fields and fields["status"] is not None:
        case.status = CaseStatus(fields["status"])
        changed.append("status")
    if "client_id" in fields:
        client_id = fields["client_id"]
        if client_id is not None:
            _client_in_firm(session=session, firm_id=ctx.firm_id, client_id=client_id)
        case.client_id = client_id
        changed.append("client_id")
    for attr in ("keywords", "subject_patterns"):
        if attr in fields:
            setattr(case, attr, _clean_list(fields[attr]))
            changed.append(attr)
    if "company_domain" in fields:
        domain = fields["company_domain"]
        case.company_domain = normalize_domain(domain) if domain else None
        changed.append("company_domain")

    added_refs: list[str] = []
    if "reference_numbers" in fields:
        new_refs = _clean_list(fields["reference_numbers"])
        known = {normalize_reference(r) for r in case.reference_numbers or []}
        added_refs = [r for r in new_refs if normalize_reference(r) not in known]
        case.reference_numbers = new_refs
        changed.append("reference_numbers")

    case.updated_at = utcnow()
    session.flush()

    if added_refs:
        trigger_case_references_added(
            session=session, firm_id=ctx.firm_id, case_id=case.id, references=added_refs
        )
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.updated",
        event_data={"case_id": str(case.id), "fields": changed},
    )
    return case


def list_case_team(*, session: Session, ctx: FirmContext, case_id: UUID) -> list[CaseTeamMember]:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    return list(
        session.execute(
            select(CaseTeamMember)
            .where(CaseTeamMember.case_id == case.id)
            .order_by(CaseTeamMember.assigned_at.asc())
        )
        .scalars()
        .all()
    )


def assign_case_team_member(
    *,
    session: Session,
    ctx: FirmContext,
    case_id: UUID,
    user_id: UUID,
    role: CaseTeamRole = CaseTeamRole.support,
) -> CaseTeamMember:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    ensure_firm_member(session=session, firm_id=ctx.firm_id, user_id=user_id)

    member = (
        session.execute(
            select(CaseTeamMember).where(
                CaseTeamMember.case_id == case.id, CaseTeamMember.user_id == user_id
            )
        )
        .scalars()
        .first()
    )
    if member is None:
        member = CaseTeamMember(firm_id=ctx.firm_id, case_id=case.id, user_id=user_id, role=role)
        session.add(member)
    else:
        member.role = role
    session.flush()

    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.team_assigned",
        event_data={"case_id": str(case.id), "user_id": str(user_id), "role": role.value},
    )
    return member


def remove_case_team_member(
    *, session: Session, ctx: FirmContext, case_id: UUID, user_id: UUID
) -> None:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    res = session.execute(
        delete(CaseTeamMember).where(
            CaseTeamMember.case_id == case.id, CaseTeamMember.user_id == user_id
        )
    )
    if res.rowcount == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.team_removed",
        event_data={"case_id": str(case.id), "user_id": str(user_id)},
    )


def list_case_actors(*, session: Session, ctx: FirmContext, case_id: UUID) -> list[CaseActor]:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    return list(
        session.execute(
            select(CaseActor).where(CaseActor.case_id == case.id).order_by(CaseActor.name.asc())
        )
        .scalars()
        .all()
    )


def add_case_actor(
    *,
    session: Session,
    ctx: FirmContext,
    case_id: UUID,
    name: str,
    role: str | None = None,
    organization: str | None = None,
    email: str | None = None,
    email_domains: list[str] | None = None,
) -> CaseActor:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    name = (name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Actor name is required"
        )
    address = normalize_address(email) or None
    if address is not None and "@" not in address:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email")

    actor = CaseActor(
        firm_id=ctx.firm_id,
        case_id=case.id,
        name=name,
        role=(role or "").strip() or None,
        organization=(organization or "").strip() or None,
        email=address,
        email_domains=normalize_domain_list(email_domains or []),
    )
    session.add(actor)
    session.flush()

    if address is not None:
        trigger_case_address_added(
            session=session, firm_id=ctx.firm_id, case_id=case.id, addresses=[address]
        )
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.actor_added",
        event_data={"case_id": str(case.id), "actor_id": str(actor.id)},
    )
    return actor


def list_case_notes(*, session: Session, ctx: FirmContext, case_id: UUID) -> list[CaseNote]:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    return list(
        session.execute(
            select(CaseNote)
            .where(CaseNote.case_id == case.id, note_visibility_clause(ctx))
            .order_by(CaseNote.created_at.asc())
        )
        .scalars()
        .all()
    )


def create_case_note(
    *,
    session: Session,
    ctx: FirmContext,
    case_id: UUID,
    body: str,
    is_private: bool = False,
) -> CaseNote:
    case = ensure_case_access(session=session, ctx=ctx, case_id=case_id)
    text = (body or "").strip()
    if not text:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Note body is required"
        )

    note = CaseNote(
        firm_id=ctx.firm_id,
        case_id=case.id,
        author_user_id=ctx.user_id,
        body=text,
        body_html=render_note_html(text),
        is_private=is_private,
    )
    session.add(note)
    case.last_activity_at = utcnow()
    session.flush()

    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="cases.note_created",
        event_data={"case_id": str(case.id), "note_id": str(note.id), "is_private": is_private},
    )
    return note
