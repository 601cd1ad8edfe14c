from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import FirmContext
from app.models.base import utcnow
from app.models.enums import ClassificationState, ClientType, ContactKind
from app.models.identity import Membership
from app.models.mail import Email, EmailCaseLink
from app.models.practice import (
    Case,
    CaseActor,
    CaseNote,
    CaseTeamMember,
    Client,
    ClientContact,
    ClientTeamMember,
)
from app.services.audit import log_event
from app.services.classification.references import normalize_address
from app.services.reclassification import trigger_client_addresses_changed
from app.services.visibility import client_visibility_clause, ensure_client_access


@dataclass(frozen=True)
class PersonInput:
    name: str
    id: UUID | None = None
    role: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ClientDetail:
    client: Client
    administrators: list[ClientContact]
    contacts: list[ClientContact]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_email(value: str | None) -> str | None:
    addr = normalize_address(value)
    if not addr:
        return None
    if "@" not in addr or " " in addr:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid email: {value}"
        )
    return addr


def _people(session: Session, client_id: UUID, kind: ContactKind) -> list[ClientContact]:
    return list(
        session.execute(
            select(ClientContact)
            .where(ClientContact.client_id == client_id, ClientContact.kind == kind)
            .order_by(ClientContact.created_at.asc(), ClientContact.name.asc())
        )
        .scalars()
        .all()
    )


def _client_addresses(session: Session, client: Client) -> list[str]:
    stored = session.execute(
        select(ClientContact.email).where(
            ClientContact.client_id == client.id, ClientContact.email.is_not(None)
        )
    ).scalars()
    return [a for a in (client.email, *stored) if a]


def _detail(session: Session, client: Client) -> ClientDetail:
    return ClientDetail(
        client=client,
        administrators=_people(session, client.id, ContactKind.administrator),
        contacts=_people(session, client.id, ContactKind.contact),
    )


def list_clients(*, session: Session, ctx: FirmContext, q: str | None = None) -> list[Client]:
    stmt = select(Client).where(client_visibility_clause(ctx))
    if q:
        stmt = stmt.where(Client.name.ilike(f"%{q.strip()}%"))
    return list(session.execute(stmt.order_by(Client.name.asc())).scalars().all())


def get_client_detail(*, session: Session, ctx: FirmContext, client_id: UUID) -> ClientDetail:
    client = ensure_client_access(session=session, ctx=ctx, client_id=client_id)
    return _detail(session, client)


def _replace_people(
    *,
    session: Session,
    client: Client,
    kind: ContactKind,
    people: list[PersonInput],
) -> tuple[list[str], list[str]]:
    """Make the stored list match ``people``.

    Returns (added addresses, released addresses). An edited email counts as
    its new value added and its old value released; a removed person releases
    their address.
    """
    existing = {p.id: p for p in _people(session, client.id, kind)}
    keep: set[UUID] = set()
    added: list[str] = []
    released: list[str] = []

    for person in people:
        name = _clean(person.name)
        if not name:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Contact name is required"
            )
        email = _clean_email(person.email)
        row = existing.get(person.id) if person.id is not None else None
        if row is None:
            row = ClientContact(
                id=uuid4(),
                firm_id=client.firm_id,
                client_id=client.id,
                kind=kind,
                name=name,
                role=_clean(person.role),
                email=email,
                phone=_clean(person.phone),
            )
            session.add(row)
            if email:
                added.append(email)
        else:
            if row.email != email:
                if row.email:
                    released.append(row.email)
                if email:
                    added.append(email)
            row.name = name
            row.role = _clean(person.role)
            row.email = email
            row.phone = _clean(person.phone)
        keep.add(row.id)

    for row_id, row in existing.items():
        if row_id not in keep:
            if row.email:
                released.append(row.email)
            session.delete(row)
    session.flush()
    return added, released


def create_client(
    *,
    session: Session,
    ctx: FirmContext,
    name: str,
    client_type: ClientType = ClientType.company,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    company_type: str | None = None,
    cui: str | None = None,
    registration_number: str | None = None,
    administrators: list[PersonInput] | None = None,
    contacts: list[PersonInput] | None = None,
) -> ClientDetail:
    name_clean = _clean(name)
    if not name_clean:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Client name is required"
        )

    client = Client(
        firm_id=ctx.firm_id,
        name=name_clean,
        client_type=client_type,
        email=_clean_email(email),
        phone=_clean(phone),
        address=_clean(address),
        company_type=_clean(company_type),
        cui=_clean(cui),
        registration_number=_clean(registration_number),
    )
    session.add(client)
    try:
        session.flush()
    except IntegrityError as e:
        # Unique(firm, name) is enforced at the DB level.
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Client name already exists"
        ) from e

    new_addresses = [client.email] if client.email else []
    for kind, people in (
        (ContactKind.administrator, administrators or []),
        (ContactKind.contact, contacts or []),
    ):
        added, _ = _replace_people(session=session, client=client, kind=kind, people=people)
        new_addresses.extend(added)

    trigger_client_addresses_changed(
        session=session,
        firm_id=ctx.firm_id,
        client_id=client.id,
        addresses=new_addresses,
        reason="client_created",
    )
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="clients.created",
        event_data={"client_id": str(client.id)},
    )
    return _detail(session, client)


def update_client(
    *,
    session: Session,
    ctx: FirmContext,
    client_id: UUID,
    fields: dict,
    administrators: list[PersonInput] | None = None,
    contacts: list[PersonInput] | None = None,
) -> ClientDetail:
    """Patch a client. ``fields`` holds only the scalar attributes being changed.

    Address edits queue reclassification after commit and never fail this
    update. New addresses are matched to the client; released ones are
    re-scored without assuming it.
    """
    client = ensure_client_access(session=session, ctx=ctx, client_id=client_id)
    changed_fields: list[str] = []
    added: list[str] = []
    released: list[str] = []

    if "name" in fields:
        name = _clean(fields["name"])
        if not name:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Client name is required"
            )
        client.name = name
        changed_fields.append("name")
    if "email" in fields:
        new_email = _clean_email(fields["email"])
        if new_email != client.email:
            if client.email:
                released.append(client.email)
            if new_email:
                added.append(new_email)
            client.email = new_email
            changed_fields.append("email")
    for attr in ("phone", "address", "company_type", "cui", "registration_number"):
        if attr in fields:
            setattr(client, attr, _clean(fields[attr]))
            changed_fields.append(attr)
    if "client_type" in fields and fields["client_type"] is not None:
        client.client_type = ClientType(fields["client_type"])
        changed_fields.append("client_type")

    client.updated_at = utcnow()
    try:
        session.flush()
    except IntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Client name already exists"
        ) from e

    for kind, people in (
        (ContactKind.administrator, administrators),
        (ContactKind.contact, contacts),
    ):
        if people is None:
            continue
        people_added, people_released = _replace_people(
            session=session, client=client, kind=kind, people=people
        )
        added.extend(people_added)
        released.extend(people_released)
        changed_fields.append(f"{kind.value}s")

    # An address moved between fields is still the client's.
    still_owned = set(_client_addresses(session, client))
    released = [a for a in released if a not in still_owned]
    if added or released:
        trigger_client_addresses_changed(
            session=session,
            firm_id=ctx.firm_id,
            client_id=client.id,
            addresses=added,
            released_addresses=released,
            reason="client_contact_changed",
        )

    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="clients.updated",
        event_data={"client_id": str(client.id), "fields": changed_fields},
    )
    return _detail(session, client)


def delete_client(*, session: Session, ctx: FirmContext, client_id: UUID) -> None:
    """Delete a client with its cases; filed email goes back to Uncertain."""
    client = ensure_client_access(session=session, ctx=ctx, client_id=client_id)
    case_ids = list(
        session.execute(select(Case.id).where(Case.client_id == client.id)).scalars().all()
    )

    email_filter = Email.client_id == client.id
    if case_ids:
        email_filter = email_filter | Email.case_id.in_(case_ids)
    session.execute(
        update(Email)
        .where(Email.firm_id == ctx.firm_id, email_filter)
        .values(
            case_id=None,
            client_id=None,
            match_type=None,
            classification_state=ClassificationState.uncertain,
            classification_confidence=0.0,
            classification_reason="client deleted",
            classified_at=utcnow(),
            classified_by=f"user:{ctx.user_id}",
        )
        .execution_options(synchronize_session=False)
    )
    if case_ids:
        for model in (EmailCaseLink, CaseTeamMember, CaseActor, CaseNote):
            session.execute(delete(model).where(model.case_id.in_(case_ids)))
        session.execute(delete(Case).where(Case.id.in_(case_ids)))
    session.execute(delete(ClientContact).where(ClientContact.client_id == client.id))
    session.execute(delete(ClientTeamMember).where(ClientTeamMember.client_id == client.id))
    session.delete(client)
    session.flush()

    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="clients.deleted",
        event_data={"client_id": str(client_id), "case_ids": [str(c) for c in case_ids]},
    )


def assign_client_team_member(
    *, session: Session, ctx: FirmContext, client_id: UUID, user_id: UUID
) -> ClientTeamMember:
    client = ensure_client_access(session=session, ctx=ctx, client_id=client_id)
    ensure_firm_member(session=session, firm_id=ctx.firm_id, user_id=user_id)

    existing = (
        session.execute(
            select(ClientTeamMember).where(
                ClientTeamMember.client_id == client.id, ClientTeamMember.user_id == user_id
            )
        )
        .scalars()
        .first()
    )
    if existing is not None:
        return existing

    member = ClientTeamMember(firm_id=ctx.firm_id, client_id=client.id, user_id=user_id)
    session.add(member)
    session.flush()
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="clients.team_assigned",
        event_data={"client_id": str(client.id), "user_id": str(user_id)},
    )
    return member


def ensure_firm_member(*, session: Session, firm_id: UUID, user_id: UUID) -> Membership:
    membership = (
        session.execute(
            select(Membership).where(Membership.firm_id == firm_id, Membership.user_id == user_id)
        )
        .scalars()
        .first()
    )
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="User is not a firm member"
        )
    return membership
