from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.deps import FirmContext, require_csrf_header, require_firm, require_roles
from app.db.session import get_session
from app.schemas.clients import (
    ClientCreateRequest,
    ClientOut,
    ClientSummaryOut,
    ClientTeamMemberOut,
    ClientUpdateRequest,
    ContactInfo,
    PersonIn,
    TeamAssignRequest,
)
from app.services.clients import (
    ClientDetail,
    PersonInput,
    assign_client_team_member,
    create_client,
    delete_client,
    get_client_detail,
    list_clients,
    update_client,
)
from app.services.visibility import CLIENT_DELETE_ROLES, CLIENT_EDITOR_ROLES, TEAM_MANAGER_ROLES

router = APIRouter(prefix="/clients", tags=["clients"], dependencies=[Depends(require_csrf_header)])


def _people(items: list[PersonIn] | None) -> list[PersonInput] | None:
    if items is None:
        return None
    return [
        PersonInput(name=p.name, id=p.id, role=p.role, email=p.email, phone=p.phone) for p in items
    ]


def _client_out(detail: ClientDetail) -> ClientOut:
    client = detail.client
    return ClientOut(
        id=client.id,
        name=client.name,
        client_type=client.client_type,
        contact_info=ContactInfo(email=client.email, phone=client.phone),
        address=client.address,
        company_type=client.company_type,
        cui=client.cui,
        registration_number=client.registration_number,
        administrators=detail.administrators,
        contacts=detail.contacts,
        created_at=client.created_at,
        updated_at=client.updated_at,
    )


@router.get("", response_model=list[ClientSummaryOut])
def clients_list(
    q: str | None = Query(default=None, max_length=200),
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[ClientSummaryOut]:
    return list_clients(session=session, ctx=ctx, q=q)


@router.post("", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def clients_create(
    payload: ClientCreateRequest,
    ctx: FirmContext = Depends(require_roles(CLIENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> ClientOut:
    detail = create_client(
        session=session,
        ctx=ctx,
        name=payload.name,
        client_type=payload.client_type,
        email=payload.contact_info.email,
        phone=payload.contact_info.phone,
        address=payload.address,
        company_type=payload.company_type,
        cui=payload.cui,
        registration_number=payload.registration_number,
        administrators=_people(payload.administrators),
        contacts=_people(payload.contacts),
    )
    session.commit()
    return _client_out(detail)


@router.get("/{client_id}", response_model=ClientOut)
def clients_get(
    client_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> ClientOut:
    return _client_out(get_client_detail(session=session, ctx=ctx, client_id=client_id))


@router.patch("/{client_id}", response_model=ClientOut)
def clients_update(
    client_id: UUID,
    payload: ClientUpdateRequest,
    ctx: FirmContext = Depends(require_roles(CLIENT_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> ClientOut:
    fields = payload.model_dump(
        exclude_unset=True, exclude={"contact_info", "administrators", "contacts"}
    )
    if payload.contact_info is not None:
        fields.update(payload.contact_info.model_dump(exclude_unset=True))

    detail = update_client(
        session=session,
        ctx=ctx,
        client_id=client_id,
        fields=fields,
        administrators=_people(payload.administrators),
        contacts=_people(payload.contacts),
    )
    session.commit()
    return _client_out(detail)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def clients_delete(
    client_id: UUID,
    ctx: FirmContext = Depends(require_roles(CLIENT_DELETE_ROLES)),
    session: Session = Depends(get_session),
) -> Response:
    delete_client(session=session, ctx=ctx, client_id=client_id)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{client_id}/team",
    response_model=ClientTeamMemberOut,
    status_code=status.HTTP_201_CREATED,
)
def clients_team_assign(
    client_id: UUID,
    payload: TeamAssignRequest,
    ctx: FirmContext = Depends(require_roles(TEAM_MANAGER_ROLES)),
    session: Session = Depends(get_session),
) -> ClientTeamMemberOut:
    member = assign_client_team_member(
        session=session, ctx=ctx, client_id=client_id, user_id=payload.user_id
    )
    session.commit()
    return member
