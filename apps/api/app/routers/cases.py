from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.core.deps import FirmContext, require_csrf_header, require_firm, require_roles
from app.db.session import get_session
from app.models.enums import CaseStatus
from app.schemas.cases import (
    CaseActorCreateRequest,
    CaseActorOut,
    CaseCreateRequest,
    CaseNoteCreateRequest,
    CaseNoteOut,
    CaseOut,
    CaseTeamAssignRequest,
    CaseTeamMemberOut,
    CaseUpdateRequest,
)
from app.services.cases import (
    add_case_actor,
    assign_case_team_member,
    create_case,
    create_case_note,
    list_case_actors,
    list_case_notes,
    list_case_team,
    list_cases,
    remove_case_team_member,
    update_case,
)
from app.services.visibility import CASE_EDITOR_ROLES, TEAM_MANAGER_ROLES, ensure_case_access

router = APIRouter(prefix="/cases", tags=["cases"], dependencies=[Depends(require_csrf_header)])


@router.get("", response_model=list[CaseOut])
def cases_list(
    status_filter: CaseStatus | None = None,
    client_id: UUID | None = None,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[CaseOut]:
    return list_cases(session=session, ctx=ctx, status_filter=status_filter, client_id=client_id)


@router.post("", response_model=CaseOut, status_code=status.HTTP_201_CREATED)
def cases_create(
    payload: CaseCreateRequest,
    ctx: FirmContext = Depends(require_roles(CASE_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> CaseOut:
    case = create_case(
        session=session,
        ctx=ctx,
        title=payload.title,
        client_id=payload.client_id,
        case_number=payload.case_number,
        description=payload.description,
        case_status=payload.status,
        reference_numbers=payload.reference_numbers,
        keywords=payload.keywords,
        subject_patterns=payload.subject_patterns,
        company_domain=payload.company_domain,
    )
    session.commit()
    return case


@router.get("/{case_id}", response_model=CaseOut)
def cases_get(
    case_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> CaseOut:
    return ensure_case_access(session=session, ctx=ctx, case_id=case_id)


@router.patch("/{case_id}", response_model=CaseOut)
def cases_update(
    case_id: UUID,
    payload: CaseUpdateRequest,
    ctx: FirmContext = Depends(require_roles(CASE_EDITOR_ROLES)),
    session: Session = Depends(get_session),
) -> CaseOut:
    case = update_case(
        session=session, ctx=ctx, case_id=case_id, fields=payload.model_dump(exclude_unset=True)
    )
    session.commit()
    return case


@router.get("/{case_id}/team", response_model=list[CaseTeamMemberOut])
def cases_team_list(
    case_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[CaseTeamMemberOut]:
    return list_case_team(session=session, ctx=ctx, case_id=case_id)


@router.post(
    "/{case_id}/team", response_model=CaseTeamMemberOut, status_code=status.HTTP_201_CREATED
)
def cases_team_assign(
    case_id: UUID,
    payload: CaseTeamAssignRequest,
    ctx: FirmContext = Depends(require_roles(TEAM_MANAGER_ROLES)),
    session: Session = Depends(get_session),
) -> CaseTeamMemberOut:
    member = assign_case_team_member(
        session=session, ctx=ctx, case_id=case_id, user_id=payload.user_id, role=payload.role
    )
    session.commit()
    return member


@router.delete("/{case_id}/team/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def cases_team_remove(
    case_id: UUID,
    user_id: UUID,
    ctx: FirmContext = Depends(require_roles(TEAM_MANAGER_ROLES)),
    session: Session = Depends(get_session),
) -> Response:
    remove_case_team_member(session=session, ctx=ctx, case_id=case_id, user_id=user_id)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{case_id}/actors", response_model=list[CaseActorOut])
def cases_actors_list(
    case_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[CaseActorOut]:
    return list_case_actors(session=session, ctx=ctx, case_id=case_id)


@router.post("/{case_id}/actors", response_model=CaseActorOut, status_code=status.HTTP_201_CREATED)
def cases_actors_add(
    case_id: UUID,
    payload: CaseActorCreateRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> CaseActorOut:
    actor = add_case_actor(
        session=session,
        ctx=ctx,
        case_id=case_id,
        name=payload.name,
        role=payload.role,
        organization=payload.organization,
        email=payload.email,
        email_domains=payload.email_domains,
    )
    session.commit()
    return actor


@router.get("/{case_id}/notes", response_model=list[CaseNoteOut])
def cases_notes_list(
    case_id: UUID,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> list[CaseNoteOut]:
    return list_case_notes(session=session, ctx=ctx, case_id=case_id)


@router.post("/{case_id}/notes", response_model=CaseNoteOut, status_code=status.HTTP_201_CREATED)
def cases_notes_create(
    case_id: UUID,
    payload: CaseNoteCreateRequest,
    ctx: FirmContext = Depends(require_firm),
    session: Session = Depends(get_session),
) -> CaseNoteOut:
    note = create_case_note(
        session=session, ctx=ctx, case_id=case_id, body=payload.body, is_private=payload.is_private
    )
    session.commit()
    return note
