"""Role classification and firm-scoped visibility predicates.

Full-access roles (Partner, Associate, BusinessOwner) see everything in their
firm. Assignment-based roles (AssociateJr, Paralegal) see only the cases they
are on the team of, the clients they are assigned to (directly or through one
of those cases), and the email filed against either.

Private notes are visible to their author only, whatever the role.

Each ``*_visibility_clause`` returns a SQLAlchemy boolean expression meant to be
AND-ed into a ``select``; no query is executed here.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import ColumnElement, and_, or_, select
from sqlalchemy.orm import Session

from app.core.deps import FirmContext
from app.models.enums import FirmRole
from app.models.mail import Email
from app.models.practice import Case, CaseNote, CaseTeamMember, Client, ClientTeamMember

FULL_ACCESS_ROLES = frozenset({FirmRole.partner, FirmRole.associate, FirmRole.business_owner})
ASSIGNMENT_BASED_ROLES = frozenset({FirmRole.associate_jr, FirmRole.paralegal})

# Mutation gates.
CLIENT_EDITOR_ROLES = FULL_ACCESS_ROLES
CLIENT_DELETE_ROLES = frozenset({FirmRole.partner})
CASE_EDITOR_ROLES = FULL_ACCESS_ROLES
TEAM_MANAGER_ROLES = FULL_ACCESS_ROLES
SOURCE_ADMIN_ROLES = frozenset({FirmRole.partner, FirmRole.business_owner})
ALL_ROLES = frozenset(FirmRole)


def is_full_access(role: FirmRole) -> bool:
    return role in FULL_ACCESS_ROLES


def is_assignment_based(role: FirmRole) -> bool:
    return role in ASSIGNMENT_BASED_ROLES


def _assigned_case_ids(user_id: UUID):
    return select(CaseTeamMember.case_id).where(CaseTeamMember.user_id == user_id)


def _assigned_client(client_id_col, user_id: UUID) -> ColumnElement[bool]:
    direct = select(ClientTeamMember.client_id).where(ClientTeamMember.user_id == user_id)
    via_case = select(Case.client_id).where(
        Case.id.in_(_assigned_case_ids(user_id)), Case.client_id.is_not(None)
    )
    return or_(client_id_col.in_(direct), client_id_col.in_(via_case))


def case_visibility_clause(ctx: FirmContext) -> ColumnElement[bool]:
    clause = Case.firm_id == ctx.firm_id
    if is_full_access(ctx.role):
        return clause
    return and_(clause, Case.id.in_(_assigned_case_ids(ctx.user_id)))


def client_visibility_clause(ctx: FirmContext) -> ColumnElement[bool]:
    clause = Client.firm_id == ctx.firm_id
    if is_full_access(ctx.role):
        return clause
    return and_(clause, _assigned_client(Client.id, ctx.user_id))


def note_visibility_clause(ctx: FirmContext) -> ColumnElement[bool]:
    return and_(
        CaseNote.firm_id == ctx.firm_id,
        or_(CaseNote.is_private.is_(False), CaseNote.author_user_id == ctx.user_id),
    )


def email_visibility_clause(ctx: FirmContext) -> ColumnElement[bool]:
    clause = Email.firm_id == ctx.firm_id
    if is_full_access(ctx.role):
        return clause
    return and_(
        clause,
        or_(
            Email.case_id.in_(_assigned_case_ids(ctx.user_id)),
            and_(
                Email.case_id.is_(None),
                _assigned_client(Email.client_id, ctx.user_id),
            ),
            Email.owner_user_id == ctx.user_id,
        ),
    )


def can_access_case(*, session: Session, ctx: FirmContext, case: Case) -> bool:
    if case.firm_id != ctx.firm_id:
        return False
    if is_full_access(ctx.role):
        return True
    return (
        session.execute(
            select(CaseTeamMember.id).where(
                CaseTeamMember.case_id == case.id, CaseTeamMember.user_id == ctx.user_id
            )
        ).first()
        is not None
    )


def ensure_case_access(*, session: Session, ctx: FirmContext, case_id: UUID) -> Case:
    """Load a case for the caller: 404 outside the firm, 403 when not assigned."""
    case = session.get(Case, case_id)
    if case is None or case.firm_id != ctx.firm_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    if not can_access_case(session=session, ctx=ctx, case=case):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not assigned to this case")
    return case


def ensure_client_access(*, session: Session, ctx: FirmContext, client_id: UUID) -> Client:
    """Clients outside the caller's visibility read as missing."""
    client = (
        session.execute(
            select(Client).where(Client.id == client_id, client_visibility_clause(ctx))
        )
        .scalars()
        .first()
    )
    if client is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client
