from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import hash_session_token, new_random_token
from app.models.auth import AuthSession
from app.models.enums import FirmRole
from app.models.identity import Firm, Membership, User
from app.services.audit import log_event

DEFAULT_DEV_ROLE = FirmRole.partner


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _firm_by_name(session: Session, name: str) -> Firm:
    firm = (
        session.execute(select(Firm).where(Firm.name == name).order_by(Firm.created_at.asc()))
        .scalars()
        .first()
    )
    if firm is None:
        firm = Firm(name=name)
        session.add(firm)
        session.flush()
    return firm


def _user_by_email(session: Session, email: str) -> User:
    user = session.execute(select(User).where(User.email == email)).scalars().first()
    if user is None:
        user = User(email=email)
        session.add(user)
        session.flush()
    return user


def get_membership(*, session: Session, firm_id: UUID, user_id: UUID) -> Membership | None:
    return (
        session.execute(
            select(Membership).where(Membership.firm_id == firm_id, Membership.user_id == user_id)
        )
        .scalars()
        .first()
    )


def _open_session(session: Session, *, user: User, firm: Firm) -> tuple[str, AuthSession]:
    token = new_random_token()
    ttl = timedelta(seconds=get_settings().SESSION_TTL_SECONDS)
    auth_session = AuthSession(
        user_id=user.id,
        active_firm_id=firm.id,
        token_hash=hash_session_token(token),
        expires_at=datetime.now(UTC) + ttl,
    )
    session.add(auth_session)
    session.flush()
    return token, auth_session


def create_dev_session(
    *,
    session: Session,
    email: str,
    firm_name: str,
    role: FirmRole | None = None,
) -> tuple[str, AuthSession, Firm, Membership, User]:
    """Log in without an identity provider (dev/test only).

    The firm and user are created on first use. A new membership gets ``role``,
    or Partner when none is given; an existing membership keeps its role unless
    ``role`` is passed explicitly.
    """
    if not get_settings().ALLOW_DEV_LOGIN:
        # Behaves as an unknown route when disabled.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    email_norm = normalize_email(email)
    if "@" not in email_norm or " " in email_norm:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email")
    name = firm_name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Firm name is required"
        )

    firm = _firm_by_name(session, name)
    user = _user_by_email(session, email_norm)
    membership = get_membership(session=session, firm_id=firm.id, user_id=user.id)
    if membership is None:
        membership = Membership(firm_id=firm.id, user_id=user.id, role=role or DEFAULT_DEV_ROLE)
        session.add(membership)
    elif role is not None:
        membership.role = role
    session.flush()

    token, auth_session = _open_session(session, user=user, firm=firm)
    log_event(
        session=session,
        firm_id=firm.id,
        actor_user_id=user.id,
        event_type="auth.dev_login",
        event_data={"role": membership.role.value},
    )
    return token, auth_session, firm, membership, user


def revoke_session(*, session: Session, auth_session: AuthSession, reason: str) -> None:
    auth_session.revoked_at = datetime.now(UTC)
    auth_session.revoked_reason = reason
    session.flush()
    log_event(
        session=session,
        firm_id=auth_session.active_firm_id,
        actor_user_id=auth_session.user_id,
        event_type="auth.logout",
        event_data={"reason": reason},
    )


def switch_firm(
    *,
    session: Session,
    auth_session: AuthSession,
    user_id: UUID,
    firm_id: UUID,
) -> Membership:
    """Point the session at another firm the user belongs to."""
    membership = get_membership(session=session, firm_id=firm_id, user_id=user_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this firm")
    previous_firm_id = auth_session.active_firm_id
    auth_session.active_firm_id = firm_id
    session.flush()
    log_event(
        session=session,
        firm_id=firm_id,
        actor_user_id=user_id,
        event_type="auth.switch_firm",
        event_data={"from_firm_id": str(previous_firm_id), "role": membership.role.value},
    )
    return membership
