"""Request dependencies: session cookie, CSRF header and the active firm.

Every firm-scoped route depends on ``require_firm`` (or ``require_roles``),
which resolves the caller's session to a ``FirmContext``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import hash_session_token, tokens_match
from app.db.session import get_session
from app.models.auth import AuthSession
from app.models.enums import FirmRole
from app.models.identity import Firm, Membership, User

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class FirmContext:
    firm: Firm
    membership: Membership
    user: User
    session: AuthSession

    @property
    def firm_id(self) -> UUID:
        return self.firm.id

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def role(self) -> FirmRole:
        return self.membership.role


def require_csrf_header(request: Request) -> None:
    """Double-submit check: the CSRF header must echo the CSRF cookie."""
    if request.method in SAFE_METHODS:
        return
    settings = get_settings()
    if not tokens_match(
        request.cookies.get(settings.CSRF_COOKIE_NAME),
        request.headers.get(settings.CSRF_HEADER_NAME),
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="CSRF token missing or invalid")


def require_session(
    request: Request,
    session: Session = Depends(get_session),
) -> tuple[AuthSession, User]:
    raw = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    row = session.execute(
        select(AuthSession, User)
        .join(User, User.id == AuthSession.user_id)
        .where(
            AuthSession.token_hash == hash_session_token(raw),
            AuthSession.revoked_at.is_(None),
            AuthSession.expires_at > datetime.now(UTC),
        )
    ).first()
    if row is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    auth_session, user = row
    if user.is_disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
    return auth_session, user


def require_firm(
    auth: tuple[AuthSession, User] = Depends(require_session),
    session: Session = Depends(get_session),
) -> FirmContext:
    auth_session, user = auth
    row = session.execute(
        select(Firm, Membership)
        .join(Membership, Membership.firm_id == Firm.id)
        .where(Firm.id == auth_session.active_firm_id, Membership.user_id == user.id)
    ).first()
    if row is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this firm")

    firm, membership = row
    return FirmContext(firm=firm, membership=membership, user=user, session=auth_session)


def require_roles(roles: Iterable[FirmRole]):
    """Dependency factory: the caller's firm role must be one of ``roles``."""
    allowed = frozenset(roles)

    def _dep(ctx: FirmContext = Depends(require_firm)) -> FirmContext:
        if ctx.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role {ctx.role.value} may not perform this action",
            )
        return ctx

    return _dep
