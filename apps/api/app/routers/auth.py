from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.core.deps import require_csrf_header, require_session
from app.core.security import (
    clear_auth_cookies,
    new_random_token,
    set_csrf_cookie,
    set_session_cookie,
)
from app.db.session import get_session
from app.models.auth import AuthSession
from app.models.identity import User
from app.schemas.auth import CsrfTokenResponse, DevLoginRequest, LoginResponse, SwitchFirmRequest
from app.services.auth.sessions import create_dev_session, revoke_session, switch_firm

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(require_csrf_header)])


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@router.get("/csrf", response_model=CsrfTokenResponse)
def issue_csrf(response: Response) -> CsrfTokenResponse:
    token = new_random_token()
    set_csrf_cookie(response, token)
    _no_store(response)
    return CsrfTokenResponse(csrf_token=token)


@router.post("/dev/login", response_model=LoginResponse)
def dev_login(
    payload: DevLoginRequest, response: Response, session: Session = Depends(get_session)
) -> LoginResponse:
    token, auth_session, firm, membership, user = create_dev_session(
        session=session, email=payload.email, firm_name=payload.firm_name, role=payload.role
    )
    session.commit()

    # Rotate the CSRF token together with the session.
    csrf = new_random_token()
    set_session_cookie(response, token)
    set_csrf_cookie(response, csrf)
    _no_store(response)
    return LoginResponse(
        user=user, firm=firm, role=membership.role, session=auth_session, csrf_token=csrf
    )


@router.post("/logout")
def logout(
    response: Response,
    auth: tuple[AuthSession, User] = Depends(require_session),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    auth_session, _ = auth
    revoke_session(session=session, auth_session=auth_session, reason="logout")
    session.commit()

    clear_auth_cookies(response)
    _no_store(response)
    return {"status": "ok"}


@router.post("/switch-firm")
def switch_active_firm(
    payload: SwitchFirmRequest,
    auth: tuple[AuthSession, User] = Depends(require_session),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    auth_session, user = auth
    membership = switch_firm(
        session=session, auth_session=auth_session, user_id=user.id, firm_id=payload.firm_id
    )
    session.commit()
    return {"status": "ok", "role": membership.role.value}
