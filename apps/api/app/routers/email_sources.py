from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.core.deps import FirmContext, require_csrf_header, require_firm, require_roles
from app.db.session import get_session
from app.schemas.email_sources import (
    EmailSourceCreateRequest,
    EmailSourceOut,
    EmailSourceUpdateRequest,
)
from app.services.email_sources import create_source, delete_source, list_sources, update_source
from app.services.visibility import SOURCE_ADMIN_ROLES

router = APIRouter(
    prefix="/email-sources", tags=["email-sources"], dependencies=[Depends(require_csrf_header)]
)


@router.get("", response_model=list[EmailSourceOut])
def sources_list(
    ctx: FirmContext = Depends(require_firm), session: Session = Depends(get_session)
) -> list[EmailSourceOut]:
    return list_sources(session=session, firm_id=ctx.firm_id)


@router.post("", response_model=EmailSourceOut, status_code=status.HTTP_201_CREATED)
def sources_create(
    payload: EmailSourceCreateRequest,
    ctx: FirmContext = Depends(require_roles(SOURCE_ADMIN_ROLES)),
    session: Session = Depends(get_session),
) -> EmailSourceOut:
    source = create_source(
        session=session,
        ctx=ctx,
        name=payload.name,
        category=payload.category,
        domains=payload.domains,
        emails=payload.emails,
        classification_hint=payload.classification_hint,
    )
    session.commit()
    return source


@router.patch("/{source_id}", response_model=EmailSourceOut)
def sources_update(
    source_id: UUID,
    payload: EmailSourceUpdateRequest,
    ctx: FirmContext = Depends(require_roles(SOURCE_ADMIN_ROLES)),
    session: Session = Depends(get_session),
) -> EmailSourceOut:
    source = update_source(
        session=session,
        ctx=ctx,
        source_id=source_id,
        fields=payload.model_dump(exclude_unset=True),
    )
    session.commit()
    return source


@router.delete("/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
def sources_delete(
    source_id: UUID,
    ctx: FirmContext = Depends(require_roles(SOURCE_ADMIN_ROLES)),
    session: Session = Depends(get_session),
) -> Response:
    delete_source(session=session, ctx=ctx, source_id=source_id)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
