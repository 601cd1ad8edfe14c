from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import FirmContext
from app.models.base import utcnow
from app.models.enums import EmailSourceCategory
from app.models.mail import GlobalEmailSource
from app.services.audit import log_event
from app.services.classification.references import normalize_address_list, normalize_domain_list
from app.services.reclassification import trigger_source_registered


def _get_source(*, session: Session, firm_id: UUID, source_id: UUID) -> GlobalEmailSource:
    source = session.get(GlobalEmailSource, source_id)
    if source is None or source.firm_id != firm_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email source not found")
    return source


def _validate_addresses(emails: list[str]) -> list[str]:
    cleaned = normalize_address_list(emails)
    for addr in cleaned:
        if "@" not in addr or " " in addr:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid email: {addr}"
            )
    return cleaned


def list_sources(*, session: Session, firm_id: UUID) -> list[GlobalEmailSource]:
    return list(
        session.execute(
            select(GlobalEmailSource)
            .where(GlobalEmailSource.firm_id == firm_id)
            .order_by(GlobalEmailSource.name.asc())
        )
        .scalars()
        .all()
    )


def create_source(
    *,
    session: Session,
    ctx: FirmContext,
    name: str,
    category: EmailSourceCategory = EmailSourceCategory.court,
    domains: list[str] | None = None,
    emails: list[str] | None = None,
    classification_hint: str | None = None,
) -> GlobalEmailSource:
    name = (name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Source name is required"
        )
    domain_list = normalize_domain_list(domains or [])
    email_list = _validate_addresses(emails or [])
    if not domain_list and not email_list:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="At least one domain or email is required",
        )

    source = GlobalEmailSource(
        firm_id=ctx.firm_id,
        name=name,
        category=category,
        domains=domain_list,
        emails=email_list,
        classification_hint=(classification_hint or "").strip() or None,
    )
    session.add(source)
    try:
        session.flush()
    except IntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email source name already exists"
        ) from e

    trigger_source_registered(session=session, firm_id=ctx.firm_id, source_id=source.id)
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="email_sources.created",
        event_data={"source_id": str(source.id), "category": category.value},
    )
    return source


def update_source(
    *, session: Session, ctx: FirmContext, source_id: UUID, fields: dict
) -> GlobalEmailSource:
    source = _get_source(session=session, firm_id=ctx.firm_id, source_id=source_id)
    addresses_changed = False

    if "name" in fields:
        name = (fields["name"] or "").strip()
        if not name:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Source name is required"
            )
        source.name = name
    if "category" in fields and fields["category"] is not None:
        source.category = EmailSourceCategory(fields["category"])
    if "classification_hint" in fields:
        source.classification_hint = (fields["classification_hint"] or "").strip() or None
    if "domains" in fields:
        domains = normalize_domain_list(fields["domains"] or [])
        addresses_changed = addresses_changed or domains != source.domains
        source.domains = domains
    if "emails" in fields:
        emails = _validate_addresses(fields["emails"] or [])
        addresses_changed = addresses_changed or emails != source.emails
        source.emails = emails

    if not source.domains and not source.emails:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="At least one domain or email is required",
        )
    source.updated_at = utcnow()
    try:
        session.flush()
    except IntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email source name already exists"
        ) from e

    if addresses_changed:
        trigger_source_registered(session=session, firm_id=ctx.firm_id, source_id=source.id)
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="email_sources.updated",
        event_data={"source_id": str(source.id), "fields": sorted(fields)},
    )
    return source


def delete_source(*, session: Session, ctx: FirmContext, source_id: UUID) -> None:
    source = _get_source(session=session, firm_id=ctx.firm_id, source_id=source_id)
    session.delete(source)
    session.flush()
    log_event(
        session=session,
        firm_id=ctx.firm_id,
        actor_user_id=ctx.user_id,
        event_type="email_sources.deleted",
        event_data={"source_id": str(source_id)},
    )
