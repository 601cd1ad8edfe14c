from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.logging import log_json
from app.models.audit import AuditEvent

logger = logging.getLogger("legal.audit")


def log_event(
    *,
    session: Session,
    firm_id: UUID,
    actor_user_id: UUID | None,
    event_type: str,
    event_data: dict | None = None,
) -> AuditEvent:
    """Record a firm-scoped audit row in the caller's transaction and mirror it to the log."""
    data = dict(event_data or {})
    evt = AuditEvent(
        firm_id=firm_id, actor_user_id=actor_user_id, event_type=event_type, event_data=data
    )
    session.add(evt)
    session.flush()
    log_json(
        logger,
        logging.INFO,
        event_type,
        firm_id=firm_id,
        actor_user_id=actor_user_id,
        **data,
    )
    return evt
