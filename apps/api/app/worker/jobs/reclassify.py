from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.logging import log_json
from app.services import reclassification
from app.worker.errors import PermanentJobError

logger = logging.getLogger("legal.worker")


def _uuid(payload: dict, key: str, *, required: bool = True) -> UUID | None:
    raw = payload.get(key)
    if raw is None:
        if required:
            raise PermanentJobError(f"payload missing {key}")
        return None
    try:
        return UUID(str(raw))
    except ValueError as e:
        raise PermanentJobError(f"payload {key} is not a UUID") from e


def reclassify_addresses(*, session: Session, payload: dict) -> None:
    firm_id = _uuid(payload, "firm_id")
    client_id = _uuid(payload, "client_id", required=False)
    case_id = _uuid(payload, "case_id", required=False)
    addresses = [a for a in payload.get("addresses") or [] if isinstance(a, str)]
    released = [a for a in payload.get("released_addresses") or [] if isinstance(a, str)]
    if client_id is None and case_id is None:
        raise PermanentJobError("payload needs client_id or case_id")

    if case_id is not None:
        summary = reclassification.reclassify_for_case_addresses(
            session=session, firm_id=firm_id, case_id=case_id, addresses=addresses
        )
    else:
        summary = reclassification.reclassify_for_client_addresses(
            session=session, firm_id=firm_id, client_id=client_id, addresses=addresses
        )
    log_json(
        logger,
        logging.INFO,
        "reclassification.completed",
        firm_id=firm_id,
        client_id=client_id,
        case_id=case_id,
        reason=payload.get("reason"),
        **summary.as_dict(),
    )

    if client_id is not None and released:
        rescored = reclassification.rescore_released_addresses(
            session=session,
            firm_id=firm_id,
            client_id=client_id,
            addresses=released,
            keep_addresses=addresses,
        )
        log_json(
            logger,
            logging.INFO,
            "reclassification.released_rescored",
            firm_id=firm_id,
            client_id=client_id,
            **rescored.as_dict(),
        )


def route_source_emails(*, session: Session, payload: dict) -> None:
    moved = reclassification.route_emails_for_source(
        session=session,
        firm_id=_uuid(payload, "firm_id"),
        source_id=_uuid(payload, "source_id"),
    )
    log_json(logger, logging.INFO, "reclassification.source_routed", moved=moved, **payload)


def apply_case_reference(*, session: Session, payload: dict) -> None:
    references = [r for r in payload.get("references") or [] if isinstance(r, str)]
    assigned = reclassification.assign_by_case_references(
        session=session,
        firm_id=_uuid(payload, "firm_id"),
        case_id=_uuid(payload, "case_id"),
        references=references,
    )
    log_json(logger, logging.INFO, "reclassification.reference_applied", assigned=assigned, **payload)


def propagate_manual_assignment(*, session: Session, payload: dict) -> None:
    assigned = reclassification.propagate_manual_assignment(
        session=session,
        firm_id=_uuid(payload, "firm_id"),
        email_id=_uuid(payload, "email_id"),
        case_id=_uuid(payload, "case_id"),
        user_id=_uuid(payload, "user_id"),
    )
    log_json(logger, logging.INFO, "reclassification.pattern_applied", assigned=assigned, **payload)
