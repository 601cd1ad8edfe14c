from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logging import log_json
from app.core.metrics import observe_classification, observe_classification_error
from app.models.enums import ClassificationState
from app.models.mail import Email
from app.services.classification import scorer
from app.services.classification.apply import apply_result
from app.services.classification.scorer import (
    ClassificationConfig,
    ClassificationResult,
    FirmIndex,
)

logger = logging.getLogger("legal.classification")


def classify_or_fallback(
    *,
    session: Session,
    email: Email,
    source: str,
    config: ClassificationConfig | None = None,
    index: FirmIndex | None = None,
    fallback_client_id: UUID | None = None,
) -> ClassificationResult:
    """Run the scorer; on any error return a safe unassigned verdict instead.

    The fallback is ClientInbox when the caller knows the owning client and
    Uncertain otherwise. No case is ever assigned on the error path.

    The scorer runs inside a savepoint so a failed query leaves the caller's
    transaction usable for writing the fallback.
    """
    session.flush()
    try:
        with session.begin_nested():
            result = scorer.classify_email(session=session, email=email, config=config, index=index)
    except Exception as e:
        observe_classification_error(source=source)
        log_json(
            logger,
            logging.ERROR,
            "classification.failed",
            email_id=email.id,
            firm_id=email.firm_id,
            source=source,
            error=repr(e),
        )
        logger.debug("classification traceback", exc_info=True)
        if fallback_client_id is not None:
            return ClassificationResult(
                state=ClassificationState.client_inbox,
                confidence=0.0,
                reason="classification failed",
                client_id=fallback_client_id,
                failed=True,
            )
        return ClassificationResult(
            state=ClassificationState.uncertain,
            confidence=0.0,
            reason="classification failed",
            failed=True,
        )

    observe_classification(
        source=source,
        state=result.state.value,
        match_type=result.match_type.value if result.match_type else None,
    )
    return result


def load_firm_index(*, session: Session, firm_id: UUID, source: str) -> FirmIndex | None:
    """Build the firm index once for a batch; None when the lookup itself fails.

    Callers pass None on to ``classify_or_fallback``, which then retries the
    lookup per email and falls back if it keeps failing.
    """
    session.flush()
    try:
        with session.begin_nested():
            return scorer.build_firm_index(session=session, firm_id=firm_id)
    except SQLAlchemyError as e:
        log_json(
            logger,
            logging.ERROR,
            "classification.index_failed",
            firm_id=firm_id,
            source=source,
            error=repr(e),
        )
        return None


def classify_batch(
    *,
    session: Session,
    firm_id: UUID,
    emails: Iterable[Email],
    classified_by: str = "auto",
    source: str = "batch",
    config: ClassificationConfig | None = None,
) -> dict[UUID, ClassificationResult]:
    """Score ``emails`` against one snapshot of the firm's open cases and store each verdict."""
    cfg = config or ClassificationConfig.from_settings()
    index = load_firm_index(session=session, firm_id=firm_id, source=source)
    results: dict[UUID, ClassificationResult] = {}
    for email in emails:
        result = classify_or_fallback(
            session=session, email=email, source=source, config=cfg, index=index
        )
        apply_result(session=session, email=email, result=result, classified_by=classified_by)
        results[email.id] = result
    return results
