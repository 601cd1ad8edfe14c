from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.models.enums import JobType
from app.worker.jobs.reclassify import (
    apply_case_reference,
    propagate_manual_assignment,
    reclassify_addresses,
    route_source_emails,
)


def handle_job(*, session: Session, job_id: UUID, job_type: JobType, payload: dict) -> None:
    _ = job_id
    if job_type == JobType.reclassify_addresses:
        reclassify_addresses(session=session, payload=payload)
        return
    if job_type == JobType.route_source_emails:
        route_source_emails(session=session, payload=payload)
        return
    if job_type == JobType.apply_case_reference:
        apply_case_reference(session=session, payload=payload)
        return
    if job_type == JobType.propagate_manual_assignment:
        propagate_manual_assignment(session=session, payload=payload)
        return

    raise NotImplementedError(f"Job type not implemented: {job_type.value}")
