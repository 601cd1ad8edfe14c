from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.base import utcnow
from app.models.enums import JobStatus, JobType
from app.models.jobs import BgJob


def enqueue_job(
    *,
    session: Session,
    job_type: JobType,
    firm_id: UUID | None,
    payload: dict,
    dedupe_key: str | None,
    run_at: datetime | None = None,
    max_attempts: int = 10,
) -> UUID | None:
    """Queue a job in the caller's transaction.

    Returns None when a queued job with the same ``dedupe_key`` is already
    waiting; that job covers this request too.
    """
    if dedupe_key is not None:
        existing = session.execute(
            select(BgJob.id).where(
                BgJob.dedupe_key == dedupe_key,
                BgJob.status == JobStatus.queued,
            )
        ).first()
        if existing is not None:
            return None

    job = BgJob(
        firm_id=firm_id,
        type=job_type,
        status=JobStatus.queued,
        run_at=run_at or utcnow(),
        attempts=0,
        max_attempts=max_attempts,
        dedupe_key=dedupe_key,
        payload=payload,
    )
    session.add(job)
    session.flush()
    return job.id
