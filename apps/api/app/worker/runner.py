from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.logging import log_json
from app.core.metrics import observe_job
from app.db.session import get_sessionmaker
from app.models.base import utcnow
from app.models.enums import JobStatus, JobType
from app.models.jobs import BgJob
from app.worker.errors import PermanentJobError
from app.worker.handlers import handle_job

logger = logging.getLogger("legal.worker")


@dataclass(frozen=True)
class WorkerConfig:
    poll_interval_seconds: float = 0.5
    max_backoff_seconds: float = 60.0
    worker_id: str = socket.gethostname()


def run_worker_forever(config: WorkerConfig) -> None:
    log_json(logger, logging.INFO, "worker.started", worker_id=config.worker_id)
    while True:
        ran = run_one_job(config=config)
        if not ran:
            time.sleep(config.poll_interval_seconds)


def run_until_idle(*, config: WorkerConfig, max_jobs: int = 1000) -> int:
    """Drain every job that is due now; returns how many ran."""
    ran = 0
    while ran < max_jobs and run_one_job(config=config):
        ran += 1
    return ran


def run_one_job(*, config: WorkerConfig) -> bool:
    session = get_sessionmaker()()
    try:
        claimed = _claim_next_job(session=session, worker_id=config.worker_id)
        session.commit()
        if claimed is None:
            return False

        job_id, job_type, payload = claimed
        try:
            handle_job(session=session, job_id=job_id, job_type=job_type, payload=payload)
        except PermanentJobError as e:
            session.rollback()
            _mark_failed(session=session, config=config, job_id=job_id, error=str(e), permanent=True)
        except Exception as e:
            session.rollback()
            logger.exception("job %s (%s) raised", job_id, job_type.value)
            _mark_failed(session=session, config=config, job_id=job_id, error=str(e), permanent=False)
        else:
            _mark_succeeded(session=session, job_id=job_id)
            observe_job(job_type=job_type.value, outcome="succeeded")

        session.commit()
        return True
    finally:
        session.close()


def _claim_next_job(*, session: Session, worker_id: str) -> tuple[UUID, JobType, dict] | None:
    job = (
        session.execute(
            select(BgJob)
            .where(BgJob.status == JobStatus.queued, BgJob.run_at <= utcnow())
            .order_by(BgJob.run_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .first()
    )
    if job is None:
        return None

    now = utcnow()
    job.status = JobStatus.running
    job.locked_at = now
    job.locked_by = worker_id
    job.updated_at = now
    session.flush()
    return job.id, job.type, dict(job.payload or {})


def _mark_succeeded(*, session: Session, job_id: UUID) -> None:
    job = session.get(BgJob, job_id)
    if job is None:
        return
    job.status = JobStatus.succeeded
    job.last_error = None
    job.updated_at = utcnow()


def _mark_failed(
    *,
    session: Session,
    config: WorkerConfig,
    job_id: UUID,
    error: str,
    permanent: bool,
) -> None:
    job = session.get(BgJob, job_id, with_for_update=True)
    if job is None:
        return

    attempts = job.attempts + 1
    now = utcnow()
    job.attempts = attempts
    job.last_error = error
    job.updated_at = now

    if permanent or attempts >= job.max_attempts:
        job.status = JobStatus.failed
        observe_job(job_type=job.type.value, outcome="failed")
        log_json(
            logger,
            logging.ERROR,
            "worker.job.failed",
            job_id=job_id,
            job_type=job.type.value,
            attempts=attempts,
            permanent=permanent,
            error=error,
        )
        return

    backoff_seconds = min(config.max_backoff_seconds, 0.5 * (2 ** min(attempts, 8)))
    job.status = JobStatus.queued
    job.run_at = now + timedelta(seconds=backoff_seconds)
    observe_job(job_type=job.type.value, outcome="retried")
    log_json(
        logger,
        logging.WARNING,
        "worker.job.retry_scheduled",
        job_id=job_id,
        job_type=job.type.value,
        attempts=attempts,
        backoff_seconds=backoff_seconds,
        error=error,
    )
