from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, enum_type, utcnow
from app.models.enums import JobStatus, JobType


class BgJob(Base):
    __tablename__ = "bg_jobs"
    __table_args__ = (
        Index("ix_bg_jobs_status_run_at", "status", "run_at"),
        Index("ix_bg_jobs_dedupe_key", "dedupe_key"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    firm_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("firms.id", ondelete="CASCADE"), nullable=True
    )

    type: Mapped[JobType] = mapped_column(enum_type(JobType, name="job_type"), nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        enum_type(JobStatus, name="job_status"), nullable=False, default=JobStatus.queued
    )

    run_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    dedupe_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
