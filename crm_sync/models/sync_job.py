"""Integration sync job database model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, CheckConstraint
from crm_sync.database.database import Base

JOB_STATUSES = ("queued", "running", "retrying", "succeeded", "failed")


class IntegrationSyncJob(Base):
    """Model for one sync attempt lineage of an integration.

    The ``job_id`` is stable across retries; ``attempt`` is written by the
    orchestrator on every transition.
    """

    __tablename__ = "integration_sync_jobs"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String, nullable=False, unique=True, index=True)
    integration_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="queued")
    attempt = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)
    summary = Column(JSON, nullable=True)
    last_error = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{status}'" for status in JOB_STATUSES) + ")",
            name='ck_sync_job_status'
        ),
        CheckConstraint("attempt >= 0", name='ck_sync_job_attempt'),
        CheckConstraint("max_attempts > 0", name='ck_sync_job_max_attempts'),
    )
