"""Sync job store: creation, lifecycle transitions and summary aggregation."""

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from crm_sync.models.sync_job import IntegrationSyncJob
from crm_sync.services.errors import NotFoundError
from crm_sync.services.sync_types import SyncStats, empty_summary, normalize_summary

logger = logging.getLogger(__name__)


class SyncJobService:
    """Service for persisting sync jobs and moving them through their lifecycle.

    Transitions only check that the job exists. The orchestrator is responsible
    for calling them in a sensible order, and re-invoking a transition with the
    same arguments leaves the job in the same state.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        """Initialize sync job service.

        Args:
            clock: Source of "now" timestamps.
        """
        self.clock = clock

    def create_job(self, db: Session, integration_id: str, max_attempts: int) -> IntegrationSyncJob:
        """Create a queued job with a zeroed summary.

        Args:
            db: Database session.
            integration_id: External system the job syncs.
            max_attempts: Number of attempts the orchestrator may make.

        Returns:
            The created IntegrationSyncJob instance.

        Raises:
            ValueError: If max_attempts is not positive.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        now = self.clock()
        job = IntegrationSyncJob(
            job_id=self._create_job_id(integration_id),
            integration_id=integration_id,
            status="queued",
            attempt=0,
            max_attempts=max_attempts,
            summary=empty_summary(),
            created_at=now,
            updated_at=now
        )
        self._save(db, job)
        logger.info(f"Created sync job {job.job_id} for integration '{integration_id}'")
        return job

    def get_job(self, db: Session, job_id: str) -> IntegrationSyncJob:
        """Get a job by its job id.

        Raises:
            NotFoundError: If no job has this id.
        """
        job = db.query(IntegrationSyncJob).filter(IntegrationSyncJob.job_id == job_id).first()
        if not job:
            raise NotFoundError(f"Sync job not found: {job_id}")
        return job

    def get_job_view(self, db: Session, job_id: str) -> Dict[str, Any]:
        """Get a read-only projection of a job for external consumers."""
        return self.to_view(self.get_job(db, job_id))

    def list_jobs(
        self,
        db: Session,
        integration_id: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[IntegrationSyncJob]:
        """List jobs, most recently created first.

        Args:
            db: Database session.
            integration_id: Optional integration to filter by.
            limit: Maximum number of jobs to return.
            offset: Number of jobs to skip.
        """
        query = db.query(IntegrationSyncJob)
        if integration_id:
            query = query.filter(IntegrationSyncJob.integration_id == integration_id)
        return query.order_by(
            IntegrationSyncJob.created_at.desc(),
            IntegrationSyncJob.id.desc()
        ).limit(limit).offset(offset).all()

    def mark_running(self, db: Session, job_id: str, attempt: int) -> None:
        """Start an attempt. The summary is reset, so it only reflects this attempt."""
        def mutate(job: IntegrationSyncJob) -> None:
            job.status = "running"
            job.attempt = attempt
            job.summary = empty_summary()
            job.last_error = None
            if not job.started_at:
                job.started_at = self.clock()
            job.finished_at = None

        self._patch_job(db, job_id, mutate)
        logger.info(f"Sync job {job_id} running (attempt {attempt})")

    def mark_retrying(self, db: Session, job_id: str, attempt: int, error_message: str) -> None:
        def mutate(job: IntegrationSyncJob) -> None:
            job.status = "retrying"
            job.attempt = attempt
            job.last_error = error_message
            job.finished_at = None

        self._patch_job(db, job_id, mutate)
        logger.info(f"Sync job {job_id} retrying after attempt {attempt}")

    def mark_failed(self, db: Session, job_id: str, attempt: int, error_message: str) -> None:
        def mutate(job: IntegrationSyncJob) -> None:
            job.status = "failed"
            job.attempt = attempt
            job.last_error = error_message
            job.finished_at = self.clock()

        self._patch_job(db, job_id, mutate)
        logger.info(f"Sync job {job_id} failed on attempt {attempt}")

    def mark_succeeded(self, db: Session, job_id: str, attempt: int) -> None:
        def mutate(job: IntegrationSyncJob) -> None:
            job.status = "succeeded"
            job.attempt = attempt
            job.last_error = None
            job.finished_at = self.clock()

        self._patch_job(db, job_id, mutate)
        logger.info(f"Sync job {job_id} succeeded on attempt {attempt}")

    def append_dataset_summary(
        self,
        db: Session,
        job_id: str,
        record_type: str,
        stats: SyncStats
    ) -> None:
        """Add one dataset's stats to the job's per-type and total counters.

        Calls accumulate, so a record type reconciled in several pages sums up.

        Args:
            db: Database session.
            job_id: Job to update.
            record_type: Record type the stats belong to.
            stats: Stats returned by one reconciliation call.
        """
        def mutate(job: IntegrationSyncJob) -> None:
            summary = normalize_summary(job.summary)
            current = SyncStats.from_dict(summary["byType"].get(record_type))
            summary["byType"][record_type] = current.merge(stats).to_dict()
            summary["total"] = SyncStats.from_dict(summary["total"]).merge(stats).to_dict()
            # JSON column: assign a new value instead of mutating in place
            job.summary = summary

        self._patch_job(db, job_id, mutate)

    def to_view(self, job: IntegrationSyncJob) -> Dict[str, Any]:
        """Project a job row into plain, serializable values."""
        now = self.clock().isoformat()
        return {
            "jobId": job.job_id,
            "integrationId": job.integration_id,
            "status": job.status,
            "attempt": job.attempt,
            "maxAttempts": job.max_attempts,
            "summary": normalize_summary(job.summary),
            "lastError": job.last_error,
            "startedAt": self._to_iso(job.started_at),
            "finishedAt": self._to_iso(job.finished_at),
            "createdAt": self._to_iso(job.created_at) or now,
            "updatedAt": self._to_iso(job.updated_at) or now,
        }

    def _patch_job(
        self,
        db: Session,
        job_id: str,
        mutator: Callable[[IntegrationSyncJob], None]
    ) -> None:
        job = self.get_job(db, job_id)
        mutator(job)
        job.updated_at = self.clock()
        self._save(db, job)

    def _save(self, db: Session, job: IntegrationSyncJob) -> None:
        try:
            db.add(job)
            db.commit()
            db.refresh(job)
        except Exception:
            db.rollback()
            raise

    @staticmethod
    def _to_iso(value) -> Optional[str]:
        if not value:
            return None
        if isinstance(value, str):
            return value
        return value.isoformat()

    @staticmethod
    def _create_job_id(integration_id: str) -> str:
        return f"sync-{integration_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
