"""Reconciliation of external datasets into the local sync record mirror."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set
from sqlalchemy.orm import Session

from crm_sync.models.sync_record import IntegrationSyncRecord
from crm_sync.services.checksum import compute_checksum, to_json_safe
from crm_sync.services.identity_resolver import resolve_external_id
from crm_sync.services.sync_types import RecordOutcome, SyncDataset, SyncStats

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Service for idempotently merging datasets into the sync record mirror.

    Each record is looked up by ``(integration_id, record_type, external_id)``
    and then inserted or replaced. The read-decide-write sequence is not atomic,
    so sync jobs for one integration should run one at a time.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        """Initialize reconciliation service.

        Args:
            clock: Source of "now" timestamps.
        """
        self.clock = clock

    def reconcile_dataset(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        dataset: SyncDataset
    ) -> SyncStats:
        """Merge one dataset into the mirror and classify every record.

        Records are handled in input order and a failing record never stops the
        batch. After the main pass, ids listed in ``deleted_external_ids`` that
        were not seen in ``records`` are soft-deleted; presence in ``records``
        wins over a deletion for the same id.

        Args:
            db: Database session.
            job_id: Job performing the sync.
            integration_id: External system the records come from.
            dataset: Records of a single record type.

        Returns:
            Stats for this call only.

        Raises:
            SQLAlchemyError: If storage fails during the deletion pass.
        """
        stats = SyncStats()
        seen: Set[str] = set()

        for index, record in enumerate(dataset.records):
            outcome = self._reconcile_record(db, job_id, integration_id, dataset, record, index, seen)
            stats.record(outcome)

        for external_id in dict.fromkeys(dataset.deleted_external_ids or []):
            if not external_id or external_id in seen:
                continue
            if self._soft_delete(db, job_id, integration_id, dataset.record_type, external_id):
                stats.deleted += 1

        logger.info(
            f"Reconciled {integration_id}/{dataset.record_type} for job {job_id}: "
            f"{stats.created} created, {stats.updated} updated, {stats.unchanged} unchanged, "
            f"{stats.deleted} deleted, {stats.failed} failed"
        )
        return stats

    def get_record(
        self,
        db: Session,
        integration_id: str,
        record_type: str,
        external_id: str
    ) -> Optional[IntegrationSyncRecord]:
        """Get a mirror row by its composite identity, or None."""
        return db.query(IntegrationSyncRecord).filter(
            IntegrationSyncRecord.integration_id == integration_id,
            IntegrationSyncRecord.record_type == record_type,
            IntegrationSyncRecord.external_id == external_id
        ).first()

    def _reconcile_record(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        dataset: SyncDataset,
        record: Dict[str, Any],
        index: int,
        seen: Set[str]
    ) -> RecordOutcome:
        try:
            external_id = resolve_external_id(record, index, dataset.external_id_field)
            if not external_id:
                logger.warning(
                    f"Skipping {integration_id}/{dataset.record_type} record at index {index}: "
                    f"no value for '{dataset.external_id_field}'"
                )
                return RecordOutcome.FAILED

            seen.add(external_id)
            now = self.clock()
            checksum = compute_checksum(record)
            existing = self.get_record(db, integration_id, dataset.record_type, external_id)

            if not existing:
                db.add(IntegrationSyncRecord(
                    integration_id=integration_id,
                    record_type=dataset.record_type,
                    external_id=external_id,
                    checksum=checksum,
                    payload=to_json_safe(record),
                    is_deleted=False,
                    first_seen_at=now,
                    last_seen_at=now,
                    last_synced_at=now,
                    last_job_id=job_id
                ))
                db.commit()
                return RecordOutcome.CREATED

            # Resurrecting a soft-deleted row counts as a change
            changed = existing.checksum != checksum or existing.is_deleted
            existing.checksum = checksum
            existing.payload = to_json_safe(record)
            existing.is_deleted = False
            existing.deleted_at = None
            existing.last_seen_at = now
            existing.last_synced_at = now
            existing.last_job_id = job_id
            db.commit()

            return RecordOutcome.UPDATED if changed else RecordOutcome.UNCHANGED

        except Exception:
            db.rollback()
            logger.error(
                f"Failed to reconcile {integration_id}/{dataset.record_type} record at index {index}",
                exc_info=True
            )
            return RecordOutcome.FAILED

    def _soft_delete(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        record_type: str,
        external_id: str
    ) -> bool:
        existing = self.get_record(db, integration_id, record_type, external_id)
        if not existing or existing.is_deleted:
            return False

        now = self.clock()
        existing.is_deleted = True
        existing.deleted_at = now
        existing.last_synced_at = now
        existing.last_job_id = job_id
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        return True
