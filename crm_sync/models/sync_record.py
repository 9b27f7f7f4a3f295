"""Integration sync record database model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, UniqueConstraint, Index
from crm_sync.database.database import Base


class IntegrationSyncRecord(Base):
    """Local mirror row of one external record.

    One row per (integration, record type, external id). Rows are versioned by
    checksum and soft-deleted, never removed.
    """

    __tablename__ = "integration_sync_records"

    id = Column(Integer, primary_key=True, index=True)
    integration_id = Column(String, nullable=False)
    record_type = Column(String, nullable=False)
    external_id = Column(String, nullable=False)
    checksum = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    is_deleted = Column(Boolean, nullable=False, default=False)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False)
    last_synced_at = Column(DateTime, nullable=False)
    last_job_id = Column(String, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Constraints
    __table_args__ = (
        UniqueConstraint(
            'integration_id', 'record_type', 'external_id',
            name='uq_sync_record_identity'
        ),
        Index('ix_sync_records_integration_type', 'integration_id', 'record_type'),
    )
