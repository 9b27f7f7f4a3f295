"""Test database models and schema."""

import pytest
from datetime import datetime
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from crm_sync.models import IntegrationSyncJob, IntegrationSyncRecord, IntegrationConfig
from crm_sync.models.sync_job import JOB_STATUSES


def make_record(**overrides):
    now = datetime.utcnow()
    values = dict(
        integration_id="sat",
        record_type="invoices",
        external_id="1",
        checksum="abc",
        payload={"sourceId": "1"},
        first_seen_at=now,
        last_seen_at=now,
        last_synced_at=now,
    )
    values.update(overrides)
    return IntegrationSyncRecord(**values)


class TestIntegrationSyncJobModel:
    """Test IntegrationSyncJob model."""

    def test_create_job(self, db_session):
        job = IntegrationSyncJob(job_id="sync-sat-1-abcdef12", integration_id="sat", max_attempts=3)
        db_session.add(job)
        db_session.commit()

        assert job.id is not None
        assert job.status == "queued"
        assert job.attempt == 0
        assert job.created_at is not None
        assert job.updated_at is not None
        assert job.started_at is None

    def test_job_id_unique(self, db_session):
        db_session.add(IntegrationSyncJob(job_id="sync-1", integration_id="sat", max_attempts=3))
        db_session.commit()

        db_session.add(IntegrationSyncJob(job_id="sync-1", integration_id="glpi", max_attempts=3))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_invalid_status_rejected(self, db_session):
        db_session.add(IntegrationSyncJob(
            job_id="sync-2", integration_id="sat", max_attempts=3, status="paused"
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()

    @pytest.mark.parametrize("status", JOB_STATUSES)
    def test_every_job_status_accepted(self, db_session, status):
        db_session.add(IntegrationSyncJob(
            job_id=f"sync-{status}", integration_id="sat", max_attempts=3, status=status
        ))
        db_session.commit()
        assert db_session.query(IntegrationSyncJob).filter_by(job_id=f"sync-{status}").one().status == status

    def test_summary_json_round_trip(self, db_session):
        summary = {"total": {"processed": 1}, "byType": {"invoices": {"processed": 1}}}
        job = IntegrationSyncJob(job_id="sync-3", integration_id="sat", max_attempts=1, summary=summary)
        db_session.add(job)
        db_session.commit()
        db_session.expire_all()

        assert db_session.query(IntegrationSyncJob).filter_by(job_id="sync-3").first().summary == summary


class TestIntegrationSyncRecordModel:
    """Test IntegrationSyncRecord model."""

    def test_create_record(self, db_session):
        record = make_record()
        db_session.add(record)
        db_session.commit()

        assert record.id is not None
        assert record.is_deleted is False
        assert record.deleted_at is None

    def test_composite_identity_unique(self, db_session):
        db_session.add(make_record())
        db_session.commit()

        db_session.add(make_record(checksum="other"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_same_external_id_in_other_scope(self, db_session):
        db_session.add_all([
            make_record(),
            make_record(record_type="products"),
            make_record(integration_id="glpi"),
        ])
        db_session.commit()

        assert db_session.query(IntegrationSyncRecord).count() == 3

    def test_indexes(self, engine):
        indexes = {ix["name"]: ix["column_names"] for ix in inspect(engine).get_indexes("integration_sync_records")}
        assert indexes["ix_sync_records_integration_type"] == ["integration_id", "record_type"]


class TestIntegrationConfigModel:
    """Test IntegrationConfig model."""

    def test_integration_id_unique(self, db_session):
        db_session.add(IntegrationConfig(integration_id="glpi", config={}))
        db_session.commit()

        db_session.add(IntegrationConfig(integration_id="glpi", config={"a": 1}))
        with pytest.raises(IntegrityError):
            db_session.commit()
