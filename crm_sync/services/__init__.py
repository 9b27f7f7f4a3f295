"""Services package."""

from crm_sync.services.encryption_service import EncryptionService
from crm_sync.services.integration_config_service import IntegrationConfigService
from crm_sync.services.reconciliation_service import ReconciliationService
from crm_sync.services.sync_job_service import SyncJobService
from crm_sync.services.sync_service import SyncService

__all__ = [
    "EncryptionService",
    "IntegrationConfigService",
    "ReconciliationService",
    "SyncJobService",
    "SyncService",
]
