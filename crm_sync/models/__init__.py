"""Database models package."""

from crm_sync.models.sync_job import IntegrationSyncJob
from crm_sync.models.sync_record import IntegrationSyncRecord
from crm_sync.models.integration_config import IntegrationConfig

__all__ = [
    "IntegrationSyncJob",
    "IntegrationSyncRecord",
    "IntegrationConfig",
]
