"""Integration sync API endpoints."""

import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from crm_sync.database.database import SessionLocal, get_db
from crm_sync.services.encryption_service import EncryptionService
from crm_sync.services.errors import NotFoundError
from crm_sync.services.integration_config_service import IntegrationConfigService
from crm_sync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


class SyncStatsResponse(BaseModel):
    """Reconciliation counters."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    failed: int = 0


class SyncSummaryResponse(BaseModel):
    """Job summary grouped by record type."""

    total: SyncStatsResponse
    by_type: Dict[str, SyncStatsResponse] = Field(default_factory=dict, alias="byType")

    class Config:
        populate_by_name = True


class SyncJobResponse(BaseModel):
    """Sync job view."""

    job_id: str = Field(alias="jobId")
    integration_id: str = Field(alias="integrationId")
    status: str
    attempt: int
    max_attempts: int = Field(alias="maxAttempts")
    summary: SyncSummaryResponse
    last_error: Optional[str] = Field(default=None, alias="lastError")
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    finished_at: Optional[str] = Field(default=None, alias="finishedAt")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    class Config:
        populate_by_name = True


class TriggerSyncResponse(BaseModel):
    """Sync trigger response."""

    message: str
    job_id: str = Field(alias="jobId")

    class Config:
        populate_by_name = True


class ConfigureResponse(BaseModel):
    """Integration configure response."""

    integration_id: str = Field(alias="integrationId")
    configured_keys: List[str] = Field(alias="configuredKeys")

    class Config:
        populate_by_name = True


class IntegrationStatusResponse(BaseModel):
    """Registered integration summary."""

    integration_id: str = Field(alias="integrationId")
    configured: bool
    sync_in_progress: bool = Field(alias="syncInProgress")

    class Config:
        populate_by_name = True


class ConnectionTestResponse(BaseModel):
    """Connection test response."""

    success: bool
    message: str


def get_sync_service(request: Request) -> SyncService:
    """Get the application's sync service instance."""
    return request.app.state.sync_service


def get_session_factory() -> sessionmaker:
    """Get the session factory used by background sync runs."""
    return SessionLocal


def get_config_service() -> IntegrationConfigService:
    """Get integration config service instance."""
    return IntegrationConfigService(EncryptionService())


async def run_sync_in_background(
    service: SyncService,
    session_factory: sessionmaker,
    job_id: str,
    integration_id: str,
    max_attempts: int
) -> None:
    """Run a sync job with its own session, outliving the request session."""
    db = session_factory()
    try:
        await service.run_sync_job(db, job_id, integration_id, max_attempts)
    finally:
        db.close()


@router.get("", response_model=List[IntegrationStatusResponse], response_model_by_alias=True)
async def list_integrations(service: SyncService = Depends(get_sync_service)):
    """List registered integrations."""
    return [IntegrationStatusResponse(**status) for status in service.get_integration_statuses()]


@router.get("/sync-jobs/{job_id}", response_model=SyncJobResponse, response_model_by_alias=True)
async def get_sync_job(
    job_id: str,
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service)
):
    """Get the status and summary of a sync job."""
    try:
        return SyncJobResponse(**service.get_sync_job(db, job_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get sync job: {str(e)}")


@router.get("/{integration_id}/sync-jobs", response_model=List[SyncJobResponse], response_model_by_alias=True)
async def list_sync_jobs(
    integration_id: str,
    limit: int = 10,
    offset: int = 0,
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service)
):
    """List recent sync jobs of an integration, newest first."""
    try:
        jobs = service.job_service.list_jobs(db, integration_id, limit=limit, offset=offset)
        return [SyncJobResponse(**service.job_service.to_view(job)) for job in jobs]
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list sync jobs: {str(e)}")


@router.post("/{integration_id}/sync", response_model=TriggerSyncResponse, response_model_by_alias=True, status_code=202)
async def trigger_sync(
    integration_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service),
    session_factory: sessionmaker = Depends(get_session_factory)
):
    """Queue a sync job for an integration and run it in the background."""
    try:
        result = service.trigger_sync(db, integration_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to trigger sync: {str(e)}")

    background_tasks.add_task(
        run_sync_in_background,
        service,
        session_factory,
        result["jobId"],
        integration_id,
        result["maxAttempts"]
    )
    return TriggerSyncResponse(message=result["message"], jobId=result["jobId"])


@router.put("/{integration_id}/config", response_model=ConfigureResponse, response_model_by_alias=True)
async def configure_integration(
    integration_id: str,
    config: Dict[str, Any],
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service),
    config_service: IntegrationConfigService = Depends(get_config_service)
):
    """Store integration config (secrets encrypted) and apply it to the adapter."""
    try:
        merged = await service.configure(db, config_service, integration_id, config)
        return ConfigureResponse(integrationId=integration_id, configuredKeys=sorted(merged))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to configure integration '{integration_id}': {e}")
        raise HTTPException(status_code=500, detail=f"Failed to configure integration: {str(e)}")


@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
async def run_connection_test(
    integration_id: str,
    service: SyncService = Depends(get_sync_service)
):
    """Test connectivity to an integration's external system."""
    try:
        return ConnectionTestResponse(**await service.test_connection(integration_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
