"""Main FastAPI application entry point."""

import logging
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session
from typing import Optional

from crm_sync.config import settings
from crm_sync.database.database import init_db, get_db, SessionLocal
from crm_sync.api.integrations import router as integrations_router
from crm_sync.models.sync_job import IntegrationSyncJob
from crm_sync.models.sync_record import IntegrationSyncRecord
from crm_sync.services.encryption_service import EncryptionService
from crm_sync.services.integration_config_service import IntegrationConfigService
from crm_sync.services.reconciliation_service import ReconciliationService
from crm_sync.services.sync_job_service import SyncJobService
from crm_sync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CRM Integration Sync",
    description="Reconciles external integration records into a local mirror",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Adapters are registered on this instance by the deployment
app.state.sync_service = SyncService(SyncJobService(), ReconciliationService())

app.include_router(integrations_router)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    message: Optional[str] = None


class StatsResponse(BaseModel):
    """System statistics response."""

    sync_jobs_count: int
    sync_records_count: int
    deleted_records_count: int
    last_job_status: Optional[str] = None


@app.on_event("startup")
async def startup_event():
    """Configure logging, validate encryption, initialize the database and hydrate adapters."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    # Validate encryption service (will exit if key is invalid)
    encryption_service = EncryptionService()
    init_db()

    db = SessionLocal()
    try:
        await app.state.sync_service.hydrate_adapters(db, IntegrationConfigService(encryption_service))
    finally:
        db.close()


@app.get("/")
async def root():
    return {"message": "CRM Integration Sync API", "version": "0.1.0"}


@app.get("/api/health", response_model=HealthResponse)
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint. Checks database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return HealthResponse(status="healthy", database="connected")
    except Exception as e:
        return HealthResponse(status="unhealthy", database="disconnected", message=str(e))


@app.get("/api/stats", response_model=StatsResponse)
async def get_stats(db: Session = Depends(get_db)):
    """Get counts of sync jobs and mirrored records."""
    try:
        last_job = db.query(IntegrationSyncJob).order_by(
            IntegrationSyncJob.created_at.desc(),
            IntegrationSyncJob.id.desc()
        ).first()

        return StatsResponse(
            sync_jobs_count=db.query(IntegrationSyncJob).count(),
            sync_records_count=db.query(IntegrationSyncRecord).count(),
            deleted_records_count=db.query(IntegrationSyncRecord).filter(
                IntegrationSyncRecord.is_deleted == True
            ).count(),
            last_job_status=last_job.status if last_job else None
        )
    except Exception as e:
        from fastapi import HTTPException
        raise HTTPException(status_code=500, detail=f"Failed to get stats: {str(e)}")
