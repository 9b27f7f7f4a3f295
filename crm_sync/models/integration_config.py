"""Integration config database model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON
from crm_sync.database.database import Base


class IntegrationConfig(Base):
    """Persisted adapter configuration; secret values are stored encrypted."""

    __tablename__ = "integration_configs"

    id = Column(Integer, primary_key=True, index=True)
    integration_id = Column(String, nullable=False, unique=True)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
