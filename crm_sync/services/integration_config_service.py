"""Integration config service for persisting adapter settings."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from crm_sync.models.integration_config import IntegrationConfig
from crm_sync.services.encryption_service import EncryptionService

logger = logging.getLogger(__name__)

SECRET_CONFIG_KEYS = frozenset([
    "apiKey",
    "appToken",
    "userToken",
    "password",
    "appPassword",
    "clientSecret",
    "accessToken",
    "smtpPass",
])


class IntegrationConfigService:
    """Service for storing per-integration config with secrets encrypted at rest."""

    def __init__(self, encryption_service: EncryptionService):
        """Initialize integration config service.

        Args:
            encryption_service: Service for encrypting/decrypting secret values.
        """
        self.encryption_service = encryption_service

    def get_config(self, db: Session, integration_id: str) -> Optional[Dict[str, Any]]:
        """Get the decrypted config of an integration, or None if never stored."""
        record = db.query(IntegrationConfig).filter(
            IntegrationConfig.integration_id == integration_id
        ).first()

        if not record or not record.config:
            return None

        return self._decrypt_config(integration_id, record.config)

    def get_all(self, db: Session) -> Dict[str, Dict[str, Any]]:
        """Get decrypted configs of every integration keyed by integration id."""
        return {
            record.integration_id: self._decrypt_config(record.integration_id, record.config or {})
            for record in db.query(IntegrationConfig).all()
        }

    def upsert(self, db: Session, integration_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a config patch over the stored config and persist it.

        Keys whose merged value is a blank string are removed.

        Args:
            db: Database session.
            integration_id: Integration to configure.
            patch: Config values to set.

        Returns:
            The merged, plaintext config.
        """
        previous = self.get_config(db, integration_id) or {}
        merged = {**previous, **patch}
        merged = {
            key: value for key, value in merged.items()
            if not (isinstance(value, str) and value.strip() == "")
        }
        encrypted = self._encrypt_config(merged)

        record = db.query(IntegrationConfig).filter(
            IntegrationConfig.integration_id == integration_id
        ).first()

        try:
            if record:
                record.config = encrypted
                record.updated_at = datetime.utcnow()
            else:
                db.add(IntegrationConfig(integration_id=integration_id, config=encrypted))
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Stored config for integration '{integration_id}'")
        return merged

    def _encrypt_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: self.encryption_service.encrypt(value)
            if key in SECRET_CONFIG_KEYS and isinstance(value, str) else value
            for key, value in config.items()
        }

    def _decrypt_config(self, integration_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        decrypted = dict(config)

        for key, value in config.items():
            if key not in SECRET_CONFIG_KEYS or not isinstance(value, str):
                continue
            try:
                decrypted[key] = self.encryption_service.decrypt(value)
            except Exception:
                logger.error(
                    f"Failed to decrypt secret '{key}' for integration '{integration_id}'",
                    exc_info=True
                )
                del decrypted[key]

        return decrypted
