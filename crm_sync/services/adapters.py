"""Adapter contract between external systems and the sync service."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from crm_sync.services.sync_types import SyncDataset


class IntegrationAdapter(ABC):
    """Base class for adapters that fetch records from an external system.

    Subclasses override ``pull_sync_snapshot`` to hand datasets to the
    reconciliation engine. Adapters that only push data elsewhere override
    ``sync`` instead and contribute no datasets.
    """

    integration_id: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config: Dict[str, Any] = dict(config or {})

    async def configure(self, config: Dict[str, Any]) -> None:
        """Replace the adapter configuration."""
        self.config = dict(config)

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check that the external system is reachable with the current config."""

    async def pull_sync_snapshot(self) -> Optional[List[SyncDataset]]:
        """Fetch the datasets to reconcile, or None if unsupported."""
        return None

    async def sync(self) -> None:
        """Legacy sync hook for adapters without snapshot support."""
        return None
