"""Sync service for orchestrating integration sync jobs."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from crm_sync.config import settings
from crm_sync.services.adapters import IntegrationAdapter
from crm_sync.services.errors import NotFoundError
from crm_sync.services.integration_config_service import IntegrationConfigService
from crm_sync.services.reconciliation_service import ReconciliationService
from crm_sync.services.sync_job_service import SyncJobService
from crm_sync.services.sync_types import SyncDataset

logger = logging.getLogger(__name__)


class SyncService:
    """Service for driving sync jobs from queued to a terminal state.

    Each attempt marks the job running, pulls datasets from the adapter,
    reconciles them one at a time and folds their stats into the job summary.
    A failed attempt is retried with exponential backoff until the job's
    attempts are exhausted.
    """

    def __init__(
        self,
        job_service: SyncJobService,
        reconciliation_service: ReconciliationService,
        adapters: Optional[Iterable[IntegrationAdapter]] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize sync service.

        Args:
            job_service: Sync job store.
            reconciliation_service: Reconciliation engine.
            adapters: Adapters to register, keyed by their integration_id.
            max_attempts: Attempts per job (defaults to settings.sync_default_max_attempts).
            retry_base_delay: Seconds before the first retry (defaults to settings).
            retry_max_delay: Upper bound of the retry delay in seconds (defaults to settings).
            sleep: Coroutine used to wait between attempts.
        """
        self.job_service = job_service
        self.reconciliation_service = reconciliation_service
        self.max_attempts = max_attempts or settings.sync_default_max_attempts
        self.retry_base_delay = (
            settings.sync_retry_base_delay_seconds if retry_base_delay is None else retry_base_delay
        )
        self.retry_max_delay = (
            settings.sync_retry_max_delay_seconds if retry_max_delay is None else retry_max_delay
        )
        self._sleep = sleep
        self._adapters: Dict[str, IntegrationAdapter] = {}
        # One lock per integration so its jobs never reconcile concurrently
        self._integration_locks: Dict[str, asyncio.Lock] = {}

        for adapter in adapters or []:
            self.register_adapter(adapter)

    def register_adapter(self, adapter: IntegrationAdapter) -> None:
        if not adapter.integration_id:
            raise ValueError("Adapter must define an integration_id")
        self._adapters[adapter.integration_id] = adapter

    def get_adapter(self, integration_id: str) -> IntegrationAdapter:
        """Get the adapter registered for an integration.

        Raises:
            NotFoundError: If no adapter is registered under this id.
        """
        adapter = self._adapters.get(integration_id)
        if not adapter:
            raise NotFoundError(f"Integration not found: {integration_id}")
        return adapter

    def list_integrations(self) -> List[str]:
        return sorted(self._adapters)

    def get_integration_statuses(self) -> List[Dict[str, Any]]:
        """Summarize every registered integration for listings."""
        return [
            {
                "integrationId": integration_id,
                "configured": bool(self._adapters[integration_id].config),
                "syncInProgress": self.is_sync_in_progress(integration_id),
            }
            for integration_id in self.list_integrations()
        ]

    async def test_connection(self, integration_id: str) -> Dict[str, Any]:
        """Check that an integration's external system is reachable.

        Adapter errors are reported as a failed check rather than raised.

        Returns:
            Dictionary with ``success`` and a human readable ``message``.

        Raises:
            NotFoundError: If the integration is unknown.
        """
        adapter = self.get_adapter(integration_id)

        try:
            reachable = await adapter.test_connection()
        except Exception as e:
            logger.error(f"Connection test failed for {integration_id}: {e}")
            return {
                "success": False,
                "message": f"Connection failed: {self._error_message(e)}",
            }

        return {
            "success": bool(reachable),
            "message": "Connection successful" if reachable else "Connection failed - check configuration",
        }

    async def hydrate_adapters(self, db: Session, config_service: IntegrationConfigService) -> None:
        """Configure registered adapters from persisted integration configs.

        Unknown integrations and adapters that fail to configure are logged
        and skipped.
        """
        try:
            stored = config_service.get_all(db)
        except Exception:
            logger.error("Failed to load persisted integration configs", exc_info=True)
            return

        for integration_id, config in stored.items():
            adapter = self._adapters.get(integration_id)
            if not adapter:
                logger.warning(f"Ignoring persisted config for unknown adapter: {integration_id}")
                continue

            try:
                await adapter.configure(config)
            except Exception:
                logger.error(f"Failed to hydrate config for adapter '{integration_id}'", exc_info=True)

    async def configure(
        self,
        db: Session,
        config_service: IntegrationConfigService,
        integration_id: str,
        patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Persist a config patch and apply the merged config to the adapter.

        Returns:
            The merged plaintext config.

        Raises:
            NotFoundError: If the integration is unknown.
        """
        adapter = self.get_adapter(integration_id)
        merged = config_service.upsert(db, integration_id, patch)
        await adapter.configure(merged)
        return merged

    def trigger_sync(self, db: Session, integration_id: str) -> Dict[str, Any]:
        """Create a queued job for an integration.

        The caller schedules ``run_sync_job`` with the returned job id.

        Returns:
            Dictionary with ``message``, ``jobId`` and ``maxAttempts``.

        Raises:
            NotFoundError: If the integration is unknown.
        """
        self.get_adapter(integration_id)
        job = self.job_service.create_job(db, integration_id, self.max_attempts)
        logger.info(f"Sync triggered for {integration_id}, job: {job.job_id}")

        return {
            "message": f"Sync initiated for {integration_id}",
            "jobId": job.job_id,
            "maxAttempts": job.max_attempts,
        }

    def get_sync_job(self, db: Session, job_id: str) -> Dict[str, Any]:
        return self.job_service.get_job_view(db, job_id)

    def is_sync_in_progress(self, integration_id: str) -> bool:
        lock = self._integration_locks.get(integration_id)
        return bool(lock and lock.locked())

    async def run_sync_job(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        max_attempts: Optional[int] = None
    ) -> None:
        """Run a job through its attempts until it succeeds or fails.

        Never raises: orchestration errors are logged and recorded on the job
        where possible.

        Args:
            db: Database session.
            job_id: Job created by ``trigger_sync``.
            integration_id: Integration the job syncs.
            max_attempts: Attempts allowed (defaults to the service setting).
        """
        max_attempts = max_attempts or self.max_attempts

        try:
            adapter = self.get_adapter(integration_id)
            lock = self._integration_locks.setdefault(integration_id, asyncio.Lock())

            async with lock:
                await self._run_attempts(db, job_id, integration_id, adapter, max_attempts)
        except Exception:
            logger.error(f"Sync orchestration failed for job {job_id}", exc_info=True)

    async def _run_attempts(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        adapter: IntegrationAdapter,
        max_attempts: int
    ) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay, max=self.retry_max_delay),
            before_sleep=lambda retry_state: self._on_retry(db, job_id, retry_state),
            sleep=self._sleep,
            reraise=True
        )
        attempt_number = 0

        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    self.job_service.mark_running(db, job_id, attempt_number)
                    await self._execute_sync_attempt(db, job_id, integration_id, adapter)
                    self.job_service.mark_succeeded(db, job_id, attempt_number)
        except Exception as e:
            self.job_service.mark_failed(db, job_id, attempt_number, self._error_message(e))
            logger.error(f"Sync job {job_id} failed after {attempt_number} attempt(s)", exc_info=True)

    def _on_retry(self, db: Session, job_id: str, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        self.job_service.mark_retrying(
            db, job_id, retry_state.attempt_number, self._error_message(error)
        )
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Sync job {job_id} failed on attempt {retry_state.attempt_number}, "
            f"retrying in {delay:.2f}s"
        )

    async def _execute_sync_attempt(
        self,
        db: Session,
        job_id: str,
        integration_id: str,
        adapter: IntegrationAdapter
    ) -> None:
        datasets = await self._collect_sync_datasets(adapter)

        for dataset in datasets:
            stats = self.reconciliation_service.reconcile_dataset(db, job_id, integration_id, dataset)
            self.job_service.append_dataset_summary(db, job_id, dataset.record_type, stats)

    async def _collect_sync_datasets(self, adapter: IntegrationAdapter) -> List[SyncDataset]:
        datasets = await adapter.pull_sync_snapshot()
        if datasets is None:
            await adapter.sync()
            return []

        return [
            dataset if isinstance(dataset, SyncDataset) else SyncDataset.from_dict(dataset)
            for dataset in datasets
        ]

    @staticmethod
    def _error_message(error: Optional[BaseException]) -> str:
        message = str(error).strip() if error else ""
        return message or "Unknown sync error"
