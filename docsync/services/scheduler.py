"""Scheduled incremental sync entry point."""

from __future__ import annotations

from typing import Optional

from docsync.config.logger import app_logger, log_error
from docsync.models.sync_state import SyncResult
from docsync.services.container import SyncServices


async def run_scheduled_sync(services: SyncServices) -> Optional[SyncResult]:
    """Run one incremental sync under the run lock.

    Returns ``None`` when another run holds the lock or the run failed.
    Failures are logged and never raised, so a cron runner keeps going.
    """
    app_logger.info("Scheduled sync triggered")
    try:
        if not await services.state_manager.acquire_lock():
            app_logger.info("Sync already running, skipping this execution")
            return None

        try:
            result = await services.orchestrator.run_incremental_sync(services.root_folder_id)
            app_logger.info(f"Scheduled sync completed: {result.model_dump()}")
            return result
        finally:
            await services.state_manager.release_lock()
    except Exception as e:
        app_logger.error(f"Scheduled sync failed: {e}")
        log_error(e, {"trigger": "scheduled"})
        return None
