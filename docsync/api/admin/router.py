"""Admin endpoints: manual resync, sync status, vector stats and run history."""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from docsync.api.admin.schemas import (
    AdminErrorResponse,
    ResyncResponse,
    SyncStatusResponse,
    VectorStatsResponse,
)
from docsync.config.logger import app_logger
from docsync.config.settings import settings
from docsync.exceptions import error_message
from docsync.models.sync_state import SyncHistoryEntry
from docsync.services.container import SyncServices, get_services
from docsync.services.state_manager import MAX_HISTORY_ENTRIES
from docsync.utils.cron import next_cron_execution

router = APIRouter(prefix="/admin", tags=["admin"])

MAX_HISTORY_LIMIT = 100


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _internal_error(exc: Exception) -> JSONResponse:
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", error_message(exc))


def _next_scheduled_sync() -> Optional[str]:
    """Next run of the daily schedule, or None when the schedule is not a daily one."""
    try:
        return next_cron_execution(settings.SYNC_CRON_SCHEDULE)
    except ValueError as exc:
        app_logger.warning(f"Cannot compute next sync from schedule {settings.SYNC_CRON_SCHEDULE!r}: {exc}")
        return None


@router.post(
    "/resync",
    response_model=ResyncResponse,
    responses={409: {"model": AdminErrorResponse}, 500: {"model": AdminErrorResponse}},
    summary="Clear sync state and run a full resync",
)
async def resync(services: SyncServices = Depends(get_services)):
    """Run a full sync under the run lock. Responds 409 while another run holds it."""
    try:
        acquired = await services.state_manager.acquire_lock()
    except Exception as exc:
        app_logger.error(f"Resync lock check failed: {exc}")
        return _internal_error(exc)

    if not acquired:
        app_logger.info("Resync rejected: sync is already running")
        return _error(status.HTTP_409_CONFLICT, "Conflict", "Sync is already running")

    try:
        await services.state_manager.clear_state()
        result = await services.orchestrator.run_full_sync(services.root_folder_id)
    except Exception as exc:
        app_logger.error(f"Resync failed: {exc}")
        return _internal_error(exc)
    finally:
        try:
            await services.state_manager.release_lock()
        except Exception as exc:
            app_logger.error(f"Failed to release sync lock: {exc}")

    return ResyncResponse(result=result)


@router.get(
    "/status",
    response_model=SyncStatusResponse,
    responses={500: {"model": AdminErrorResponse}},
)
async def sync_status(services: SyncServices = Depends(get_services)):
    try:
        state = await services.state_manager.get_state()
        is_locked = await services.state_manager.is_locked()
    except Exception as exc:
        app_logger.error(f"Status lookup failed: {exc}")
        return _internal_error(exc)

    return SyncStatusResponse(
        last_sync_time=state.last_sync_time,
        files_processed=state.files_processed,
        error_count=state.error_count,
        has_cursor=bool(state.cursor),
        is_locked=is_locked,
        next_scheduled_sync=_next_scheduled_sync(),
        last_sync_duration=state.last_sync_duration_ms or None,
    )


@router.get(
    "/stats",
    response_model=VectorStatsResponse,
    responses={500: {"model": AdminErrorResponse}},
)
async def vector_stats(services: SyncServices = Depends(get_services)):
    try:
        info = await services.vector_store.describe()
        vector_count = await services.vector_store.count()
    except Exception as exc:
        app_logger.error(f"Stats lookup failed: {exc}")
        return _internal_error(exc)

    return VectorStatsResponse(
        collection=info.get("name"),
        vector_count=vector_count,
        status=info.get("status"),
    )


@router.get(
    "/history",
    response_model=List[SyncHistoryEntry],
    responses={400: {"model": AdminErrorResponse}, 500: {"model": AdminErrorResponse}},
)
async def sync_history(limit: Optional[str] = None, services: SyncServices = Depends(get_services)):
    """Most recent runs first. ``limit`` must be an integer from 1 to 100."""
    parsed = MAX_HISTORY_ENTRIES
    if limit is not None:
        try:
            parsed = int(limit)
        except ValueError:
            parsed = 0
        if not 1 <= parsed <= MAX_HISTORY_LIMIT:
            return _error(
                status.HTTP_400_BAD_REQUEST,
                "Bad request",
                f"Invalid limit parameter (1-{MAX_HISTORY_LIMIT})",
            )

    try:
        return await services.state_manager.get_sync_history(parsed)
    except Exception as exc:
        app_logger.error(f"History lookup failed: {exc}")
        return _internal_error(exc)
