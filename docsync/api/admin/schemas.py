"""Response schemas for the /admin endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docsync.models.sync_state import SyncResult


class AdminErrorResponse(BaseModel):
    """Error body returned by every admin endpoint."""

    error: str = Field(description="Short error category, e.g. 'Conflict'")
    message: str


class ResyncResponse(BaseModel):
    """Response payload for POST /admin/resync."""

    success: bool = True
    message: str = "Full resync completed"
    result: SyncResult


class SyncStatusResponse(BaseModel):
    """Response payload for GET /admin/status."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "ok"
    last_sync_time: Optional[str] = None
    files_processed: int = 0
    error_count: int = 0
    has_cursor: bool = False
    is_locked: bool = False
    next_scheduled_sync: Optional[str] = None
    last_sync_duration: Optional[int] = Field(default=None, description="Duration of the last run in milliseconds")


class VectorStatsResponse(BaseModel):
    """Response payload for GET /admin/stats."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    collection: Optional[str] = None
    vector_count: int = Field(ge=0)
    status: Optional[str] = None
