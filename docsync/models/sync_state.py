"""Persisted sync state and history entries."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncState(_CamelModel):
    """Singleton sync state. Missing state reads as these zero values."""

    cursor: Optional[str] = None
    last_sync_time: Optional[str] = None
    files_processed: int = 0
    error_count: int = 0
    last_sync_duration_ms: Optional[int] = None


class SyncHistoryEntry(_CamelModel):
    timestamp: str
    files_processed: int = 0
    vectors_upserted: int = 0
    vectors_deleted: int = 0
    duration_ms: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncResult(_CamelModel):
    files_processed: int = 0
    vectors_upserted: int = 0
    vectors_deleted: int = 0
    errors: int = 0
    duration_ms: int = 0
