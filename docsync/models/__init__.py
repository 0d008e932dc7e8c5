"""Models module - imports all models for SQLModel registration."""

from docsync.models.document import Change, ChangeKind, ChangeSet, Document, FolderInfo
from docsync.models.kv_entry import KVEntry
from docsync.models.sync_state import SyncHistoryEntry, SyncResult, SyncState
from docsync.models.vector import Chunk, VectorPayload, VectorRecord

__all__ = [
    "Change",
    "ChangeKind",
    "ChangeSet",
    "Chunk",
    "Document",
    "FolderInfo",
    "KVEntry",
    "SyncHistoryEntry",
    "SyncResult",
    "SyncState",
    "VectorPayload",
    "VectorRecord",
]
