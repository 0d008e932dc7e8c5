"""Key/value rows backing the persisted sync state and file index."""

from typing import Optional

from sqlmodel import Field, SQLModel


class KVEntry(SQLModel, table=True):
    """One key in a namespaced key/value store.

    ``expires_at`` is epoch seconds; rows past it read as absent.
    """

    __tablename__ = "kv_entries"

    namespace: str = Field(max_length=64, primary_key=True)
    key: str = Field(max_length=512, primary_key=True)
    value: str
    expires_at: Optional[float] = Field(default=None, index=True)
