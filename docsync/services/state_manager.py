"""Persisted sync state: cursor and counters, TTL run lock, rolling run history."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from docsync.config.logger import app_logger
from docsync.exceptions import StateError
from docsync.models.sync_state import SyncHistoryEntry, SyncState
from docsync.services.kv_store import KeyValueStore

STATE_KEY = "sync_state"
SYNC_LOCK_KEY = "sync_lock"
SYNC_HISTORY_PREFIX = "sync_history_"
LOCK_DURATION_MS = 30 * 60 * 1000
MAX_HISTORY_ENTRIES = 30


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso_from_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _timestamp_ms(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)


class StateManager:
    """Owns every sync-state key in the key/value store.

    The orchestrator and the admin API read and write state only through this
    class. ``clock`` returns epoch milliseconds.
    """

    def __init__(self, kv: KeyValueStore, clock: Optional[Callable[[], int]] = None) -> None:
        self.kv = kv
        self._clock = clock or _now_ms

    def now_iso(self) -> str:
        return _iso_from_ms(self._clock())

    async def _get(self, key: str) -> Optional[str]:
        try:
            return await self.kv.get(key)
        except Exception as e:
            raise StateError("Failed to read state", {"key": key, "error": str(e)}) from e

    async def _put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self.kv.put(key, value, ttl_seconds=ttl_seconds)
        except Exception as e:
            raise StateError("Failed to write state", {"key": key, "error": str(e)}) from e

    async def _delete(self, key: str) -> None:
        try:
            await self.kv.delete(key)
        except Exception as e:
            raise StateError("Failed to delete state", {"key": key, "error": str(e)}) from e

    async def _list(self, prefix: str) -> List[str]:
        try:
            return await self.kv.list_keys(prefix)
        except Exception as e:
            raise StateError("Failed to list state keys", {"prefix": prefix, "error": str(e)}) from e

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    async def get_state(self) -> SyncState:
        raw = await self._get(STATE_KEY)
        if not raw:
            return SyncState()
        try:
            return SyncState.model_validate_json(raw)
        except ValidationError as e:
            raise StateError("Stored sync state is corrupt", {"error": str(e)}) from e

    async def set_state(self, state: SyncState) -> None:
        await self._put(STATE_KEY, state.model_dump_json(by_alias=True))

    async def update_cursor(self, cursor: str) -> None:
        state = await self.get_state()
        state.cursor = cursor
        state.last_sync_time = self.now_iso()
        await self.set_state(state)

    async def clear_state(self) -> None:
        await self._delete(STATE_KEY)

    async def update_stats(self, files_delta: int, errors_delta: int) -> None:
        state = await self.get_state()
        state.files_processed += files_delta
        state.error_count += errors_delta
        await self.set_state(state)

    async def update_sync_duration(self, duration_ms: int) -> None:
        state = await self.get_state()
        state.last_sync_duration_ms = duration_ms
        await self.set_state(state)

    # ------------------------------------------------------------------
    # Lock
    # ------------------------------------------------------------------

    def _lock_is_fresh(self, raw: Optional[str]) -> bool:
        if not raw:
            return False
        try:
            acquired_at = int(raw)
        except ValueError:
            app_logger.warning(f"Ignoring unreadable sync lock value: {raw!r}")
            return False
        return self._clock() - acquired_at < LOCK_DURATION_MS

    async def _lock_is_valid(self) -> bool:
        return self._lock_is_fresh(await self._get(SYNC_LOCK_KEY))

    async def acquire_lock(self) -> bool:
        """Take the run lock unless a lock younger than 30 minutes exists.

        The write only succeeds if the lock key still holds the value read
        here, so of two concurrent callers at most one gets ``True``.
        """
        current = await self._get(SYNC_LOCK_KEY)
        if self._lock_is_fresh(current):
            return False
        try:
            return await self.kv.compare_and_set(
                SYNC_LOCK_KEY, current, str(self._clock()), ttl_seconds=LOCK_DURATION_MS // 1000
            )
        except Exception as e:
            raise StateError("Failed to write state", {"key": SYNC_LOCK_KEY, "error": str(e)}) from e

    async def release_lock(self) -> None:
        await self._delete(SYNC_LOCK_KEY)

    async def is_locked(self) -> bool:
        return await self._lock_is_valid()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def save_sync_history(self, entry: SyncHistoryEntry) -> None:
        """Store ``entry`` and evict the oldest entries beyond the rolling window."""
        await self._put(f"{SYNC_HISTORY_PREFIX}{_timestamp_ms(entry.timestamp)}", entry.model_dump_json(by_alias=True))

        keys = await self._list(SYNC_HISTORY_PREFIX)
        if len(keys) <= MAX_HISTORY_ENTRIES:
            return

        def key_timestamp(key: str) -> int:
            try:
                return int(key[len(SYNC_HISTORY_PREFIX):])
            except ValueError:
                return 0

        for key in sorted(keys, key=key_timestamp, reverse=True)[MAX_HISTORY_ENTRIES:]:
            await self._delete(key)

    async def get_sync_history(self, limit: int = MAX_HISTORY_ENTRIES) -> List[SyncHistoryEntry]:
        entries: List[SyncHistoryEntry] = []
        for key in await self._list(SYNC_HISTORY_PREFIX):
            raw = await self._get(key)
            if not raw:
                continue
            try:
                entries.append(SyncHistoryEntry.model_validate_json(raw))
            except ValidationError:
                app_logger.warning(f"Skipping unreadable history entry {key}")
        entries.sort(key=lambda e: _timestamp_ms(e.timestamp), reverse=True)
        return entries[:limit]
