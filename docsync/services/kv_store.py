"""Key/value stores holding sync state and the auxiliary file index.

All values are strings. ``ttl_seconds`` makes a key read as absent once it
expires; expired rows are purged lazily. Expiry times are epoch seconds.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from docsync.models.kv_entry import KVEntry

_UPSERT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        """Write ``value`` only if the live value equals ``expected`` (``None``: key absent)."""
        ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self, prefix: str = "") -> List[str]: ...


class InMemoryKeyValueStore:
    """Process-local store for development and tests. ``clock`` returns epoch seconds."""

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = (value, self._expiry(ttl_seconds))

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        if self._live(key) != expected:
            return False
        self._data[key] = (value, self._expiry(ttl_seconds))
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> List[str]:
        return sorted(key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None)


class SQLKeyValueStore:
    """Store backed by the ``kv_entries`` table, one ``namespace`` per logical store.

    Writes are single statements (dialect upsert, conditional insert or
    update), so concurrent writers never interleave a read and a write.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        namespace: str,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._session_maker = session_maker
        self.namespace = namespace
        self._clock = clock or time.time

    def _expired(self, entry: KVEntry) -> bool:
        return entry.expires_at is not None and entry.expires_at <= self._clock()

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def _row(self, key: str) -> Any:
        return (col(KVEntry.namespace) == self.namespace) & (col(KVEntry.key) == key)

    async def get(self, key: str) -> Optional[str]:
        async with self._session_maker() as session:
            entry = await session.get(KVEntry, (self.namespace, key))
            if entry is None:
                return None
            if self._expired(entry):
                await session.delete(entry)
                await session.commit()
                return None
            return entry.value

    async def _upsert(self, session: AsyncSession, values: Dict[str, Any]) -> None:
        insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
        if insert is None:
            await session.merge(KVEntry(**values))
            return
        statement = insert(KVEntry).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=["namespace", "key"],
            set_={"value": statement.excluded.value, "expires_at": statement.excluded.expires_at},
        )
        await session.execute(statement)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        values = {"namespace": self.namespace, "key": key, "value": value, "expires_at": self._expiry(ttl_seconds)}
        async with self._session_maker() as session:
            await self._upsert(session, values)
            await session.commit()

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        expires_at = self._expiry(ttl_seconds)
        async with self._session_maker() as session:
            if expected is None:
                # An expired row counts as absent
                await session.execute(
                    delete(KVEntry).where(self._row(key), col(KVEntry.expires_at) <= self._clock())
                )
                session.add(KVEntry(namespace=self.namespace, key=key, value=value, expires_at=expires_at))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    return False
                return True

            result = await session.execute(
                update(KVEntry)
                .where(self._row(key), col(KVEntry.value) == expected)
                .values(value=value, expires_at=expires_at)
            )
            await session.commit()
            return result.rowcount == 1

    async def delete(self, key: str) -> None:
        async with self._session_maker() as session:
            await session.execute(delete(KVEntry).where(self._row(key)))
            await session.commit()

    async def list_keys(self, prefix: str = "") -> List[str]:
        async with self._session_maker() as session:
            statement = select(KVEntry).where(KVEntry.namespace == self.namespace)
            if prefix:
                statement = statement.where(col(KVEntry.key).startswith(prefix, autoescape=True))
            result = await session.execute(statement.order_by(col(KVEntry.key)))
            entries = result.scalars().all()
        return [entry.key for entry in entries if not self._expired(entry)]
