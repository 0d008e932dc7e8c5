"""Pinecone vector store with a key/value file index.

Pinecone serverless indexes cannot list or delete vectors by metadata, so
every mutation also maintains, in a key/value store:

- ``file:<document_id>`` -> JSON array of the document's vector ids
- ``_vector_count`` -> decimal count of distinct ids currently indexed

The counter moves by the number of *net-new* ids on upsert (re-upserting an
indexed id changes nothing) and by the number of deleted ids on delete, and
never drops below zero.
"""

from __future__ import annotations

import asyncio
import json
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from pinecone import Pinecone

from docsync.config.logger import app_logger
from docsync.config.settings import settings
from docsync.exceptions import VectorStoreError
from docsync.models.vector import VectorPayload, VectorRecord
from docsync.services.kv_store import KeyValueStore
from docsync.services.vector_ids import decode_vector_id
from docsync.utils.retry import DEFAULT_RETRY, RetryConfig, with_retry

FILE_KEY_PREFIX = "file:"
VECTOR_COUNT_KEY = "_vector_count"
FILE_INDEX_TTL_SECONDS = 86400 * 365
UPSERT_BATCH_SIZE = 100
FETCH_BATCH_SIZE = 100

_pinecone_client: Pinecone | None = None


def get_pinecone_client() -> Pinecone:
    """Return a singleton Pinecone client."""
    global _pinecone_client
    if _pinecone_client is None:
        if not settings.PINECONE_API_KEY:
            raise ValueError("PINECONE_API_KEY must be configured")
        _pinecone_client = Pinecone(api_key=settings.PINECONE_API_KEY)
        app_logger.info("Pinecone client initialized")
    return _pinecone_client


def get_pinecone_index(index_name: str):
    """Return a handle to an existing Pinecone index (provisioning is done out of band)."""
    index = get_pinecone_client().Index(index_name)
    app_logger.info(f"Using Pinecone index '{index_name}'")
    return index


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _file_key(document_id: str) -> str:
    return f"{FILE_KEY_PREFIX}{document_id}"


class PineconeVectorStore:
    def __init__(
        self,
        index: Any,
        file_index: KeyValueStore,
        name: str,
        namespace: str = "",
        dimensions: int = 1536,
        retry: RetryConfig = DEFAULT_RETRY,
    ) -> None:
        self.index = index
        self.file_index = file_index
        self.name = name
        self.namespace = namespace
        self.dimensions = dimensions
        self.retry = retry
        # Serialises file-index and counter read-modify-writes across concurrent documents
        self._index_lock = asyncio.Lock()

    async def _call(self, fn, *args, **kwargs):
        return await with_retry(lambda: asyncio.to_thread(fn, *args, **kwargs), self.retry)

    # ------------------------------------------------------------------
    # File index helpers
    # ------------------------------------------------------------------

    async def _read_ids(self, document_id: str) -> Optional[List[str]]:
        raw = await self.file_index.get(_file_key(document_id))
        if raw is None:
            return None
        return list(json.loads(raw))

    async def _write_ids(self, document_id: str, ids: List[str]) -> None:
        await self.file_index.put(_file_key(document_id), json.dumps(ids), ttl_seconds=FILE_INDEX_TTL_SECONDS)

    async def _update_vector_count(self, delta: int) -> None:
        if delta == 0:
            return
        try:
            current = await self.count()
            await self.file_index.put(VECTOR_COUNT_KEY, str(max(0, current + delta)))
        except Exception as e:
            app_logger.error(f"Failed to update vector count: {e}")

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def init(self, dimensions: int) -> None:
        """Check the index stats. Index creation is an operational step, so failures only warn."""
        self.dimensions = dimensions
        try:
            stats = await self._call(self.index.describe_index_stats)
            index_dims = _field(stats, "dimension")
            if index_dims and int(index_dims) != dimensions:
                app_logger.warning(
                    f"Pinecone index '{self.name}' has {index_dims} dimensions, expected {dimensions}"
                )
            else:
                app_logger.info(f"Pinecone index '{self.name}' is accessible")
        except Exception as e:
            app_logger.warning(f"Pinecone index '{self.name}' may not exist yet: {e}")
            app_logger.warning(
                f"Create it with {dimensions} dimensions and the cosine metric before syncing"
            )

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return

        ids_by_document: "OrderedDict[str, List[str]]" = OrderedDict()
        for record in records:
            ids_by_document.setdefault(record.payload.document_id, []).append(record.id)

        vectors = [
            {"id": record.id, "values": list(record.embedding), "metadata": record.payload.to_metadata()}
            for record in records
        ]
        try:
            for start in range(0, len(vectors), UPSERT_BATCH_SIZE):
                await self._call(
                    self.index.upsert,
                    vectors=vectors[start : start + UPSERT_BATCH_SIZE],
                    namespace=self.namespace,
                )
        except Exception as e:
            raise VectorStoreError(
                "Failed to upsert vectors",
                {"vector_count": len(records), "error": str(e)},
            ) from e
        app_logger.info(f"Upserted {len(records)} vectors to Pinecone")

        async with self._index_lock:
            net_new = 0
            for document_id, new_ids in ids_by_document.items():
                try:
                    existing = await self._read_ids(document_id) or []
                    merged = list(dict.fromkeys([*existing, *new_ids]))
                    net_new += len(merged) - len(existing)
                    await self._write_ids(document_id, merged)
                except Exception as e:
                    app_logger.error(f"Failed to update file index for document {document_id}: {e}")

            await self._update_vector_count(net_new)

    async def get_by_document(self, document_id: str) -> List[VectorRecord]:
        try:
            ids = await self._read_ids(document_id)
            if not ids:
                return []

            records: List[VectorRecord] = []
            for start in range(0, len(ids), FETCH_BATCH_SIZE):
                response = await self._call(
                    self.index.fetch,
                    ids=ids[start : start + FETCH_BATCH_SIZE],
                    namespace=self.namespace,
                )
                vectors = _field(response, "vectors") or {}
                for vector_id, vector in vectors.items():
                    records.append(
                        VectorRecord(
                            id=_field(vector, "id") or vector_id,
                            embedding=list(_field(vector, "values") or []),
                            payload=VectorPayload.from_metadata(_field(vector, "metadata")),
                        )
                    )
            return records
        except Exception as e:
            raise VectorStoreError(
                "Failed to get vectors by document",
                {"document_id": document_id, "error": str(e)},
            ) from e

    async def delete_by_ids(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        ids = list(dict.fromkeys(ids))

        try:
            await self._call(self.index.delete, ids=ids, namespace=self.namespace)
        except Exception as e:
            raise VectorStoreError(
                "Failed to delete vectors by id",
                {"vector_count": len(ids), "error": str(e)},
            ) from e
        app_logger.info(f"Deleted {len(ids)} vectors from Pinecone")

        document_ids: "OrderedDict[str, None]" = OrderedDict()
        for vector_id in ids:
            try:
                document_id, _ = decode_vector_id(vector_id)
                document_ids[document_id] = None
            except ValueError as e:
                app_logger.warning(f"Failed to parse vector ID {vector_id}: {e}")

        deleted = set(ids)
        async with self._index_lock:
            for document_id in document_ids:
                try:
                    existing = await self._read_ids(document_id)
                    if existing is None:
                        continue
                    remaining = [vector_id for vector_id in existing if vector_id not in deleted]
                    if remaining:
                        await self._write_ids(document_id, remaining)
                    else:
                        await self.file_index.delete(_file_key(document_id))
                except Exception as e:
                    app_logger.error(f"Failed to update file index for document {document_id}: {e}")

            await self._update_vector_count(-len(ids))

    async def delete_by_document(self, document_id: str) -> None:
        try:
            ids = await self._read_ids(document_id)
            if ids is None:
                app_logger.info(f"No vectors found for document: {document_id}")
                return
            if not ids:
                await self.file_index.delete(_file_key(document_id))
                return
            await self.delete_by_ids(ids)
            app_logger.info(f"Deleted {len(ids)} vectors for document: {document_id}")
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                "Failed to delete vectors by document",
                {"document_id": document_id, "error": str(e)},
            ) from e

    async def count(self) -> int:
        try:
            raw = await self.file_index.get(VECTOR_COUNT_KEY)
            return int(raw) if raw else 0
        except Exception as e:
            app_logger.error(f"Failed to get vector count: {e}")
            return 0

    async def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "backend": "pinecone",
            "count": await self.count(),
            "status": "ready",
            "dimensions": self.dimensions,
        }
