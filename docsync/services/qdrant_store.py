"""Qdrant vector store (native payload filtering)."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from docsync.config.logger import app_logger
from docsync.exceptions import VectorStoreError
from docsync.models.vector import VectorPayload, VectorRecord
from docsync.services.rate_limiter import RateLimiter
from docsync.utils.retry import DEFAULT_RETRY, RetryConfig, with_retry

# Qdrant only accepts unsigned ints or UUIDs as point ids
POINT_ID_NAMESPACE = uuid.UUID("6f1c7a52-3f0e-4c1b-9a3e-2d8a5b1e7c40")
SCROLL_PAGE_SIZE = 256


def point_id(vector_id: str) -> str:
    return str(uuid.uuid5(POINT_ID_NAMESPACE, vector_id))


def _document_filter(document_id: str) -> Filter:
    return Filter(must=[FieldCondition(key="document_id", match=MatchValue(value=document_id))])


class QdrantVectorStore:
    def __init__(
        self,
        client: AsyncQdrantClient,
        collection_name: str,
        retry: RetryConfig = DEFAULT_RETRY,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.client = client
        self.name = collection_name
        self.retry = retry
        self.rate_limiter = rate_limiter
        self.dimensions: Optional[int] = None

    async def _call(self, fn):
        async def attempt():
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_if_needed()
            return await fn()

        return await with_retry(attempt, self.retry)

    async def init(self, dimensions: int) -> None:
        """Create the collection and its ``document_id`` index when missing."""
        self.dimensions = dimensions
        try:
            if await self._call(lambda: self.client.collection_exists(self.name)):
                app_logger.info(f"Collection {self.name} already exists")
                return

            async def create():
                await self.client.create_collection(
                    collection_name=self.name,
                    vectors_config=VectorParams(size=dimensions, distance=Distance.COSINE),
                )
                await self.client.create_payload_index(
                    collection_name=self.name,
                    field_name="document_id",
                    field_schema=PayloadSchemaType.KEYWORD,
                )

            await self._call(create)
            app_logger.info(f"Collection {self.name} created successfully ({dimensions} dims)")
        except Exception as e:
            raise VectorStoreError(
                "Failed to initialize collection",
                {"collection": self.name, "error": str(e)},
            ) from e

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        points = [
            PointStruct(
                id=point_id(record.id),
                vector=list(record.embedding),
                payload={**record.payload.to_metadata(), "vector_id": record.id},
            )
            for record in records
        ]
        try:
            await self._call(
                lambda: self.client.upsert(collection_name=self.name, points=points, wait=True)
            )
        except Exception as e:
            raise VectorStoreError(
                "Failed to upsert vectors",
                {"vector_count": len(records), "error": str(e)},
            ) from e
        app_logger.info(f"Upserted {len(records)} vectors to Qdrant")

    async def get_by_document(self, document_id: str) -> List[VectorRecord]:
        records: List[VectorRecord] = []
        offset: Any = None
        try:
            while True:
                points, offset = await self._call(
                    lambda: self.client.scroll(
                        collection_name=self.name,
                        scroll_filter=_document_filter(document_id),
                        limit=SCROLL_PAGE_SIZE,
                        offset=offset,
                        with_payload=True,
                        with_vectors=True,
                    )
                )
                for point in points:
                    payload = dict(point.payload or {})
                    vector = point.vector if isinstance(point.vector, list) else []
                    records.append(
                        VectorRecord(
                            id=payload.get("vector_id") or str(point.id),
                            embedding=list(vector),
                            payload=VectorPayload.from_metadata(payload),
                        )
                    )
                if offset is None:
                    break
        except Exception as e:
            raise VectorStoreError(
                "Failed to get vectors by document",
                {"document_id": document_id, "error": str(e)},
            ) from e
        return records

    async def delete_by_ids(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        selector = PointIdsList(points=[point_id(vector_id) for vector_id in ids])
        try:
            await self._call(
                lambda: self.client.delete(collection_name=self.name, points_selector=selector, wait=True)
            )
        except Exception as e:
            raise VectorStoreError(
                "Failed to delete vectors by id",
                {"vector_count": len(ids), "error": str(e)},
            ) from e
        app_logger.info(f"Deleted {len(ids)} vectors from Qdrant")

    async def delete_by_document(self, document_id: str) -> None:
        selector = FilterSelector(filter=_document_filter(document_id))
        try:
            await self._call(
                lambda: self.client.delete(collection_name=self.name, points_selector=selector, wait=True)
            )
        except Exception as e:
            raise VectorStoreError(
                "Failed to delete vectors",
                {"document_id": document_id, "error": str(e)},
            ) from e
        app_logger.info(f"Deleted vectors for document: {document_id}")

    async def count(self) -> int:
        try:
            result = await self._call(
                lambda: self.client.count(collection_name=self.name, exact=True)
            )
        except Exception as e:
            raise VectorStoreError("Failed to count vectors", {"error": str(e)}) from e
        return int(result.count or 0)

    async def describe(self) -> Dict[str, Any]:
        try:
            info = await self._call(lambda: self.client.get_collection(self.name))
        except Exception as e:
            raise VectorStoreError(
                "Failed to get collection info",
                {"collection": self.name, "error": str(e)},
            ) from e
        status = getattr(info.status, "value", info.status)
        return {
            "name": self.name,
            "backend": "qdrant",
            "count": int(info.points_count or 0),
            "status": str(status) if status is not None else "unknown",
            "dimensions": self.dimensions,
        }
