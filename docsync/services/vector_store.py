"""Vector store contract and backend selection.

Two interchangeable backends implement :class:`VectorStore`:

- ``qdrant``: server-side filtered scroll/delete on the ``document_id``
  payload field.
- ``pinecone``: no filtered delete, so the store keeps an auxiliary
  ``document_id -> [vector ids]`` index plus a global vector counter in a
  key/value store and derives per-document operations from it.

The orchestrator only depends on the protocol.
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence

from docsync.config.settings import Settings
from docsync.models.vector import VectorRecord
from docsync.services.kv_store import KeyValueStore


class VectorStore(Protocol):
    name: str

    async def init(self, dimensions: int) -> None: ...

    async def upsert(self, records: Sequence[VectorRecord]) -> None: ...

    async def get_by_document(self, document_id: str) -> List[VectorRecord]: ...

    async def delete_by_ids(self, ids: Sequence[str]) -> None: ...

    async def delete_by_document(self, document_id: str) -> None: ...

    async def describe(self) -> Dict[str, Any]: ...

    async def count(self) -> int: ...


def create_vector_store(settings: Settings, file_index: KeyValueStore | None = None) -> VectorStore:
    """Build the backend named by ``VECTOR_STORE_BACKEND``."""
    backend = settings.VECTOR_STORE_BACKEND.strip().lower()

    if backend == "qdrant":
        from qdrant_client import AsyncQdrantClient

        from docsync.services.qdrant_store import QdrantVectorStore
        from docsync.services.rate_limiter import RateLimiter

        client = AsyncQdrantClient(url=settings.QDRANT_URL, api_key=settings.QDRANT_API_KEY or None)
        return QdrantVectorStore(client, settings.QDRANT_COLLECTION_NAME, rate_limiter=RateLimiter.for_qdrant())

    if backend == "pinecone":
        from docsync.services.pinecone_store import PineconeVectorStore, get_pinecone_index

        if file_index is None:
            raise ValueError("The pinecone backend requires a key/value store for its file index")
        return PineconeVectorStore(
            index=get_pinecone_index(settings.PINECONE_INDEX_NAME),
            file_index=file_index,
            name=settings.PINECONE_INDEX_NAME,
            namespace=settings.PINECONE_NAMESPACE,
            dimensions=settings.OPENAI_EMBEDDING_DIMENSIONS,
        )

    raise ValueError(f"Unknown VECTOR_STORE_BACKEND: {settings.VECTOR_STORE_BACKEND!r}")
