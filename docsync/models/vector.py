"""Chunks and vector records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

TEXT_PREVIEW_LENGTH = 1000


@dataclass(frozen=True)
class Chunk:
    text: str
    index: int
    token_count: int


@dataclass
class VectorPayload:
    document_id: str
    document_name: str
    document_path: str
    chunk_index: int
    chunk_hash: str
    last_modified: str
    text_preview: str = ""

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "document_name": self.document_name,
            "document_path": self.document_path,
            "chunk_index": self.chunk_index,
            "chunk_hash": self.chunk_hash,
            "last_modified": self.last_modified,
            "text_preview": self.text_preview,
        }

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any] | None) -> "VectorPayload":
        """Rebuild a payload from backend metadata, defaulting missing or mistyped fields."""
        metadata = metadata or {}

        def text(key: str) -> str:
            value = metadata.get(key)
            return value if isinstance(value, str) else ""

        chunk_index = metadata.get("chunk_index")
        # Pinecone returns numeric metadata as floats
        if isinstance(chunk_index, float) and chunk_index.is_integer():
            chunk_index = int(chunk_index)
        if not isinstance(chunk_index, int) or isinstance(chunk_index, bool):
            chunk_index = 0

        return cls(
            document_id=text("document_id"),
            document_name=text("document_name"),
            document_path=text("document_path"),
            chunk_index=chunk_index,
            chunk_hash=text("chunk_hash"),
            last_modified=text("last_modified"),
            text_preview=text("text_preview"),
        )


@dataclass
class VectorRecord:
    id: str
    embedding: List[float]
    payload: VectorPayload = field(repr=False)
