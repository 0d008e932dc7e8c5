"""Counters and timings for a single sync run."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from docsync.exceptions import error_message, normalize_error
from docsync.models.document import ChangeKind


@dataclass
class SyncMetrics:
    start_ms: float
    end_ms: Optional[float] = None
    duration_ms: Optional[float] = None
    files_processed: int = 0
    files_added: int = 0
    files_modified: int = 0
    files_deleted: int = 0
    vectors_upserted: int = 0
    vectors_deleted: int = 0
    chunks_processed: int = 0
    chunks_reused: int = 0
    embedding_api_calls: int = 0
    source_api_calls: int = 0
    vector_store_calls: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    success: bool = False


@dataclass
class PerformanceMetrics:
    avg_file_processing_ms: float
    avg_chunk_processing_ms: float
    avg_embedding_ms: float
    files_per_second: float
    chunks_per_second: float


class MetricsCollector:
    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self.metrics = SyncMetrics(start_ms=self._clock())

    def start(self) -> None:
        self.metrics = SyncMetrics(start_ms=self._clock())

    def end(self, success: bool) -> None:
        self.metrics.end_ms = self._clock()
        self.metrics.duration_ms = self.metrics.end_ms - self.metrics.start_ms
        self.metrics.success = success

    def record_file_processed(self, kind: ChangeKind) -> None:
        self.metrics.files_processed += 1
        if kind is ChangeKind.ADDED:
            self.metrics.files_added += 1
        elif kind is ChangeKind.MODIFIED:
            self.metrics.files_modified += 1
        elif kind is ChangeKind.DELETED:
            self.metrics.files_deleted += 1

    def record_vectors_upserted(self, count: int) -> None:
        self.metrics.vectors_upserted += count

    def record_vectors_deleted(self, count: int) -> None:
        self.metrics.vectors_deleted += count

    def record_chunks_processed(self, count: int, reused: int = 0) -> None:
        self.metrics.chunks_processed += count
        self.metrics.chunks_reused += reused

    def record_embedding_api_call(self) -> None:
        self.metrics.embedding_api_calls += 1

    def record_source_api_call(self) -> None:
        self.metrics.source_api_calls += 1

    def record_vector_store_call(self) -> None:
        self.metrics.vector_store_calls += 1

    def record_error(self, error: Any, context: Optional[Dict[str, Any]] = None) -> None:
        error = normalize_error(error)
        self.metrics.errors.append(
            {
                "timestamp_ms": self._clock(),
                "error_type": type(error).__name__,
                "error_message": error_message(error),
                "context": dict(context or {}),
            }
        )

    def performance(self) -> PerformanceMetrics:
        m = self.metrics
        duration = m.duration_ms if m.duration_ms is not None else self._clock() - m.start_ms
        seconds = duration / 1000
        return PerformanceMetrics(
            avg_file_processing_ms=duration / m.files_processed if m.files_processed else 0,
            avg_chunk_processing_ms=duration / m.chunks_processed if m.chunks_processed else 0,
            avg_embedding_ms=duration / m.embedding_api_calls if m.embedding_api_calls else 0,
            files_per_second=m.files_processed / seconds if seconds > 0 else 0,
            chunks_per_second=m.chunks_processed / seconds if seconds > 0 else 0,
        )

    def summary(self) -> str:
        m = self.metrics
        perf = self.performance()
        return " | ".join(
            [
                f"Sync {'succeeded' if m.success else 'failed'}",
                f"Duration: {int(m.duration_ms or 0)}ms",
                f"Files: {m.files_processed} ({m.files_added} added, {m.files_modified} modified, {m.files_deleted} deleted)",
                f"Vectors: {m.vectors_upserted} upserted, {m.vectors_deleted} deleted",
                f"Chunks: {m.chunks_processed} ({m.chunks_reused} reused)",
                f"API calls: {m.embedding_api_calls} embedding, {m.source_api_calls} drive, {m.vector_store_calls} vector store",
                f"Performance: {perf.files_per_second:.2f} files/s, {perf.chunks_per_second:.2f} chunks/s",
                f"Errors: {len(m.errors)}",
            ]
        )
