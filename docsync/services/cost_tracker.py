"""Per-run accounting of API usage and estimated embedding cost."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

# text-embedding-3-small pricing
EMBEDDING_COST_PER_1K_TOKENS = 0.00002

# Drive API quota: 1000 queries per 100 seconds per user
SOURCE_QUERY_WINDOW_MS = 100_000
SOURCE_QUERIES_PER_WINDOW = 1000


@dataclass
class EmbeddingUsage:
    total_tokens: int = 0
    total_cost: float = 0.0
    embedding_calls: int = 0


@dataclass
class SourceUsage:
    total_queries: int = 0
    queries_in_window: int = 0


@dataclass
class VectorStoreUsage:
    total_operations: int = 0


@dataclass
class CostSnapshot:
    embedding: EmbeddingUsage = field(default_factory=EmbeddingUsage)
    source: SourceUsage = field(default_factory=SourceUsage)
    vector_store: VectorStoreUsage = field(default_factory=VectorStoreUsage)


class CostTracker:
    """Accumulates token usage and operation counters for one sync run."""

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self.reset()

    def reset(self) -> None:
        self._metrics = CostSnapshot()
        self._source_query_times: deque[float] = deque()

    def record_embedding_usage(self, tokens: int) -> None:
        usage = self._metrics.embedding
        usage.total_tokens += tokens
        usage.total_cost += tokens / 1000 * EMBEDDING_COST_PER_1K_TOKENS
        usage.embedding_calls += 1

    def record_source_query(self) -> None:
        now = self._clock()
        self._metrics.source.total_queries += 1
        self._source_query_times.append(now)
        self._prune(now)

    def record_vector_store_operation(self) -> None:
        self._metrics.vector_store.total_operations += 1

    def _prune(self, now: float) -> None:
        cutoff = now - SOURCE_QUERY_WINDOW_MS
        while self._source_query_times and self._source_query_times[0] <= cutoff:
            self._source_query_times.popleft()
        self._metrics.source.queries_in_window = len(self._source_query_times)

    def snapshot(self) -> CostSnapshot:
        self._prune(self._clock())
        return CostSnapshot(
            embedding=EmbeddingUsage(**asdict(self._metrics.embedding)),
            source=SourceUsage(**asdict(self._metrics.source)),
            vector_store=VectorStoreUsage(**asdict(self._metrics.vector_store)),
        )

    def is_source_rate_limit_approaching(self) -> bool:
        self._prune(self._clock())
        return self._metrics.source.queries_in_window > SOURCE_QUERIES_PER_WINDOW * 0.8

    def source_rate_limit_delay_ms(self) -> float:
        now = self._clock()
        self._prune(now)
        if len(self._source_query_times) < SOURCE_QUERIES_PER_WINDOW:
            return 0
        return max(0.0, SOURCE_QUERY_WINDOW_MS - (now - self._source_query_times[0]))

    def cost_breakdown(self) -> Dict[str, Any]:
        snapshot = self.snapshot()
        return {
            "embedding": {
                "tokens": snapshot.embedding.total_tokens,
                "cost": snapshot.embedding.total_cost,
                "calls": snapshot.embedding.embedding_calls,
            },
            "source": {
                "queries": snapshot.source.total_queries,
                "queries_in_window": snapshot.source.queries_in_window,
            },
            "vector_store": {"operations": snapshot.vector_store.total_operations},
            # Drive and vector store usage are quota-based, not billed per call
            "total": {"embedding_cost": snapshot.embedding.total_cost},
        }

    def summary(self) -> str:
        snapshot = self.snapshot()
        return " | ".join(
            [
                f"Embeddings: {snapshot.embedding.total_tokens:,} tokens, ${snapshot.embedding.total_cost:.4f}",
                f"Drive: {snapshot.source.total_queries} queries ({snapshot.source.queries_in_window} in last 100s)",
                f"Vector store: {snapshot.vector_store.total_operations} operations",
            ]
        )
