"""Drive to vector store sync pipeline."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from docsync.config.logger import app_logger, log_error, log_performance
from docsync.exceptions import ErrorCollector, error_message
from docsync.models.document import ChangeKind, Document
from docsync.models.sync_state import SyncHistoryEntry, SyncResult
from docsync.models.vector import TEXT_PREVIEW_LENGTH, Chunk, VectorPayload, VectorRecord
from docsync.services.alerting import NullNotifier, SyncNotifier
from docsync.services.chunking import chunk_text, validate_chunk_size
from docsync.services.cost_tracker import CostTracker
from docsync.services.drive_source import DriveSource
from docsync.services.embedding_client import EmbeddingClient
from docsync.services.hashing import compute_chunk_hash
from docsync.services.metrics import MetricsCollector
from docsync.services.state_manager import StateManager
from docsync.services.vector_ids import encode_vector_id
from docsync.services.vector_store import VectorStore


@dataclass
class SyncConfig:
    chunk_size: int = 2000
    chunk_overlap: int = 0
    max_batch_size: int = 32
    max_concurrency: int = 4


@dataclass
class SyncRunContext:
    """Counters, cost accounting and collected errors for one run."""

    metrics: MetricsCollector = field(default_factory=MetricsCollector)
    costs: CostTracker = field(default_factory=CostTracker)
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    files_processed: int = 0
    vectors_upserted: int = 0
    vectors_deleted: int = 0

    def record_source_call(self) -> None:
        self.metrics.record_source_api_call()
        self.costs.record_source_query()
        if self.costs.is_source_rate_limit_approaching():
            app_logger.warning(
                f"Drive quota usage above 80%, suggested delay {self.costs.source_rate_limit_delay_ms():.0f}ms"
            )

    def record_vector_store_call(self) -> None:
        self.metrics.record_vector_store_call()
        self.costs.record_vector_store_operation()

    def record_failure(self, error: BaseException, context: Dict[str, Any]) -> None:
        self.errors.add_error(error, context)
        self.metrics.record_error(error, context)
        log_error(error, context)

    def duration_ms(self) -> int:
        return int(self.metrics.metrics.duration_ms or 0)

    def result(self) -> SyncResult:
        return SyncResult(
            files_processed=self.files_processed,
            vectors_upserted=self.vectors_upserted,
            vectors_deleted=self.vectors_deleted,
            errors=self.errors.total,
            duration_ms=self.duration_ms(),
        )


class SyncOrchestrator:
    """Runs full and incremental syncs.

    Per-document failures are collected and the run continues. Failures of the
    run itself (listing the tree, fetching changes, cursor or state writes)
    are logged, recorded in history and re-raised.
    """

    def __init__(
        self,
        source: DriveSource,
        embedding_client: EmbeddingClient,
        vector_store: VectorStore,
        state_manager: StateManager,
        config: Optional[SyncConfig] = None,
        notifier: Optional[SyncNotifier] = None,
    ) -> None:
        self.source = source
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.state = state_manager
        self.config = config or SyncConfig()
        self.notifier = notifier or NullNotifier()

    def _new_context(self) -> SyncRunContext:
        ctx = SyncRunContext()
        ctx.metrics.start()
        return ctx

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def run_full_sync(self, root_id: str) -> SyncResult:
        ctx = self._new_context()
        app_logger.info(f"Starting full sync of folder {root_id}")

        try:
            await self.vector_store.init(self.embedding_client.dimensions)
            ctx.record_vector_store_call()

            documents = await self.source.list_all(root_id)
            ctx.record_source_call()

            step = max(1, self.config.max_concurrency)
            for start in range(0, len(documents), step):
                await self._process_batch(documents[start : start + step], ctx)

            cursor = await self.source.get_cursor()
            ctx.record_source_call()
            await self.state.update_cursor(cursor)

            return await self._finish(ctx, "Full sync")
        except Exception as e:
            await self._fail(ctx, e, "Full sync")
            raise

    async def _process_batch(self, documents: Sequence[Document], ctx: SyncRunContext) -> None:
        results = await asyncio.gather(
            *(self.process_document(document, ctx) for document in documents),
            return_exceptions=True,
        )
        for document, result in zip(documents, results):
            if isinstance(result, Exception):
                ctx.record_failure(result, {"document_id": document.id, "document_name": document.name})
            elif isinstance(result, BaseException):
                raise result
            else:
                ctx.files_processed += 1
                ctx.vectors_upserted += result
                ctx.metrics.record_file_processed(ChangeKind.ADDED)
                ctx.metrics.record_vectors_upserted(result)

    # ------------------------------------------------------------------
    # Incremental sync
    # ------------------------------------------------------------------

    async def run_incremental_sync(self, root_id: str) -> SyncResult:
        state = await self.state.get_state()
        if not state.cursor:
            app_logger.info("No change cursor found, running full sync instead")
            return await self.run_full_sync(root_id)

        ctx = self._new_context()
        app_logger.info(f"Starting incremental sync of folder {root_id}")

        try:
            change_set = await self.source.fetch_changes(state.cursor, root_id)
            ctx.record_source_call()
            app_logger.info(f"Found {len(change_set.changes)} changes")

            for change in change_set.changes:
                try:
                    if change.kind is ChangeKind.DELETED:
                        await self.vector_store.delete_by_document(change.document_id)
                        ctx.record_vector_store_call()
                        ctx.vectors_deleted += 1
                        ctx.metrics.record_file_processed(ChangeKind.DELETED)
                        ctx.metrics.record_vectors_deleted(1)
                    elif change.document is not None:
                        count = await self.process_document(change.document, ctx)
                        ctx.files_processed += 1
                        ctx.vectors_upserted += count
                        ctx.metrics.record_file_processed(change.kind)
                        ctx.metrics.record_vectors_upserted(count)
                except Exception as e:
                    ctx.record_failure(e, {"document_id": change.document_id, "change_type": change.kind.value})

            await self.state.update_cursor(change_set.new_cursor)
            return await self._finish(ctx, "Incremental sync")
        except Exception as e:
            await self._fail(ctx, e, "Incremental sync")
            raise

    # ------------------------------------------------------------------
    # Per-document processing
    # ------------------------------------------------------------------

    async def process_document(self, document: Document, ctx: Optional[SyncRunContext] = None) -> int:
        """Bring one document's vectors up to date and return the number upserted.

        Chunks whose hash matches an existing vector of the same document keep
        that vector's embedding. Existing vectors beyond the new chunk count
        are deleted.
        """
        ctx = ctx or self._new_context()
        app_logger.info(f"Processing file: {document.name} ({document.id})")

        content = await self.source.download(document.id)
        ctx.record_source_call()
        if not content or not content.strip():
            app_logger.info(f"Skipping empty file: {document.name}")
            return 0

        chunks = chunk_text(content, self.config.chunk_size, self.config.chunk_overlap)
        if not validate_chunk_size(chunks, self.config.chunk_size):
            app_logger.warning(f"Chunks of {document.name} exceed {self.config.chunk_size} tokens")

        try:
            existing = await self.vector_store.get_by_document(document.id)
            ctx.record_vector_store_call()
        except Exception as e:
            app_logger.warning(f"Could not read existing vectors for {document.id}, embedding all chunks: {e}")
            existing = []

        by_hash: Dict[str, VectorRecord] = {}
        for record in existing:
            if record.payload.chunk_hash and record.embedding:
                by_hash.setdefault(record.payload.chunk_hash, record)

        reused: List[VectorRecord] = []
        pending: List[Tuple[Chunk, VectorPayload]] = []
        for chunk in chunks:
            payload = VectorPayload(
                document_id=document.id,
                document_name=document.name,
                document_path=document.path,
                chunk_index=chunk.index,
                chunk_hash=compute_chunk_hash(chunk.text),
                last_modified=document.modified_time,
                text_preview=chunk.text[:TEXT_PREVIEW_LENGTH],
            )
            match = by_hash.get(payload.chunk_hash)
            if match is not None:
                reused.append(
                    VectorRecord(
                        id=encode_vector_id(document.id, chunk.index),
                        embedding=list(match.embedding),
                        payload=payload,
                    )
                )
            else:
                pending.append((chunk, payload))

        embeddings = await self._embed([chunk for chunk, _ in pending], ctx)
        fresh = [
            VectorRecord(id=encode_vector_id(document.id, chunk.index), embedding=embedding, payload=payload)
            for (chunk, payload), embedding in zip(pending, embeddings)
        ]
        ctx.metrics.record_chunks_processed(len(chunks), reused=len(reused))
        if reused:
            app_logger.info(f"Reused {len(reused)}/{len(chunks)} embeddings for {document.name}")

        current_indices = {chunk.index for chunk in chunks}
        stale = list(dict.fromkeys(r.id for r in existing if r.payload.chunk_index not in current_indices))
        if stale:
            await self.vector_store.delete_by_ids(stale)
            ctx.record_vector_store_call()
            app_logger.info(f"Deleted {len(stale)} stale vectors for {document.name}")

        records = sorted(reused + fresh, key=lambda r: r.payload.chunk_index)
        if records:
            await self.vector_store.upsert(records)
            ctx.record_vector_store_call()
        return len(records)

    async def _embed(self, chunks: Sequence[Chunk], ctx: SyncRunContext) -> List[List[float]]:
        embeddings: List[List[float]] = []
        step = max(1, self.config.max_batch_size)
        for start in range(0, len(chunks), step):
            batch = chunks[start : start + step]
            embeddings.extend(await self.embedding_client.embed_batch([chunk.text for chunk in batch]))
            ctx.metrics.record_embedding_api_call()
            ctx.costs.record_embedding_usage(sum(chunk.token_count for chunk in batch))
        return embeddings

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _history_entry(self, ctx: SyncRunContext, extra_errors: Sequence[str] = ()) -> SyncHistoryEntry:
        return SyncHistoryEntry(
            timestamp=self.state.now_iso(),
            files_processed=ctx.files_processed,
            vectors_upserted=ctx.vectors_upserted,
            vectors_deleted=ctx.vectors_deleted,
            duration_ms=ctx.duration_ms(),
            errors=[*ctx.errors.messages(), *extra_errors],
        )

    async def _finish(self, ctx: SyncRunContext, label: str) -> SyncResult:
        ctx.metrics.end(success=True)
        await self.state.update_stats(ctx.files_processed, ctx.errors.total)
        await self.state.update_sync_duration(ctx.duration_ms())
        await self.state.save_sync_history(self._history_entry(ctx))

        log_performance(label, ctx.duration_ms() / 1000, files=ctx.files_processed, vectors=ctx.vectors_upserted)
        app_logger.info(ctx.metrics.summary())
        app_logger.info(ctx.costs.summary())

        performance = ctx.metrics.performance()
        try:
            await self.notifier.sync_completed(ctx.metrics.metrics, performance)
            await self.notifier.performance_degraded(ctx.metrics.metrics, performance)
        except Exception as e:
            app_logger.error(f"Sync notification failed: {e}")
        return ctx.result()

    async def _fail(self, ctx: SyncRunContext, error: Exception, label: str) -> None:
        ctx.metrics.end(success=False)
        ctx.metrics.record_error(error)
        log_error(error, {"phase": label})
        app_logger.error(f"{label} failed after {ctx.duration_ms()}ms: {error_message(error)}")

        try:
            await self.state.save_sync_history(self._history_entry(ctx, [error_message(error)]))
        except Exception as e:
            app_logger.error(f"Could not record failed run in history: {e}")
        try:
            await self.notifier.sync_failed(ctx.metrics.metrics, error)
        except Exception as e:
            app_logger.error(f"Sync notification failed: {e}")
