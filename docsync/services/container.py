"""Service wiring shared by the API and the scheduled job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from docsync.config.logger import app_logger
from docsync.config.settings import Settings, settings
from docsync.db.db import init_db
from docsync.services.alerting import get_notifier
from docsync.services.drive_client import DriveAPIClient
from docsync.services.drive_source import DriveSource
from docsync.services.embedding_client import EmbeddingClient
from docsync.services.kv_store import SQLKeyValueStore
from docsync.services.rate_limiter import RateLimiter
from docsync.services.state_manager import StateManager
from docsync.services.sync_orchestrator import SyncConfig, SyncOrchestrator
from docsync.services.vector_store import VectorStore, create_vector_store
from docsync.utils.retry import RetryConfig

STATE_NAMESPACE = "sync_state"
FILE_INDEX_NAMESPACE = "file_index"


@dataclass
class SyncServices:
    orchestrator: SyncOrchestrator
    state_manager: StateManager
    vector_store: VectorStore
    root_folder_id: str

    async def aclose(self) -> None:
        await self.orchestrator.source.api.aclose()


def build_services(session_maker: async_sessionmaker, config: Settings = settings) -> SyncServices:
    """Construct the sync stack from ``config`` on top of an initialized database."""
    retry = RetryConfig(max_retries=config.MAX_RETRIES, delay_ms=config.RETRY_DELAY_MS)

    state_manager = StateManager(SQLKeyValueStore(session_maker, namespace=STATE_NAMESPACE))
    vector_store = create_vector_store(config, file_index=SQLKeyValueStore(session_maker, namespace=FILE_INDEX_NAMESPACE))

    drive_api = DriveAPIClient(
        access_token=config.DRIVE_ACCESS_TOKEN,
        base_url=config.DRIVE_API_BASE_URL,
        page_size=config.DRIVE_PAGE_SIZE,
    )
    source = DriveSource(
        drive_api,
        supported_extensions=config.DRIVE_SUPPORTED_EXTENSIONS,
        supported_mime_types=config.DRIVE_SUPPORTED_MIME_TYPES,
        max_parent_depth=config.DRIVE_MAX_PARENT_DEPTH,
        rate_limiter=RateLimiter.for_drive(),
        retry=retry,
    )
    embedding_client = EmbeddingClient(
        model=config.OPENAI_EMBEDDING_MODEL,
        dimensions=config.OPENAI_EMBEDDING_DIMENSIONS,
        rate_limiter=RateLimiter.for_openai(config.OPENAI_REQUESTS_PER_MINUTE),
        retry=retry,
    )

    orchestrator = SyncOrchestrator(
        source=source,
        embedding_client=embedding_client,
        vector_store=vector_store,
        state_manager=state_manager,
        config=SyncConfig(
            chunk_size=config.CHUNK_SIZE,
            chunk_overlap=config.CHUNK_OVERLAP,
            max_batch_size=config.MAX_BATCH_SIZE,
            max_concurrency=config.MAX_CONCURRENCY,
        ),
        notifier=get_notifier(config.PERFORMANCE_THRESHOLD),
    )
    app_logger.info(f"Sync services ready (vector store backend: {config.VECTOR_STORE_BACKEND})")
    return SyncServices(
        orchestrator=orchestrator,
        state_manager=state_manager,
        vector_store=vector_store,
        root_folder_id=config.DRIVE_ROOT_FOLDER_ID,
    )


_services: Optional[SyncServices] = None


async def get_services() -> SyncServices:
    """FastAPI dependency returning the process-wide services."""
    global _services
    if _services is None:
        _services = build_services(await init_db())
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.aclose()
        _services = None
