"""End-to-end tests for SyncOrchestrator against in-memory Drive, OpenAI and Pinecone fakes."""

import pytest

from docsync.exceptions import SourceError
from docsync.models.vector import Chunk
from docsync.services import sync_orchestrator
from docsync.services.chunking import chunk_text
from docsync.services.drive_source import DriveSource
from docsync.services.pinecone_store import PineconeVectorStore
from docsync.services.sync_orchestrator import SyncConfig, SyncOrchestrator

from conftest import EMBEDDING_DIMS, NO_RETRY, YieldingKeyValueStore

LONG_TEXT = (
    "Alpha beta gamma delta epsilon zeta eta theta iota kappa lambda mu nu xi "
    "omicron pi rho sigma tau upsilon phi chi psi omega."
)


def make_orchestrator(drive_api, embedding_client, store, state_manager, **config) -> SyncOrchestrator:
    return SyncOrchestrator(
        source=DriveSource(drive_api, retry=NO_RETRY),
        embedding_client=embedding_client,
        vector_store=store,
        state_manager=state_manager,
        config=SyncConfig(**config),
    )


@pytest.fixture
def orchestrator(drive_api, embedding_client, pinecone_store, state_manager):
    return make_orchestrator(drive_api, embedding_client, pinecone_store, state_manager)


class FailingNotifier:
    async def sync_completed(self, metrics, performance):
        raise RuntimeError("webhook down")

    async def sync_failed(self, metrics, error):
        raise RuntimeError("webhook down")

    async def performance_degraded(self, metrics, performance):
        raise RuntimeError("webhook down")


class TestFullSync:
    """Test cases for run_full_sync."""

    @pytest.mark.asyncio
    async def test_indexes_tree_and_stores_cursor(self, orchestrator, drive_api, pinecone_index, pinecone_store, state_manager):
        drive_api.add_folder("f-guides", "guides", ["root"])
        drive_api.add_file("d1", "intro.md", ["root"], content="# Intro\nWelcome.")
        drive_api.add_file("d2", "setup.md", ["f-guides"], content="Install the tool.")
        drive_api.add_file("img", "logo.png", ["root"], mime_type="image/png")

        result = await orchestrator.run_full_sync("root")

        assert result.files_processed == 2
        assert result.vectors_upserted == 2
        assert result.errors == 0
        assert set(pinecone_index.vectors) == {"d1_0", "d2_0"}
        assert pinecone_index.vectors["d2_0"]["metadata"]["document_path"] == "guides/setup.md"
        assert await pinecone_store.count() == 2

        state = await state_manager.get_state()
        assert state.cursor == "token-1"
        assert state.files_processed == 2

        [entry] = await state_manager.get_sync_history()
        assert entry.files_processed == 2
        assert entry.vectors_upserted == 2
        assert entry.errors == []

    @pytest.mark.asyncio
    async def test_empty_file_upserts_nothing(self, orchestrator, drive_api, pinecone_index):
        drive_api.add_file("blank", "blank.md", ["root"], content="   \n")

        result = await orchestrator.run_full_sync("root")

        assert result.files_processed == 1
        assert result.vectors_upserted == 0
        assert pinecone_index.vectors == {}

    @pytest.mark.asyncio
    async def test_concurrent_documents_keep_vector_count_exact(
        self, drive_api, embedding_client, pinecone_index, state_manager
    ):
        store = PineconeVectorStore(
            pinecone_index, YieldingKeyValueStore(), name="docs", dimensions=EMBEDDING_DIMS, retry=NO_RETRY
        )
        for i in range(6):
            drive_api.add_file(f"d{i}", f"{i}.md", ["root"], content=f"Document number {i}.")
        orchestrator = make_orchestrator(drive_api, embedding_client, store, state_manager, max_concurrency=4)

        result = await orchestrator.run_full_sync("root")

        assert result.vectors_upserted == 6
        assert await store.count() == 6
        for i in range(6):
            assert await store.file_index.get(f"file:d{i}") == f'["d{i}_0"]'

    @pytest.mark.asyncio
    async def test_oversized_chunks_are_reported(self, orchestrator, drive_api, monkeypatch):
        warnings = []
        monkeypatch.setattr(
            "docsync.services.sync_orchestrator.chunk_text",
            lambda text, size, overlap: [Chunk(text=text, index=0, token_count=size + 1)],
        )
        monkeypatch.setattr(sync_orchestrator.app_logger, "warning", warnings.append)
        drive_api.add_file("d1", "big.md", ["root"], content="Too many tokens.")

        result = await orchestrator.run_full_sync("root")

        assert result.vectors_upserted == 1
        assert "Chunks of big.md exceed 2000 tokens" in warnings

    @pytest.mark.asyncio
    async def test_rerun_reuses_every_embedding(self, orchestrator, drive_api, openai_client, clock):
        drive_api.add_file("d1", "a.md", ["root"], content="Some stable content.")
        drive_api.add_file("d2", "b.md", ["root"], content="More stable content.")

        await orchestrator.run_full_sync("root")
        calls_after_first = len(openai_client.embeddings.calls)
        clock.advance(1000)
        second = await orchestrator.run_full_sync("root")

        assert calls_after_first == 2
        assert len(openai_client.embeddings.calls) == calls_after_first
        assert second.vectors_upserted == 2

    @pytest.mark.asyncio
    async def test_embeddings_are_batched(self, drive_api, embedding_client, openai_client, pinecone_store, state_manager):
        orchestrator = make_orchestrator(
            drive_api, embedding_client, pinecone_store, state_manager, chunk_size=5, max_batch_size=2
        )
        drive_api.add_file("d1", "long.md", ["root"], content=LONG_TEXT)
        expected = len(chunk_text(LONG_TEXT, 5))

        result = await orchestrator.run_full_sync("root")

        assert result.vectors_upserted == expected
        sizes = [len(batch) for batch in openai_client.embeddings.calls]
        assert sum(sizes) == expected
        assert max(sizes) == 2

    @pytest.mark.asyncio
    async def test_document_failure_is_collected(self, orchestrator, drive_api, pinecone_index, state_manager):
        drive_api.add_file("good", "good.md", ["root"], content="fine")
        drive_api.add_file("bad", "bad.md", ["root"], content="never read")
        del drive_api.contents["bad"]

        result = await orchestrator.run_full_sync("root")

        assert result.files_processed == 1
        assert result.errors == 1
        assert set(pinecone_index.vectors) == {"good_0"}
        state = await state_manager.get_state()
        assert state.error_count == 1
        assert state.cursor == "token-1"
        [entry] = await state_manager.get_sync_history()
        assert entry.errors == ["Failed to download file content"]

    @pytest.mark.asyncio
    async def test_listing_failure_is_recorded_and_raised(self, orchestrator, drive_api, state_manager):
        drive_api.fail_listing.add("root")

        with pytest.raises(SourceError):
            await orchestrator.run_full_sync("root")

        assert (await state_manager.get_state()).cursor is None
        [entry] = await state_manager.get_sync_history()
        assert entry.errors == ["Failed to list files"]

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_run(self, drive_api, embedding_client, pinecone_store, state_manager):
        orchestrator = SyncOrchestrator(
            source=DriveSource(drive_api, retry=NO_RETRY),
            embedding_client=embedding_client,
            vector_store=pinecone_store,
            state_manager=state_manager,
            notifier=FailingNotifier(),
        )
        drive_api.add_file("d1", "a.md", ["root"], content="text")

        result = await orchestrator.run_full_sync("root")

        assert result.files_processed == 1


class TestIncrementalSync:
    """Test cases for run_incremental_sync."""

    @pytest.mark.asyncio
    async def test_without_cursor_runs_full_sync(self, orchestrator, drive_api, state_manager):
        drive_api.add_file("d1", "a.md", ["root"], content="text")

        result = await orchestrator.run_incremental_sync("root")

        assert result.files_processed == 1
        assert (await state_manager.get_state()).cursor == "token-1"
        assert "list_files:root:None" in drive_api.calls

    @pytest.mark.asyncio
    async def test_no_changes_advances_cursor(self, orchestrator, drive_api, state_manager, clock):
        await state_manager.update_cursor("token-1")
        drive_api.change_pages["token-1"] = {"changes": [], "newStartPageToken": "token-2"}

        result = await orchestrator.run_incremental_sync("root")

        assert (result.files_processed, result.vectors_upserted, result.vectors_deleted) == (0, 0, 0)
        assert (await state_manager.get_state()).cursor == "token-2"
        [entry] = await state_manager.get_sync_history()
        assert entry.files_processed == 0

    @pytest.mark.asyncio
    async def test_added_and_deleted_documents(self, orchestrator, drive_api, pinecone_index, pinecone_store, clock):
        drive_api.add_file("old", "old.md", ["root"], content="to be removed")
        await orchestrator.run_full_sync("root")
        assert set(pinecone_index.vectors) == {"old_0"}

        new = drive_api.add_file("new", "new.md", ["root"], content="fresh doc")
        drive_api.change_pages["token-1"] = {
            "changes": [{"fileId": "new", "file": new}, {"fileId": "old", "removed": True}],
            "newStartPageToken": "token-2",
        }
        clock.advance(1000)

        result = await orchestrator.run_incremental_sync("root")

        assert result.files_processed == 1
        assert result.vectors_upserted == 1
        assert result.vectors_deleted == 1
        assert set(pinecone_index.vectors) == {"new_0"}
        assert await pinecone_store.count() == 1

    @pytest.mark.asyncio
    async def test_shrinking_document_drops_stale_chunks(
        self, drive_api, embedding_client, pinecone_index, pinecone_store, state_manager, clock
    ):
        orchestrator = make_orchestrator(drive_api, embedding_client, pinecone_store, state_manager, chunk_size=5)
        drive_api.add_file("d1", "doc.md", ["root"], content=LONG_TEXT)
        await orchestrator.run_full_sync("root")
        original = len(chunk_text(LONG_TEXT, 5))
        assert len(pinecone_index.vectors) == original > 1

        edited = drive_api.add_file("d1", "doc.md", ["root"], content="Alpha beta", modified="2024-02-01T00:00:00Z")
        drive_api.change_pages["token-1"] = {"changes": [{"fileId": "d1", "file": edited}], "newStartPageToken": "token-2"}
        clock.advance(1000)

        result = await orchestrator.run_incremental_sync("root")

        assert result.vectors_upserted == 1
        assert set(pinecone_index.vectors) == {"d1_0"}
        assert await pinecone_store.count() == 1

    @pytest.mark.asyncio
    async def test_unchanged_content_skips_embedding(self, orchestrator, drive_api, openai_client, clock):
        drive_api.add_file("d1", "a.md", ["root"], content="same text")
        await orchestrator.run_full_sync("root")
        calls = len(openai_client.embeddings.calls)

        touched = drive_api.add_file("d1", "a.md", ["root"], content="same text", modified="2024-03-01T00:00:00Z")
        drive_api.change_pages["token-1"] = {"changes": [{"fileId": "d1", "file": touched}], "newStartPageToken": "token-2"}
        clock.advance(1000)

        result = await orchestrator.run_incremental_sync("root")

        assert result.vectors_upserted == 1
        assert len(openai_client.embeddings.calls) == calls

    @pytest.mark.asyncio
    async def test_change_failure_is_collected(self, orchestrator, drive_api, state_manager):
        await state_manager.update_cursor("token-1")
        broken = drive_api.add_file("b1", "broken.md", ["root"], content="x")
        fine = drive_api.add_file("f1", "fine.md", ["root"], content="y")
        del drive_api.contents["b1"]
        drive_api.change_pages["token-1"] = {
            "changes": [{"fileId": "b1", "file": broken}, {"fileId": "f1", "file": fine}],
            "newStartPageToken": "token-2",
        }

        result = await orchestrator.run_incremental_sync("root")

        assert result.errors == 1
        assert result.files_processed == 1
        assert (await state_manager.get_state()).cursor == "token-2"

    @pytest.mark.asyncio
    async def test_change_feed_failure_keeps_cursor(self, orchestrator, drive_api, state_manager):
        await state_manager.update_cursor("token-1")
        drive_api.change_pages["token-1"] = {"changes": []}

        with pytest.raises(SourceError):
            await orchestrator.run_incremental_sync("root")

        assert (await state_manager.get_state()).cursor == "token-1"
        [entry] = await state_manager.get_sync_history()
        assert entry.errors == ["No newStartPageToken received"]
