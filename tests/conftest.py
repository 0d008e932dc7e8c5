"""Shared in-memory fakes for the Drive API, OpenAI embeddings and Pinecone."""

import asyncio
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from docsync.services.drive_client import FOLDER_MIME_TYPE
from docsync.services.embedding_client import EmbeddingClient
from docsync.services.kv_store import InMemoryKeyValueStore
from docsync.services.pinecone_store import PineconeVectorStore
from docsync.services.state_manager import StateManager
from docsync.utils.retry import RetryConfig

EMBEDDING_DIMS = 8
NO_RETRY = RetryConfig(max_retries=1, delay_ms=0)


class FakeClock:
    """Manually advanced clock shared by components using ms and seconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def ms(self) -> int:
        return self.now_ms

    def seconds(self) -> float:
        return self.now_ms / 1000

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def fake_embedding(text: str, dims: int = EMBEDDING_DIMS) -> List[float]:
    seed = sum(ord(c) for c in text)
    return [float((seed + i) % 97) for i in range(dims)]


class FakeEmbeddingsAPI:
    """Mimics ``AsyncOpenAI().embeddings``; returns data in reverse order."""

    def __init__(self, dims: int = EMBEDDING_DIMS):
        self.dims = dims
        self.calls: List[List[str]] = []
        self.fail_with: Optional[Exception] = None

    async def create(self, model: str, input: List[str], dimensions: int):
        self.calls.append(list(input))
        if self.fail_with is not None:
            raise self.fail_with
        data = [
            SimpleNamespace(index=i, embedding=fake_embedding(text, self.dims))
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=list(reversed(data)))

    @property
    def texts_embedded(self) -> int:
        return sum(len(batch) for batch in self.calls)


class FakeOpenAI:
    def __init__(self, dims: int = EMBEDDING_DIMS):
        self.embeddings = FakeEmbeddingsAPI(dims)


class FakePineconeIndex:
    """Synchronous in-memory stand-in for a Pinecone ``Index``."""

    def __init__(self, dimension: int = EMBEDDING_DIMS):
        self.dimension = dimension
        self.vectors: Dict[str, dict] = {}
        self.upsert_calls = 0
        self.delete_calls: List[List[str]] = []

    def upsert(self, vectors, namespace=""):
        self.upsert_calls += 1
        for vector in vectors:
            self.vectors[vector["id"]] = dict(vector)

    def fetch(self, ids, namespace=""):
        return {"vectors": {i: self.vectors[i] for i in ids if i in self.vectors}}

    def delete(self, ids, namespace=""):
        self.delete_calls.append(list(ids))
        for vector_id in ids:
            self.vectors.pop(vector_id, None)

    def describe_index_stats(self):
        return {"dimension": self.dimension, "total_vector_count": len(self.vectors)}


class YieldingKeyValueStore(InMemoryKeyValueStore):
    """Gives up control on every call, like a store behind a network hop."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def put(self, key, value, ttl_seconds=None):
        await asyncio.sleep(0)
        await super().put(key, value, ttl_seconds=ttl_seconds)

    async def delete(self, key):
        await asyncio.sleep(0)
        await super().delete(key)


class FakeDriveAPI:
    """In-memory Drive: a folder tree, file contents and a change feed."""

    def __init__(self, root_id: str = "root"):
        self.root_id = root_id
        self.items: Dict[str, dict] = {root_id: {"id": root_id, "name": "Root", "mimeType": FOLDER_MIME_TYPE, "parents": []}}
        self.contents: Dict[str, str] = {}
        self.change_pages: Dict[str, dict] = {}
        self.start_token = "token-1"
        self.page_size = 100
        self.calls: List[str] = []
        self.fail_listing: set = set()

    def add_folder(self, folder_id: str, name: str, parents: List[str]) -> None:
        self.items[folder_id] = {"id": folder_id, "name": name, "mimeType": FOLDER_MIME_TYPE, "parents": parents}

    def add_file(
        self,
        file_id: str,
        name: str,
        parents: List[str],
        content: str = "",
        mime_type: str = "text/markdown",
        created: str = "2024-01-01T00:00:00Z",
        modified: str = "2024-01-01T00:00:00Z",
    ) -> dict:
        item = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": parents,
            "createdTime": created,
            "modifiedTime": modified,
        }
        self.items[file_id] = item
        self.contents[file_id] = content
        return item

    async def list_files(self, folder_id: str, page_token: Optional[str] = None) -> dict:
        self.calls.append(f"list_files:{folder_id}:{page_token}")
        if folder_id in self.fail_listing:
            raise RuntimeError(f"listing {folder_id} failed")
        children = [item for item in self.items.values() if folder_id in item.get("parents", [])]
        start = int(page_token or 0)
        page = children[start : start + self.page_size]
        response = {"files": page}
        if start + self.page_size < len(children):
            response["nextPageToken"] = str(start + self.page_size)
        return response

    async def get_file(self, file_id: str) -> dict:
        self.calls.append(f"get_file:{file_id}")
        return dict(self.items[file_id])

    async def list_changes(self, page_token: str) -> dict:
        self.calls.append(f"list_changes:{page_token}")
        return self.change_pages[page_token]

    async def get_start_page_token(self) -> str:
        self.calls.append("get_start_page_token")
        return self.start_token

    async def download(self, file_id: str, mime_type: Optional[str] = None) -> str:
        self.calls.append(f"download:{file_id}")
        return self.contents[file_id]

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock.seconds)


@pytest.fixture
def state_manager(kv, clock):
    return StateManager(kv, clock=clock.ms)


@pytest.fixture
def pinecone_index():
    return FakePineconeIndex()


@pytest.fixture
def pinecone_store(pinecone_index):
    return PineconeVectorStore(
        index=pinecone_index,
        file_index=InMemoryKeyValueStore(),
        name="docs",
        dimensions=EMBEDDING_DIMS,
        retry=NO_RETRY,
    )


@pytest.fixture
def openai_client():
    return FakeOpenAI()


@pytest.fixture
def embedding_client(openai_client):
    return EmbeddingClient(client=openai_client, model="test-embedding", dimensions=EMBEDDING_DIMS, retry=NO_RETRY)


@pytest.fixture
def drive_api():
    return FakeDriveAPI()
