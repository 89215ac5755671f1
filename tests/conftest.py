"""
Shared pytest fixtures for brainsearch tests.

Provides a mock embedding provider and an in-memory item store so engine
tests never load a model or touch disk.
"""

import hashlib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import pytest

from brainsearch.api import Brain
from brainsearch.config import SearchSettings, StoreConfig, save_config
from brainsearch.errors import StoreError
from brainsearch.gateway import EmbeddingGateway
from brainsearch.types import NOTE, Chunk, Item


class MockEmbeddingProvider:
    """
    Deterministic mock embedding provider for testing.

    Texts registered in ``vectors`` get that exact vector; anything else gets
    a vector derived from the text hash.
    """

    dimension = 4
    model_name = "mock-model"

    def __init__(self, vectors: Optional[dict[str, list[float]]] = None):
        self.vectors = dict(vectors or {})
        self.embed_calls = 0
        self.batch_calls = 0
        self.fail = False
        self.fail_batch = False

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        h = hashlib.md5(text.encode()).hexdigest()
        return [int(h[i:i + 2], 16) / 255.0 + 0.01 for i in range(0, 2 * self.dimension, 2)]

    async def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        if self.fail:
            raise TimeoutError("Connection timed out")
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls += 1
        if self.fail or self.fail_batch:
            raise RuntimeError("Batch endpoint unavailable")
        return [self._vector(t) for t in texts]


def timestamp(minutes_ago: int) -> str:
    """Canonical UTC timestamp ``minutes_ago`` minutes before a fixed instant."""
    base = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
    return (base - timedelta(minutes=minutes_ago)).strftime("%Y-%m-%dT%H:%M:%S")


def make_item(
    id: str,
    title: str = "",
    content: str = "",
    tags: Sequence[str] = (),
    embedding: Optional[Sequence[float]] = None,
    minutes_ago: int = 0,
    kind: str = NOTE,
) -> Item:
    """Create a test Item; larger ``minutes_ago`` means older."""
    ts = timestamp(minutes_ago)
    return Item(
        id=id,
        kind=kind,
        title=title,
        content=content,
        tags=tuple(tags),
        embedding=embedding,
        created_at=ts,
        updated_at=ts,
    )


class InMemoryItemStore:
    """
    In-memory ItemStoreProtocol implementation.

    Names in ``failing`` make the matching method raise StoreError.
    ``calls`` records (method, args) for every call.
    """

    def __init__(self, items: Sequence[Item] = ()):
        self.items: dict[str, Item] = {item.id: item for item in items}
        self.chunks: list[Chunk] = []
        self.failing: set[str] = set()
        self.calls: list[tuple] = []

    def _enter(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.failing:
            raise StoreError(f"{name} failed")

    def _newest_first(self, items) -> list[Item]:
        return sorted(
            sorted(items, key=lambda i: i.id),
            key=lambda i: i.updated_at,
            reverse=True,
        )

    async def get_by_id(self, id: str) -> Optional[Item]:
        self._enter("get_by_id", id)
        return self.items.get(id)

    async def list_with_embedding(self, limit: int) -> list[Item]:
        self._enter("list_with_embedding", limit)
        return self._newest_first(i for i in self.items.values() if i.has_embedding)[:limit]

    async def list_other_with_embedding(self, exclude_id: str, limit: int) -> list[Item]:
        self._enter("list_other_with_embedding", exclude_id, limit)
        return self._newest_first(
            i for i in self.items.values() if i.has_embedding and i.id != exclude_id
        )[:limit]

    async def list_with_tags(self, limit: int) -> list[Item]:
        self._enter("list_with_tags", limit)
        return self._newest_first(i for i in self.items.values() if i.tags)[:limit]

    async def list_without_embedding(self, limit: int) -> list[Item]:
        self._enter("list_without_embedding", limit)
        return self._newest_first(i for i in self.items.values() if not i.has_embedding)[:limit]

    async def keyword_search(self, keywords, tags, limit, offset, *, phrase=None) -> list[Item]:
        self._enter("keyword_search", tuple(keywords), tuple(tags), limit, offset, phrase)

        def matches(item: Item) -> bool:
            title, content = item.title.lower(), item.content.lower()
            tag_text = " ".join(item.tags).lower()
            if keywords:
                if not any(k.lower() in title or k.lower() in content or k.lower() in tag_text
                           for k in keywords):
                    return False
            elif phrase:
                if phrase.lower() not in title and phrase.lower() not in content:
                    return False
            return all(t.lower() in tag_text for t in tags)

        found = self._newest_first(i for i in self.items.values() if matches(i))
        return found[offset:offset + limit]

    async def recent(self, limit: int, offset: int = 0) -> list[Item]:
        self._enter("recent", limit, offset)
        return self._newest_first(self.items.values())[offset:offset + limit]

    async def update_embedding(self, id: str, embedding: Sequence[float]) -> None:
        self._enter("update_embedding", id)
        if id in self.items:
            self.items[id] = self.items[id].with_embedding(embedding)

    async def insert_chunk(self, chunk: Chunk) -> str:
        self._enter("insert_chunk", chunk.parent_id, chunk.chunk_index)
        chunk_id = f"{chunk.parent_id}#{chunk.chunk_index}"
        self.chunks.append(chunk)
        return chunk_id

    def called(self, name: str) -> list[tuple]:
        return [args for method, args in self.calls if method == name]


@pytest.fixture
def mock_embedding_provider():
    """Create a fresh MockEmbeddingProvider instance."""
    return MockEmbeddingProvider()


@pytest.fixture
def gateway(mock_embedding_provider):
    return EmbeddingGateway(mock_embedding_provider)


@pytest.fixture
def memory_store():
    return InMemoryItemStore()


@pytest.fixture
def settings():
    return SearchSettings()


@pytest.fixture
def keyword_only_store(tmp_path) -> Path:
    """A store directory whose config has no embedding provider."""
    store_path = tmp_path / "store"
    save_config(StoreConfig(path=store_path, embedding=None))
    return store_path


@pytest.fixture
def brain(keyword_only_store, mock_embedding_provider):
    """A Brain on a temporary SQLite store, embedding with the mock provider."""
    b = Brain(keyword_only_store, embedding_provider=mock_embedding_provider)
    yield b
    b.close()
