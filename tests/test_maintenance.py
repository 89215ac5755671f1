"""Tests for embedding backfill and chunk creation."""

import pytest

from brainsearch.config import SearchSettings
from brainsearch.errors import StoreError
from brainsearch.gateway import EmbeddingGateway
from brainsearch.maintenance import (
    BackfillResult,
    EmbeddingMaintainer,
    embedding_text,
    should_regenerate_embedding,
)
from brainsearch.types import NOTE, PROFILE

from conftest import InMemoryItemStore, make_item

CHUNKING = SearchSettings(chunk_size=10, chunk_overlap=2, chunk_threshold=20)
LONG_CONTENT = "abcdefghij" * 4


class TestBackfill:

    @pytest.mark.asyncio
    async def test_counts(self, gateway):
        store = InMemoryItemStore([
            make_item("short", "Title", "Body"),
            make_item("blank"),
            make_item("long", "Long", LONG_CONTENT),
            make_item("done", "Done", "Body", embedding=[1, 0, 0, 0]),
        ])
        result = await EmbeddingMaintainer(store, gateway, CHUNKING).backfill_embeddings()

        assert (result.updated, result.failed, result.chunks) == (2, 1, 5)
        assert store.items["short"].has_embedding
        assert store.items["long"].has_embedding
        assert not store.items["blank"].has_embedding
        assert "done" not in [args[0] for args in store.called("update_embedding")]

    @pytest.mark.asyncio
    async def test_embeds_title_and_content(self, gateway, mock_embedding_provider):
        mock_embedding_provider.vectors["Title Body"] = [0.0, 0.0, 1.0, 0.0]
        store = InMemoryItemStore([make_item("n", "Title", "Body")])
        await EmbeddingMaintainer(store, gateway).backfill_embeddings()
        assert store.items["n"].embedding == (0.0, 0.0, 1.0, 0.0)

    @pytest.mark.asyncio
    async def test_provider_failure_counts_failed(self, gateway, mock_embedding_provider):
        mock_embedding_provider.fail = True
        store = InMemoryItemStore([make_item("a", "A", "x"), make_item("b", "B", "y")])
        result = await EmbeddingMaintainer(store, gateway).backfill_embeddings()
        assert (result.updated, result.failed) == (0, 2)
        assert not store.called("update_embedding")

    @pytest.mark.asyncio
    async def test_store_update_failure_counts_failed(self, gateway):
        store = InMemoryItemStore([make_item("a", "A", "x")])
        store.failing.add("update_embedding")
        result = await EmbeddingMaintainer(store, gateway).backfill_embeddings()
        assert (result.updated, result.failed) == (0, 1)

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, gateway):
        store = InMemoryItemStore()
        store.failing.add("list_without_embedding")
        with pytest.raises(StoreError):
            await EmbeddingMaintainer(store, gateway).backfill_embeddings()

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, gateway):
        result = await EmbeddingMaintainer(InMemoryItemStore(), gateway).backfill_embeddings()
        assert result.to_dict() == {"updated": 0, "failed": 0, "chunks": 0}

    @pytest.mark.asyncio
    async def test_candidates_capped(self, gateway):
        store = InMemoryItemStore()
        await EmbeddingMaintainer(store, gateway, SearchSettings(max_candidates=25)).backfill_embeddings()
        assert store.called("list_without_embedding") == [(25,)]


class TestCreateChunks:

    @pytest.mark.asyncio
    async def test_chunks_stored_in_order(self, gateway):
        store = InMemoryItemStore()
        item = make_item("long", content=LONG_CONTENT)
        assert await EmbeddingMaintainer(store, gateway, CHUNKING).create_chunks(item) == 5

        assert [c.chunk_index for c in store.chunks] == [0, 1, 2, 3, 4]
        assert all(c.parent_id == "long" for c in store.chunks)
        rebuilt = store.chunks[0].content + "".join(c.content[2:] for c in store.chunks[1:])
        assert rebuilt == LONG_CONTENT

    @pytest.mark.asyncio
    async def test_failed_insert_skipped(self, gateway):
        store = InMemoryItemStore()
        original = store.insert_chunk

        async def flaky(chunk):
            if chunk.chunk_index == 1:
                raise StoreError("disk full")
            return await original(chunk)

        store.insert_chunk = flaky
        item = make_item("long", content=LONG_CONTENT)
        assert await EmbeddingMaintainer(store, gateway, CHUNKING).create_chunks(item) == 4
        assert [c.chunk_index for c in store.chunks] == [0, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_provider_unavailable(self):
        store = InMemoryItemStore()
        maintainer = EmbeddingMaintainer(store, EmbeddingGateway(), CHUNKING)
        assert await maintainer.create_chunks(make_item("long", content=LONG_CONTENT)) == 0
        assert store.chunks == []

    @pytest.mark.asyncio
    async def test_empty_content(self, gateway):
        store = InMemoryItemStore()
        assert await EmbeddingMaintainer(store, gateway).create_chunks(make_item("e")) == 0


class TestRegeneration:

    @pytest.mark.parametrize("changed, kind, expected", [
        (["title"], NOTE, True),
        ({"content": "new"}, NOTE, True),
        (["tags"], NOTE, False),
        ([], NOTE, False),
        (["summary"], PROFILE, True),
        (["experiences", "city"], PROFILE, True),
        (["city", "languages"], PROFILE, False),
    ])
    def test_should_regenerate(self, changed, kind, expected):
        assert should_regenerate_embedding(changed, kind) is expected

    def test_profile_text_is_content(self):
        profile = make_item("profile", "Ada", "Name: Ada\nHeadline: Engineer", kind=PROFILE)
        assert embedding_text(profile) == "Name: Ada\nHeadline: Engineer"

    def test_result_defaults(self):
        assert BackfillResult() == BackfillResult(updated=0, failed=0, chunks=0)
