"""
Tests for search orchestration: semantic ranking, keyword fallback,
browse ordering, pagination and store failure handling.
"""

import pytest

from brainsearch.config import SearchSettings
from brainsearch.errors import StoreError, ValidationError
from brainsearch.gateway import EmbeddingGateway
from brainsearch.search import SearchOrchestrator
from brainsearch.strategies import BROWSE, KEYWORD, RECENT, SEMANTIC, StoreSearchStrategy
from brainsearch.types import SearchQuery

from conftest import InMemoryItemStore, MockEmbeddingProvider, make_item

QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


def _orchestrator(store, provider=None, min_score=0.0, settings=None):
    gateway = EmbeddingGateway(provider)
    strategy = StoreSearchStrategy(store, gateway, settings, min_score=min_score)
    return SearchOrchestrator(strategy, settings)


def _ids(items):
    return [item.id for item in items]


@pytest.fixture
def provider():
    return MockEmbeddingProvider({"ownership": QUERY_VECTOR})


@pytest.fixture
def ranked_store():
    return InMemoryItemStore([
        make_item("exact", "Rust ownership", "Ownership rules", ["rust"], [1, 0, 0, 0], minutes_ago=50),
        make_item("close", "Borrowing", "Borrow checker", ["rust"], [0.8, 0.6, 0, 0], minutes_ago=40),
        make_item("side", "Lifetimes", "Lifetime ownership", ["rust", "lang"], [0.6, 0.8, 0, 0], minutes_ago=30),
        make_item("orthogonal", "Cooking", "Pasta", ["food"], [0, 1, 0, 0], minutes_ago=20),
        make_item("opposite", "Anti", "Opposite", ["food"], [-1, 0, 0, 0], minutes_ago=10),
        make_item("plain", "No vector", "ownership notes", [], None, minutes_ago=0),
    ])


class TestBrowse:

    @pytest.mark.asyncio
    async def test_empty_query_orders_by_updated_desc(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(SearchQuery(limit=4))
        assert _ids(results) == ["plain", "opposite", "orthogonal", "side"]
        stamps = [i.updated_at for i in results]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.asyncio
    async def test_none_query_is_browse(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search()
        assert len(results) == 6
        assert ranked_store.called("recent") == [(10, 0)]

    @pytest.mark.asyncio
    async def test_blank_query_is_browse(self, ranked_store, provider):
        await _orchestrator(ranked_store, provider).search(SearchQuery(query="   "))
        assert provider.embed_calls == 0
        assert ranked_store.called("recent")


class TestSemanticSearch:

    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(SearchQuery(query="ownership"))
        # Negative similarity is never a match; zero still is
        assert _ids(results) == ["exact", "close", "side", "orthogonal"]

    @pytest.mark.asyncio
    async def test_pagination_positions(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="ownership", limit=2, offset=1)
        )
        assert _ids(results) == ["close", "side"]

    @pytest.mark.asyncio
    async def test_offset_past_end_is_empty(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="ownership", offset=50)
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_tag_filter_matches_any(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="ownership", tags=("lang", "food"))
        )
        assert _ids(results) == ["side", "orthogonal"]

    @pytest.mark.asyncio
    async def test_min_score(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider, min_score=0.7).search(
            SearchQuery(query="ownership")
        )
        assert _ids(results) == ["exact", "close"]

    @pytest.mark.asyncio
    async def test_no_match_above_threshold_is_empty(self, provider):
        store = InMemoryItemStore([
            make_item("p", "Profile", "ownership", [], [0, 1, 0, 0]),
        ])
        results = await _orchestrator(store, provider, min_score=0.7).search(
            SearchQuery(query="ownership")
        )
        assert results == []
        assert not store.called("keyword_search")

    @pytest.mark.asyncio
    async def test_candidates_capped(self, ranked_store, provider):
        settings = SearchSettings(max_candidates=3)
        await _orchestrator(ranked_store, provider, settings=settings).search(
            SearchQuery(query="ownership")
        )
        assert ranked_store.called("list_with_embedding") == [(3,)]

    @pytest.mark.asyncio
    async def test_mismatched_candidate_skipped(self, provider):
        store = InMemoryItemStore([
            make_item("good", "A", "", [], [1, 0, 0, 0]),
            make_item("stale", "B", "", [], [1, 0]),
        ])
        results = await _orchestrator(store, provider).search(SearchQuery(query="ownership"))
        assert _ids(results) == ["good"]


class TestFallback:

    @pytest.mark.asyncio
    async def test_provider_failure_equals_keyword_search(self, ranked_store, provider):
        keyword = await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="ownership", semantic_search=False)
        )
        provider.fail = True
        fallback = await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="ownership")
        )
        assert fallback == keyword
        assert _ids(fallback) == ["plain", "side", "exact"]

    @pytest.mark.asyncio
    async def test_no_provider_uses_keywords(self, ranked_store):
        results = await _orchestrator(ranked_store, None).search(SearchQuery(query="pasta"))
        assert _ids(results) == ["orthogonal"]

    @pytest.mark.asyncio
    async def test_no_embeddings_declines_to_keywords(self, provider):
        store = InMemoryItemStore([
            make_item("a", "Ownership", "", minutes_ago=5),
            make_item("b", "Other", "", minutes_ago=1),
        ])
        results = await _orchestrator(store, provider).search(SearchQuery(query="ownership"))
        assert _ids(results) == ["a"]
        assert store.called("keyword_search")

    @pytest.mark.asyncio
    async def test_store_failure_while_listing_embeddings(self, ranked_store, provider):
        ranked_store.failing.add("list_with_embedding")
        results = await _orchestrator(ranked_store, provider).search(SearchQuery(query="pasta"))
        assert _ids(results) == ["orthogonal"]


class TestKeywordSearch:

    @pytest.mark.asyncio
    async def test_keyword_arguments(self, ranked_store, provider):
        await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="Rust Ownership in", tags=("rust",), limit=5, offset=2,
                        semantic_search=False)
        )
        assert ranked_store.called("keyword_search") == [
            (("rust", "ownership"), ("rust",), 5, 2, None)
        ]

    @pytest.mark.asyncio
    async def test_short_query_becomes_phrase(self, ranked_store, provider):
        await _orchestrator(ranked_store, provider).search(
            SearchQuery(query="go", semantic_search=False)
        )
        assert ranked_store.called("keyword_search") == [((), (), 10, 0, "go")]

    @pytest.mark.asyncio
    async def test_tags_only(self, ranked_store, provider):
        results = await _orchestrator(ranked_store, provider).search(SearchQuery(tags=("food",)))
        assert _ids(results) == ["opposite", "orthogonal"]

    @pytest.mark.asyncio
    async def test_store_failure_falls_back_to_recent(self, ranked_store, provider):
        ranked_store.failing.add("keyword_search")
        strategy = StoreSearchStrategy(ranked_store, EmbeddingGateway(provider))
        outcome = await strategy.keyword_search("pasta", (), 2, 0)
        assert outcome.strategy == RECENT
        assert _ids(outcome.items) == ["plain", "opposite"]

    @pytest.mark.asyncio
    async def test_store_failure_propagates_when_recent_fails(self, ranked_store, provider):
        ranked_store.failing.update({"keyword_search", "recent"})
        with pytest.raises(StoreError, match="keyword_search failed"):
            await _orchestrator(ranked_store, provider).search(
                SearchQuery(query="pasta", semantic_search=False)
            )

    @pytest.mark.asyncio
    async def test_strategy_names(self, ranked_store, provider):
        strategy = StoreSearchStrategy(ranked_store, EmbeddingGateway(provider))
        assert (await strategy.keyword_search(None, (), 3, 0)).strategy == BROWSE
        assert (await strategy.keyword_search("pasta", (), 3, 0)).strategy == KEYWORD
        assert (await strategy.semantic_search("ownership", (), 3, 0)).strategy == SEMANTIC


class TestQueryValidation:

    @pytest.mark.asyncio
    async def test_not_a_query_object(self, ranked_store, provider):
        with pytest.raises(ValidationError):
            await _orchestrator(ranked_store, provider).search({"query": "x"})

    @pytest.mark.asyncio
    async def test_query_not_a_string(self, ranked_store, provider):
        with pytest.raises(ValidationError):
            await _orchestrator(ranked_store, provider).search(SearchQuery(query=42))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit, expected", [(None, 10), (0, 10), (-3, 10), (500, 100), (7, 7)])
    async def test_limit_clamped(self, ranked_store, provider, limit, expected):
        await _orchestrator(ranked_store, provider).search(SearchQuery(limit=limit))
        assert ranked_store.called("recent") == [(expected, 0)]

    @pytest.mark.asyncio
    async def test_negative_offset_is_zero(self, ranked_store, provider):
        await _orchestrator(ranked_store, provider).search(SearchQuery(offset=-4))
        assert ranked_store.called("recent") == [(10, 0)]
