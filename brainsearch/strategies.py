"""
Search strategies over one item store.

StoreSearchStrategy implements both search capabilities (semantic and
keyword) for a single item kind. One instance is composed into each
SearchOrchestrator; notes and the profile differ only in their
configuration (the profile requires a minimum similarity before it counts
as a match).
"""

import logging
from typing import Optional, Sequence

from .config import SearchSettings
from .errors import StoreError
from .protocol import EmbeddingGatewayProtocol, ItemStoreProtocol
from .text import query_keywords
from .types import ScoredItem, StrategyOutcome
from .vectors import cosine_similarity

logger = logging.getLogger(__name__)

SEMANTIC = "semantic"
KEYWORD = "keyword"
BROWSE = "browse"
RECENT = "recent"


class StoreSearchStrategy:
    """
    Semantic and keyword search over one ItemStore.

    Args:
        store: Item store for this kind
        gateway: Embedding gateway used to embed queries
        settings: Search limits
        min_score: Minimum cosine similarity for a semantic match
        kind: Item kind, for log messages
    """

    def __init__(
        self,
        store: ItemStoreProtocol,
        gateway: EmbeddingGatewayProtocol,
        settings: Optional[SearchSettings] = None,
        *,
        min_score: float = 0.0,
        kind: str = "item",
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or SearchSettings()
        self.min_score = min_score
        self.kind = kind

    async def semantic_search(
        self,
        query: str,
        tags: Sequence[str],
        limit: int,
        offset: int,
    ) -> StrategyOutcome:
        """
        Rank every item that has an embedding by similarity to ``query``.

        Declines when no stored item has an embedding. Provider and store
        failures are returned as a failed outcome, never raised.
        """
        try:
            query_vector = await self.gateway.generate_embedding(query)
        except Exception as e:
            logger.warning("Query embedding failed for %s search: %s", self.kind, e)
            return StrategyOutcome.failure(SEMANTIC, e)

        try:
            candidates = await self.store.list_with_embedding(self.settings.max_candidates)
        except Exception as e:
            logger.warning("Could not load %s embeddings: %s", self.kind, e)
            return StrategyOutcome.failure(SEMANTIC, e)

        if not candidates:
            logger.debug("No %ss with embeddings, semantic search declined", self.kind)
            return StrategyOutcome.decline(SEMANTIC)

        scored = []
        for item in candidates:
            try:
                score = cosine_similarity(query_vector, item.embedding)
            except Exception as e:
                logger.debug("Skipping %s %s during scoring: %s", self.kind, item.id, e)
                continue
            if score < 0 or score < self.min_score:
                continue
            scored.append(ScoredItem(item, score))

        if tags:
            wanted = set(tags)
            scored = [s for s in scored if wanted.intersection(s.item.tags)]

        scored.sort(key=lambda s: s.score, reverse=True)
        ranked = scored[:limit + offset]
        page = ranked[offset:offset + limit]

        logger.debug(
            "Semantic %s search scored %d of %d candidates, returning %d",
            self.kind, len(scored), len(candidates), len(page),
        )
        return StrategyOutcome.success(SEMANTIC, [s.item for s in page])

    async def keyword_search(
        self,
        query: Optional[str],
        tags: Sequence[str],
        limit: int,
        offset: int,
    ) -> StrategyOutcome:
        """
        Substring search on title, content and tags, newest first.

        With neither query nor tags this is a browse of the most recently
        updated items. A StoreError triggers one attempt at the most recent
        items; if that fails too the outcome carries the original error.
        """
        keywords = query_keywords(query)
        phrase = query if query and not keywords else None
        browse = not keywords and not phrase and not tags
        strategy = BROWSE if browse else KEYWORD

        try:
            if browse:
                items = await self.store.recent(limit, offset)
            else:
                items = await self.store.keyword_search(
                    keywords, tags, limit, offset, phrase=phrase,
                )
            return StrategyOutcome.success(strategy, items)
        except StoreError as e:
            logger.error("%s %s search failed: %s", self.kind.capitalize(), strategy, e)
            try:
                items = await self.store.recent(limit)
            except StoreError as recent_error:
                logger.error("Recent %ss fallback failed too: %s", self.kind, recent_error)
                return StrategyOutcome.failure(strategy, e)
            logger.info("Falling back to %d recent %ss", len(items), self.kind)
            return StrategyOutcome.success(RECENT, items)
