"""
Search orchestration: choose semantic or keyword search per request and
fall back when a strategy is unavailable or fails.

Fallback order is semantic → keyword → recent. Only caller input errors
(ValidationError) and a store that cannot even list recent items
(StoreError) reach the caller.
"""

import logging
from typing import Optional

from .config import SearchSettings
from .errors import ValidationError
from .protocol import SearchStrategy
from .types import Item, SearchQuery

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """
    Top-level ``search(query)`` for one item kind.

    Args:
        strategy: Search capabilities for this kind
        settings: Paging defaults and limits
        kind: Item kind, for log messages
    """

    def __init__(
        self,
        strategy: SearchStrategy,
        settings: Optional[SearchSettings] = None,
        *,
        kind: str = "item",
    ):
        self.strategy = strategy
        self.settings = settings or SearchSettings()
        self.kind = kind

    async def search(self, query: Optional[SearchQuery] = None) -> list[Item]:
        """
        Search items.

        The caller's ``semantic_search`` flag selects the strategy. When
        semantic search is chosen and a query is given, items are ranked by
        embedding similarity; if the query cannot be embedded, or no item
        has an embedding, the keyword path runs instead. Without a query or
        tags the most recently updated items are returned.

        Returns:
            Items in rank order, without scores.

        Raises:
            ValidationError: If the query object is malformed.
            StoreError: If the store fails and the recent-items fallback
                fails too.
        """
        if query is None:
            query = SearchQuery()
        if not isinstance(query, SearchQuery):
            raise ValidationError(f"Invalid {self.kind} search query: {type(query).__name__}")

        q = query.normalized(self.settings.default_limit, self.settings.max_limit)
        logger.debug(
            "Searching %ss: query=%r tags=%d limit=%d offset=%d semantic=%s",
            self.kind, (q.query or "")[:30], len(q.tags), q.limit, q.offset, q.semantic_search,
        )

        if q.semantic_search and q.query:
            outcome = await self.strategy.semantic_search(q.query, q.tags, q.limit, q.offset)
            if not outcome.failed and not outcome.declined:
                logger.info("Semantic search found %d %s results", len(outcome.items), self.kind)
                return list(outcome.items)
            logger.debug("Falling back to keyword search for %ss", self.kind)

        outcome = await self.strategy.keyword_search(q.query, q.tags, q.limit, q.offset)
        if outcome.failed:
            raise outcome.error
        logger.info("%s search found %d %s results", outcome.strategy.capitalize(),
                    len(outcome.items), self.kind)
        return list(outcome.items)
