"""
Relation discovery: find items related to a given item without a query.

Strategies run in priority order and the first that yields items wins:

1. Tag similarity (exact and partial tag overlap)
2. Embedding similarity
3. Keywords extracted from the source content, searched concurrently
4. Most recently updated items

Each strategy is wrapped so that an error counts as "no results". The
source item is never part of the answer.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional, Sequence

from .config import SearchSettings
from .protocol import ItemStoreProtocol
from .text import extract_keywords, match_ratio, tag_match_score
from .types import Item, ScoredItem, StrategyOutcome, validate_id
from .vectors import cosine_similarity

logger = logging.getLogger(__name__)

TAGS = "tags"
EMBEDDING = "embedding"
KEYWORDS = "keywords"
RECENT = "recent"


def deduplicate(items: Sequence[Item], exclude_id: Optional[str] = None) -> list[Item]:
    """Drop repeated ids (first occurrence wins) and ``exclude_id``."""
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id == exclude_id or item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


class RelationFinder:
    """
    ``find_related(item_id, max_results)`` for one source store.

    Candidates come from ``candidate_store`` when given, otherwise from the
    source store itself. A separate candidate store relates the profile to
    notes.

    Args:
        store: Store holding the source item
        settings: Relation limits
        candidate_store: Store to draw related items from
        kind: Source item kind, for log messages
    """

    def __init__(
        self,
        store: ItemStoreProtocol,
        settings: Optional[SearchSettings] = None,
        *,
        candidate_store: Optional[ItemStoreProtocol] = None,
        kind: str = "item",
    ):
        self.store = store
        self.candidates = candidate_store or store
        self.settings = settings or SearchSettings()
        self.kind = kind

    def _clamp(self, max_results) -> int:
        if not isinstance(max_results, int) or isinstance(max_results, bool) or max_results < 1:
            max_results = 5
        return min(max_results, self.settings.max_related)

    async def find_related(self, item_id: str, max_results: int = 5) -> list[Item]:
        """
        Find items related to ``item_id``.

        Returns an empty list when the source item does not exist.

        Raises:
            ValidationError: If ``item_id`` is blank.
            StoreError: If looking up the source item fails.
        """
        item_id = validate_id(item_id)
        limit = self._clamp(max_results)

        source = await self.store.get_by_id(item_id)
        if source is None:
            logger.warning("Source %s not found for relations: %s", self.kind, item_id)
            return []
        return await self.find_related_to(source, limit)

    async def find_related_to(self, source: Item, max_results: int = 5) -> list[Item]:
        """Run the strategy chain for an already loaded source item."""
        limit = self._clamp(max_results)
        chain: list[tuple[str, Callable[[], Awaitable[list[Item]]]]] = [
            (TAGS, lambda: self._by_tags(source, limit)),
            (EMBEDDING, lambda: self._by_embedding(source, limit)),
            (KEYWORDS, lambda: self._by_keywords(source, limit)),
            (RECENT, lambda: self._recent(source, limit)),
        ]
        for name, attempt in chain:
            outcome = await self._attempt(name, attempt)
            if outcome.found:
                logger.info("Found %d related items for %s %s by %s",
                            len(outcome.items), self.kind, source.id, name)
                return list(outcome.items)
        return []

    async def _attempt(self, name: str,
                       attempt: Callable[[], Awaitable[list[Item]]]) -> StrategyOutcome:
        try:
            return StrategyOutcome.success(name, await attempt())
        except Exception as e:
            logger.warning("Relation strategy %r failed: %s", name, e)
            return StrategyOutcome.failure(name, e)

    async def find_related_by_tags(
        self,
        reference_tags: Sequence[str],
        limit: int = 5,
        exclude_id: Optional[str] = None,
    ) -> list[Item]:
        """
        Rank tagged candidates by overlap with ``reference_tags``.

        Sorted by tag score, then by the share of the candidate's own tags
        that matched. Candidates with no overlap are dropped.
        """
        if not reference_tags:
            return []
        candidates = await self.candidates.list_with_tags(self.settings.tag_candidate_limit)

        scored = []
        for item in candidates:
            if item.id == exclude_id or not item.tags:
                continue
            score = tag_match_score(item.tags, reference_tags)
            if score > 0:
                scored.append(ScoredItem(item, score, match_ratio(score, item.tags)))

        scored.sort(key=lambda s: (s.score, s.match_ratio), reverse=True)
        return [s.item for s in scored[:limit]]

    def _exclude_id(self, source: Item) -> Optional[str]:
        # Items are keyed by (id, kind); a candidate of another kind is never the source
        return source.id if self.candidates is self.store else None

    async def _by_tags(self, source: Item, limit: int) -> list[Item]:
        if not source.tags:
            return []
        return await self.find_related_by_tags(
            source.tags, limit, exclude_id=self._exclude_id(source),
        )

    async def _by_embedding(self, source: Item, limit: int) -> list[Item]:
        if not source.has_embedding:
            return []
        exclude_id = self._exclude_id(source)
        if exclude_id is None:
            candidates = await self.candidates.list_with_embedding(self.settings.max_candidates)
        else:
            candidates = await self.candidates.list_other_with_embedding(
                exclude_id, self.settings.max_candidates,
            )

        scored = []
        for item in candidates:
            if item.id == exclude_id:
                continue
            try:
                score = cosine_similarity(source.embedding, item.embedding)
            except Exception as e:
                logger.debug("Skipping %s during similarity scoring: %s", item.id, e)
                continue
            if score >= 0:
                scored.append(ScoredItem(item, score))

        scored.sort(key=lambda s: s.score, reverse=True)
        return [s.item for s in scored[:limit]]

    async def _by_keywords(self, source: Item, limit: int) -> list[Item]:
        keywords = extract_keywords(source.content, self.settings.max_keywords)
        if not keywords:
            return []
        logger.debug("Relating %s by keywords: %s", source.id, ", ".join(keywords))
        per_keyword = math.ceil(limit / 2)

        async def search_one(keyword: str) -> list[Item]:
            try:
                return await self.candidates.keyword_search([keyword], (), per_keyword, 0)
            except Exception as e:
                logger.debug("Keyword search for %r failed: %s", keyword, e)
                return []

        results = await asyncio.gather(*(search_one(k) for k in keywords))
        merged = [item for batch in results for item in batch]
        return deduplicate(merged, exclude_id=self._exclude_id(source))[:limit]

    async def _recent(self, source: Item, limit: int) -> list[Item]:
        exclude_id = self._exclude_id(source)
        items = await self.candidates.recent(limit if exclude_id is None else limit + 1)
        return deduplicate(items, exclude_id=exclude_id)[:limit]
