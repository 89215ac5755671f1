"""
Protocol definitions for the retrieval engine's collaborators.

Defines interface contracts at two levels:
- ItemStoreProtocol / EmbeddingGatewayProtocol: what the engine consumes
  (SQLite + embedding provider locally, anything async elsewhere)
- SearchStrategy: the per-kind capability set composed into
  SearchOrchestrator
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from .types import Chunk, Item, StrategyOutcome


@runtime_checkable
class ItemStoreProtocol(Protocol):
    """
    Read/filter/paginate access to the items of one kind.

    Implementations raise StoreError for I/O failures. A missing item is
    ``None``, never an error. Every listing is bounded by ``limit``.
    """

    async def get_by_id(self, id: str) -> Optional[Item]: ...

    async def list_with_embedding(self, limit: int) -> list[Item]: ...

    async def list_other_with_embedding(self, exclude_id: str, limit: int) -> list[Item]: ...

    async def list_with_tags(self, limit: int) -> list[Item]: ...

    async def list_without_embedding(self, limit: int) -> list[Item]: ...

    async def keyword_search(
        self,
        keywords: Sequence[str],
        tags: Sequence[str],
        limit: int,
        offset: int,
        *,
        phrase: Optional[str] = None,
    ) -> list[Item]: ...

    async def recent(self, limit: int, offset: int = 0) -> list[Item]: ...

    async def update_embedding(self, id: str, embedding: Sequence[float]) -> None: ...

    async def insert_chunk(self, chunk: Chunk) -> str: ...


@runtime_checkable
class EmbeddingGatewayProtocol(Protocol):
    """Embedding generation as seen by the engine (see gateway.EmbeddingGateway)."""

    async def generate_embedding(self, text: str) -> list[float]: ...

    async def get_batch_embeddings(self, texts: Sequence[str]) -> list[list[float]]: ...

    def chunk_text(self, text: str, size: int, overlap: int) -> list[str]: ...

    async def generate_chunk_embeddings(self, chunks: Sequence[str]) -> list: ...


@runtime_checkable
class SearchStrategy(Protocol):
    """
    Search capabilities for one item kind.

    Both methods return a StrategyOutcome rather than raising, so choosing
    the next strategy is ordinary control flow.
    """

    async def semantic_search(
        self,
        query: str,
        tags: Sequence[str],
        limit: int,
        offset: int,
    ) -> StrategyOutcome: ...

    async def keyword_search(
        self,
        query: Optional[str],
        tags: Sequence[str],
        limit: int,
        offset: int,
    ) -> StrategyOutcome: ...
