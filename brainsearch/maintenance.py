"""
Embedding maintenance: backfill missing embeddings and chunk long content.

Invoked by the CLI ``backfill`` command or an external scheduler; nothing
here runs on its own.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import SearchSettings
from .errors import BrainSearchError, StoreError
from .protocol import EmbeddingGatewayProtocol, ItemStoreProtocol
from .text import note_text
from .types import NOTE, PROFILE, Chunk, Item

logger = logging.getLogger(__name__)

# Fields whose change alters what an item means
SEMANTIC_FIELDS = {
    NOTE: frozenset({"title", "content"}),
    PROFILE: frozenset({
        "full_name", "headline", "occupation", "summary",
        "experiences", "education",
    }),
}


def should_regenerate_embedding(changed_fields: Iterable[str], kind: str = NOTE) -> bool:
    """Whether an update touching ``changed_fields`` needs a new embedding.

    Accepts any iterable of field names, including the keys of an update dict.
    """
    semantic = SEMANTIC_FIELDS.get(kind, frozenset())
    return any(name in semantic for name in changed_fields)


def embedding_text(item: Item) -> str:
    """Text embedded for an item: title and content for notes, the assembled
    profile text (stored as content) for the profile."""
    if item.kind == PROFILE:
        return item.content.strip()
    return note_text(item)


@dataclass
class BackfillResult:
    """Counts from one backfill run."""
    updated: int = 0
    failed: int = 0
    chunks: int = 0

    def to_dict(self) -> dict:
        return {"updated": self.updated, "failed": self.failed, "chunks": self.chunks}


class EmbeddingMaintainer:
    """
    Generates and stores embeddings for the items of one store.

    Args:
        store: Item store to maintain
        gateway: Embedding gateway
        settings: Chunking parameters and candidate cap
    """

    def __init__(
        self,
        store: ItemStoreProtocol,
        gateway: EmbeddingGatewayProtocol,
        settings: Optional[SearchSettings] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or SearchSettings()

    async def backfill_embeddings(self) -> BackfillResult:
        """
        Embed every item that has no embedding yet.

        Items whose embedding cannot be generated or stored are counted as
        failed and left for the next run. Content longer than the chunk
        threshold is also chunked and embedded.

        Raises:
            StoreError: If items without embeddings cannot be listed.
        """
        result = BackfillResult()
        pending = await self.store.list_without_embedding(self.settings.max_candidates)
        logger.info("Backfilling embeddings for %d items", len(pending))

        for item in pending:
            text = embedding_text(item)
            if not text:
                logger.warning("Item %s has no text to embed", item.id)
                result.failed += 1
                continue
            try:
                vector = await self.gateway.generate_embedding(text)
                await self.store.update_embedding(item.id, vector)
            except BrainSearchError as e:
                logger.warning("Failed to embed %s: %s", item.id, e)
                result.failed += 1
                continue
            result.updated += 1

            if len(item.content) > self.settings.chunk_threshold:
                result.chunks += await self.create_chunks(item)

        logger.info("Backfill complete: %d updated, %d failed, %d chunks",
                    result.updated, result.failed, result.chunks)
        return result

    async def create_chunks(self, item: Item) -> int:
        """
        Split ``item.content`` into windows, embed them and store each as a
        Chunk.

        Returns:
            Number of chunks stored. Chunks that fail to embed or insert
            are logged and skipped.
        """
        if not item.content:
            return 0
        windows = self.gateway.chunk_text(
            item.content, self.settings.chunk_size, self.settings.chunk_overlap,
        )
        try:
            embedded = await self.gateway.generate_chunk_embeddings(windows)
        except BrainSearchError as e:
            logger.warning("Chunk embedding failed for %s: %s", item.id, e)
            return 0

        stored = 0
        for index, text, vector in embedded:
            chunk = Chunk(
                parent_id=item.id,
                content=text,
                embedding=tuple(vector),
                chunk_index=index,
            )
            try:
                await self.store.insert_chunk(chunk)
            except StoreError as e:
                logger.warning("Failed to store chunk %d of %s: %s", index, item.id, e)
                continue
            stored += 1

        logger.debug("Stored %d of %d chunks for %s", stored, len(windows), item.id)
        return stored
