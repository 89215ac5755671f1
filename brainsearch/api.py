"""
Core API for the knowledge store.

Brain wires the stores, the embedding gateway, the search orchestrators
and the relation finders for notes and the profile:
- search(): semantic → keyword → recent
- find_related(): tags → embedding → keywords → recent
- put_note() / put_profile(): store with a best-effort embedding
- backfill_embeddings(): embed whatever is still missing
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .document_store import DocumentStore, ItemStore
from .errors import BrainSearchError, ValidationError
from .gateway import EmbeddingGateway
from .logging_config import configure_ops_log, detach_ops_log
from .maintenance import (
    BackfillResult,
    EmbeddingMaintainer,
    embedding_text,
    should_regenerate_embedding,
)
from .providers import EmbeddingProvider, get_registry
from .related import RelationFinder
from .search import SearchOrchestrator
from .strategies import StoreSearchStrategy
from .text import profile_text
from .types import (
    ITEM_KINDS,
    NOTE,
    PROFILE,
    Item,
    ProfileDetails,
    SearchQuery,
    normalize_tags,
    utc_now,
    validate_id,
)

logger = logging.getLogger(__name__)

PROFILE_ID = "profile"


class Brain:
    """
    Personal knowledge store with hybrid retrieval.

    Example:
        brain = Brain()
        await brain.put_note("n1", "Rust ownership", "Borrowing rules ...", ["rust"])
        notes = await brain.search(SearchQuery(query="borrow checker"))
        related = await brain.find_related("n1")
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ) -> None:
        """
        Open or create a store.

        Args:
            store_path: Store directory. Uses BRAINSEARCH_STORE_PATH or
                ~/.brainsearch if not specified.
            config: Pre-loaded StoreConfig (skips config discovery)
            embedding_provider: Provider instance, overriding the configured one
        """
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path
        settings = self._config.search

        self._documents = DocumentStore(self._config.db_path)
        try:
            self._ops_log_handler = configure_ops_log(self._store_path)
        except OSError:
            self._documents.close()
            raise

        # Providers load on first use; read-only operations never need them
        if embedding_provider is not None:
            self._gateway = EmbeddingGateway(embedding_provider)
        elif self._config.embedding is not None:
            embedding = self._config.embedding
            self._gateway = EmbeddingGateway(
                factory=lambda: get_registry().create_embedding(embedding.name, embedding.params)
            )
        else:
            logger.info("No embedding provider configured, keyword search only")
            self._gateway = EmbeddingGateway()

        self._stores = {kind: ItemStore(self._documents, kind) for kind in ITEM_KINDS}
        notes = self._stores[NOTE]
        profile = self._stores[PROFILE]

        self._search = {
            NOTE: SearchOrchestrator(
                StoreSearchStrategy(notes, self._gateway, settings, kind=NOTE),
                settings, kind=NOTE,
            ),
            PROFILE: SearchOrchestrator(
                StoreSearchStrategy(
                    profile, self._gateway, settings,
                    min_score=settings.profile_min_score, kind=PROFILE,
                ),
                settings, kind=PROFILE,
            ),
        }
        self._related = {
            NOTE: RelationFinder(notes, settings, kind=NOTE),
            PROFILE: RelationFinder(profile, settings, kind=PROFILE),
        }
        self._profile_notes = RelationFinder(
            profile, settings, candidate_store=notes, kind=PROFILE,
        )
        self._maintainers = {
            kind: EmbeddingMaintainer(store, self._gateway, settings)
            for kind, store in self._stores.items()
        }

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def config(self) -> StoreConfig:
        return self._config

    def _kind(self, kind: str) -> str:
        if kind not in ITEM_KINDS:
            raise ValidationError(f"Unknown item kind: {kind!r}")
        return kind

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    async def search(self, query: Optional[SearchQuery] = None, kind: str = NOTE) -> list[Item]:
        """Search notes (or the profile) with fallback from semantic to keyword."""
        return await self._search[self._kind(kind)].search(query)

    async def find_related(self, item_id: str, max_results: int = 5, kind: str = NOTE) -> list[Item]:
        """Items of the same kind related to ``item_id``."""
        return await self._related[self._kind(kind)].find_related(item_id, max_results)

    async def find_notes_for_profile(self, max_results: int = 5) -> list[Item]:
        """Notes related to the profile. Empty when there is no profile."""
        profile = await self.get_profile()
        if profile is None:
            return []
        return await self._profile_notes.find_related_to(profile, max_results)

    async def get(self, item_id: str, kind: str = NOTE) -> Optional[Item]:
        return await self._stores[self._kind(kind)].get_by_id(validate_id(item_id))

    async def get_profile(self) -> Optional[Item]:
        profiles = await self._stores[PROFILE].recent(1)
        return profiles[0] if profiles else None

    async def count(self, kind: str = NOTE) -> int:
        return await self._stores[self._kind(kind)].count()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _embed(self, text: str, item_id: str) -> Optional[tuple[float, ...]]:
        if not text:
            return None
        try:
            return tuple(await self._gateway.generate_embedding(text))
        except BrainSearchError as e:
            logger.warning("Storing %s without embedding: %s", item_id, e)
            return None

    async def put_note(
        self,
        id: str,
        title: str = "",
        content: str = "",
        tags: Optional[Sequence[str]] = None,
    ) -> Item:
        """
        Store a note, creating or replacing it.

        The embedding is generated from title and content when possible;
        an unchanged note keeps its existing embedding. Content longer than
        the chunk threshold is chunked once a fresh embedding exists.
        """
        id = validate_id(id)
        store = self._stores[NOTE]
        existing = await store.get_by_id(id)

        note = Item(id=id, kind=NOTE, title=title or "", content=content or "",
                    tags=normalize_tags(tags), updated_at=utc_now())
        changed = ["title", "content"]
        if existing is not None:
            changed = [f for f in ("title", "content")
                       if getattr(existing, f) != getattr(note, f)]

        fresh = False
        if existing is not None and existing.has_embedding and not should_regenerate_embedding(changed):
            note = note.with_embedding(existing.embedding)
        else:
            embedding = await self._embed(embedding_text(note), id)
            if embedding is not None:
                note = note.with_embedding(embedding)
                fresh = True

        stored = await store.upsert(note)
        logger.info("Stored note %s", id)

        if fresh and len(stored.content) > self._config.search.chunk_threshold:
            await self._maintainers[NOTE].create_chunks(stored)
        return stored

    async def put_profile(self, details: ProfileDetails) -> Item:
        """Store the profile, replacing any previous one."""
        if not isinstance(details, ProfileDetails):
            raise ValidationError(f"Expected ProfileDetails, got {type(details).__name__}")
        text = profile_text(details)
        profile = Item(
            id=PROFILE_ID,
            kind=PROFILE,
            title=details.full_name,
            content=text,
            tags=normalize_tags(details.tags),
            updated_at=utc_now(),
        )
        embedding = await self._embed(text, PROFILE_ID)
        if embedding is not None:
            profile = profile.with_embedding(embedding)
        stored = await self._stores[PROFILE].upsert(profile)
        logger.info("Stored profile for %s", details.full_name or "(unnamed)")
        return stored

    async def delete(self, item_id: str, kind: str = NOTE) -> bool:
        return await self._stores[self._kind(kind)].delete(validate_id(item_id))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def backfill_embeddings(self, kind: Optional[str] = None) -> BackfillResult:
        """
        Embed items that have no embedding yet.

        Args:
            kind: Only this kind; both kinds when None
        """
        kinds = (self._kind(kind),) if kind else ITEM_KINDS
        total = BackfillResult()
        for k in kinds:
            result = await self._maintainers[k].backfill_embeddings()
            total.updated += result.updated
            total.failed += result.failed
            total.chunks += result.chunks
        return total

    def close(self) -> None:
        """Close the database and detach the operations log."""
        self._documents.close()
        detach_ops_log(self._ops_log_handler)
        self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
