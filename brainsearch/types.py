"""
Data types for the knowledge store.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from .errors import ValidationError

NOTE = "note"
PROFILE = "profile"
ITEM_KINDS = (NOTE, PROFILE)

MAX_ID_LENGTH = 1024

# Blocked: control chars and DEL
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f]')


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix, so they sort
    lexically in chronological order.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def validate_id(id) -> str:
    """Validate an item ID and return it stripped.

    Raises ValidationError for non-string, blank, overlong or control
    character IDs.
    """
    if not isinstance(id, str) or not id.strip():
        raise ValidationError(f"Item ID must be a non-empty string: {id!r}")
    id = id.strip()
    if len(id) > MAX_ID_LENGTH:
        raise ValidationError(f"Item ID must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id):
        raise ValidationError(f"Item ID contains invalid characters: {id!r}")
    return id


def normalize_tags(tags: Optional[Sequence[str]]) -> tuple[str, ...]:
    """Turn a tag collection into a tuple of non-blank, unique strings.

    ``None`` becomes an empty tuple. Order of first appearance is kept.
    """
    if tags is None:
        return ()
    if isinstance(tags, str):
        raise ValidationError(f"Tags must be a sequence of strings, not a string: {tags!r}")
    seen: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError(f"Tag must be a string: {tag!r}")
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


@dataclass(frozen=True)
class Item:
    """
    An item in the knowledge store: a note or the profile.

    This is a read-only snapshot. Both kinds satisfy the same retrieval
    contract; a profile's ``content`` is its assembled profile text.

    Attributes:
        id: Opaque stable identifier
        kind: "note" or "profile"
        title: Note title or profile name
        content: Free text
        tags: Labels used for filtering and relation scoring
        embedding: Fixed-length vector, absent until generated
        created_at: Canonical UTC timestamp
        updated_at: Canonical UTC timestamp
    """
    id: str
    kind: str = NOTE
    title: str = ""
    content: str = ""
    tags: tuple[str, ...] = ()
    embedding: Optional[tuple[float, ...]] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def __post_init__(self):
        # Accept lists from callers and rows; store immutable tuples
        object.__setattr__(self, "tags", normalize_tags(self.tags))
        if self.embedding is not None:
            object.__setattr__(self, "embedding", tuple(float(v) for v in self.embedding))

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def with_embedding(self, embedding: Sequence[float]) -> "Item":
        """Return a copy carrying the given embedding."""
        return replace(self, embedding=tuple(embedding))

    def __str__(self) -> str:
        return f"{self.id}: {self.title[:60]}"


@dataclass(frozen=True)
class Chunk:
    """A bounded, possibly overlapping window of a longer item's content.

    Chunks are insert-only. They are not updated in place and are not
    removed when the parent item is deleted.
    """
    parent_id: str
    content: str
    embedding: tuple[float, ...]
    chunk_index: int
    id: Optional[str] = None


@dataclass(frozen=True)
class ScoredItem:
    """An item with its ranking score. Never returned to callers."""
    item: Item
    score: float
    match_ratio: float = 0.0


@dataclass(frozen=True)
class SearchQuery:
    """
    A search request.

    ``semantic_search`` is chosen by the caller; the engine never infers the
    strategy from the shape of the query.
    """
    query: Optional[str] = None
    tags: tuple[str, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    semantic_search: bool = True

    def normalized(self, default_limit: int = 10, max_limit: int = 100) -> "SearchQuery":
        """Return a copy with blank fields removed and paging clamped.

        Absent or invalid limits become ``default_limit``; limits are
        clamped to ``[1, max_limit]`` and offsets to ``>= 0``.
        """
        query = self.query
        if query is not None and not isinstance(query, str):
            raise ValidationError(f"Search query must be a string: {query!r}")
        query = query.strip() if query and query.strip() else None

        limit = self.limit
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            limit = default_limit
        limit = max(1, min(limit, max_limit))

        offset = self.offset
        if not isinstance(offset, int) or isinstance(offset, bool):
            offset = 0
        offset = max(0, offset)

        return SearchQuery(
            query=query,
            tags=normalize_tags(self.tags),
            limit=limit,
            offset=offset,
            semantic_search=bool(self.semantic_search),
        )


@dataclass(frozen=True)
class StrategyOutcome:
    """Result of one retrieval strategy attempt.

    A strategy either produced items, found nothing, declined to run
    (its preconditions were not met), or failed; a failure keeps the
    exception in ``error`` so the caller can log it and move on.
    """
    strategy: str
    items: tuple[Item, ...] = ()
    error: Optional[BaseException] = None
    declined: bool = False

    @property
    def found(self) -> bool:
        return bool(self.items)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, strategy: str, items: Sequence[Item]) -> "StrategyOutcome":
        return cls(strategy=strategy, items=tuple(items))

    @classmethod
    def decline(cls, strategy: str) -> "StrategyOutcome":
        return cls(strategy=strategy, declined=True)

    @classmethod
    def failure(cls, strategy: str, error: BaseException) -> "StrategyOutcome":
        return cls(strategy=strategy, error=error)


@dataclass(frozen=True)
class Experience:
    title: str = ""
    company: str = ""
    description: str = ""


@dataclass(frozen=True)
class Education:
    degree_name: str = ""
    field_of_study: str = ""
    school: str = ""


@dataclass(frozen=True)
class ProfileDetails:
    """Structured fields of the single user profile."""
    full_name: str = ""
    headline: str = ""
    occupation: str = ""
    summary: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    experiences: tuple[Experience, ...] = ()
    education: tuple[Education, ...] = ()
    languages: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
