"""
Text processing for retrieval: keyword extraction, tag matching, chunking
and the assembly of item text for embedding.

All functions here are pure. They never raise on odd text input (blank
strings give empty results); only invalid parameters raise
ValidationError.
"""

import re
from collections import Counter
from typing import Callable, Iterable, Optional, Sequence

from .errors import ValidationError

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_MAX_KEYWORDS = 10

# Tokens of three characters or fewer are dropped before this list applies
STOP_WORDS = frozenset({
    "about", "also", "been", "could", "does", "each", "from", "have",
    "into", "just", "more", "only", "over", "should", "some", "such",
    "than", "that", "them", "then", "there", "their", "these", "they",
    "this", "those", "very", "were", "what", "when", "where", "which",
    "while", "will", "with", "would", "your",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

# Characters with meaning inside a SQL LIKE pattern
LIKE_ESCAPE = "\\"


def prepare_text(text: str) -> str:
    """Collapse runs of whitespace (including newlines) and trim."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def extract_keywords(text: str, max_keywords: int = DEFAULT_MAX_KEYWORDS) -> list[str]:
    """
    Extract the most frequent meaningful words from ``text``.

    Lower-cases, strips non-word characters, drops tokens of three
    characters or fewer and stop words, then returns up to
    ``max_keywords`` tokens by descending frequency. Ties keep the order in
    which the tokens first appeared.
    """
    if not text or not text.strip() or max_keywords < 1:
        return []

    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    tokens = [
        tok for tok in cleaned.split()
        if len(tok) > 3 and tok not in STOP_WORDS
    ]
    # Counter keeps first-seen order and sorted() is stable
    counts = Counter(tokens)
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return [word for word, _ in ranked[:max_keywords]]


def query_keywords(query: Optional[str]) -> list[str]:
    """Split a search query into lower-cased words longer than two characters."""
    if not query:
        return []
    return [word for word in query.lower().split() if len(word) > 2]


def escape_like(term: str) -> str:
    """Escape ``%``, ``_`` and the escape character for a LIKE pattern.

    Use with ``ESCAPE '\\'`` so user input never acts as a wildcard.
    """
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def tag_match_score(item_tags: Optional[Sequence[str]],
                    reference_tags: Optional[Sequence[str]]) -> float:
    """
    Score the overlap of ``item_tags`` with ``reference_tags``.

    Each item tag adds 1 for an exact match, otherwise 0.5 if it is a
    substring of, or contains, any reference tag. The sum is returned
    unnormalised; see :func:`match_ratio`.
    """
    if not item_tags or not reference_tags:
        return 0.0

    reference = list(reference_tags)
    score = 0.0
    for tag in item_tags:
        if tag in reference:
            score += 1.0
        elif any(tag in ref or ref in tag for ref in reference):
            score += 0.5
    return score


def match_ratio(score: float, item_tags: Optional[Sequence[str]]) -> float:
    """Tag score relative to the number of item tags, used as a tie-break."""
    if not item_tags:
        return 0.0
    return score / len(item_tags)


def chunk_text(text: str, size: int = DEFAULT_CHUNK_SIZE,
               overlap: int = DEFAULT_CHUNK_OVERLAP) -> list[str]:
    """
    Split ``text`` into overlapping windows of at most ``size`` characters.

    Consecutive windows share exactly ``overlap`` characters and the final
    partial window is kept, so ``chunks[0]`` followed by ``c[overlap:]`` of
    every later chunk reconstructs the text.

    Raises:
        ValidationError: If ``size`` is not positive or ``overlap`` is
            negative or not smaller than ``size``.
    """
    if size <= 0:
        raise ValidationError(f"Chunk size must be positive: {size}")
    if overlap < 0 or overlap >= size:
        raise ValidationError(
            f"Chunk overlap must be in [0, {size}): {overlap}"
        )
    if not text:
        return []

    step = size - overlap
    chunks = []
    start = 0
    while True:
        chunks.append(text[start:start + size])
        if start + size >= len(text):
            break
        start += step
    return chunks


# ---------------------------------------------------------------------------
# Embedding text assembly
#
# Each assembly is an ordered tuple of (field_present, formatter) pairs. The
# order of the tuple is the order of the output.
# ---------------------------------------------------------------------------

TextField = tuple[Callable[[object], bool], Callable[[object], str]]


def assemble_text(source: object, fields: Iterable[TextField], sep: str = "\n") -> str:
    """Join the formatted output of every present field, in field order."""
    parts = [fmt(source) for present, fmt in fields if present(source)]
    return sep.join(p for p in parts if p)


def _location(profile) -> str:
    return ", ".join(p for p in (profile.city, profile.state, profile.country) if p)


def _experience(profile) -> str:
    lines = ["Experience:"]
    for exp in profile.experiences:
        head = " ".join(p for p in (exp.title, f"at {exp.company}" if exp.company else "") if p)
        lines.append(f"- {head}")
        if exp.description:
            lines.append(f"  {exp.description}")
    return "\n".join(lines)


def _education(profile) -> str:
    lines = ["Education:"]
    for edu in profile.education:
        parts = [
            edu.degree_name,
            f"in {edu.field_of_study}" if edu.field_of_study else "",
            f"from {edu.school}" if edu.school else "",
        ]
        lines.append("- " + " ".join(p for p in parts if p))
    return "\n".join(lines)


NOTE_TEXT_FIELDS: tuple[TextField, ...] = (
    (lambda n: bool(n.title), lambda n: n.title.strip()),
    (lambda n: bool(n.content), lambda n: n.content.strip()),
)

PROFILE_TEXT_FIELDS: tuple[TextField, ...] = (
    (lambda p: bool(p.full_name), lambda p: f"Name: {p.full_name}"),
    (lambda p: bool(p.headline), lambda p: f"Headline: {p.headline}"),
    (lambda p: bool(p.occupation), lambda p: f"Occupation: {p.occupation}"),
    (lambda p: bool(p.summary), lambda p: f"Summary: {p.summary}"),
    (lambda p: bool(_location(p)), lambda p: f"Location: {_location(p)}"),
    (lambda p: bool(p.experiences), _experience),
    (lambda p: bool(p.education), _education),
    (lambda p: bool(p.languages), lambda p: f"Languages: {', '.join(p.languages)}"),
    (lambda p: bool(p.tags), lambda p: f"Tags: {', '.join(p.tags)}"),
)


def note_text(item) -> str:
    """Text used to embed a note: title then content."""
    return assemble_text(item, NOTE_TEXT_FIELDS, sep=" ")


def profile_text(profile) -> str:
    """Text used to embed and keyword-match the profile."""
    return assemble_text(profile, PROFILE_TEXT_FIELDS, sep="\n")
