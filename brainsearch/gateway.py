"""
Embedding gateway: the engine's single door to the embedding provider.

Wraps a provider so that every failure mode (exception, empty vector,
wrong dimension, NaN) surfaces as ProviderError, and batch calls degrade
to per-text calls instead of failing as a whole.
"""

import asyncio
import logging
from typing import Callable, NamedTuple, Optional, Sequence

from .errors import ProviderError, ValidationError
from .providers.base import EmbeddingProvider
from .text import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text, prepare_text
from .vectors import is_valid_vector

logger = logging.getLogger(__name__)


class EmbeddedChunk(NamedTuple):
    """A chunk of text paired with its embedding and its window position."""
    index: int
    text: str
    embedding: list[float]


class EmbeddingGateway:
    """
    Generates embeddings through a configured provider.

    A gateway without a provider is valid: every call raises ProviderError,
    which the retrieval engine treats as "semantic search unavailable".

    Args:
        provider: Ready provider instance
        factory: Creates the provider on first use, so read-only work never
            loads a model. Tried once; a failure leaves the gateway without
            a provider.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        *,
        factory: Optional[Callable[[], EmbeddingProvider]] = None,
    ):
        self._provider = provider
        self._factory = factory if provider is None else None

    @property
    def provider(self) -> Optional[EmbeddingProvider]:
        return self._provider

    @property
    def available(self) -> bool:
        return self._provider is not None or self._factory is not None

    def _require_provider(self) -> EmbeddingProvider:
        if self._provider is None and self._factory is not None:
            factory, self._factory = self._factory, None
            try:
                self._provider = factory()
            except Exception as e:
                logger.warning("Embedding provider unavailable: %s", e)
                raise ProviderError(f"Cannot create embedding provider: {e}") from e
        if self._provider is None:
            raise ProviderError("No embedding provider configured")
        return self._provider

    def _valid(self, vector) -> bool:
        dimension = getattr(self._provider, "dimension", None)
        return is_valid_vector(vector, dimension)

    async def generate_embedding(self, text: str) -> list[float]:
        """
        Generate an embedding for ``text``.

        Raises:
            ValidationError: If ``text`` is not a non-blank string.
            ProviderError: If the provider fails or returns an unusable vector.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Empty text provided for embedding generation")
        provider = self._require_provider()

        try:
            vector = await provider.embed(prepare_text(text))
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Embedding provider failed: {e}") from e

        if not self._valid(vector):
            raise ProviderError(
                f"Embedding provider returned an invalid vector for text of length {len(text)}"
            )
        return [float(v) for v in vector]

    async def get_batch_embeddings(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Generate embeddings for many texts.

        Returns one entry per input text. If the batch call fails, each
        text is embedded on its own; texts that still fail get an empty
        list, so results stay aligned with the inputs.

        Raises:
            ProviderError: If no provider is configured.
        """
        if not texts:
            return []
        provider = self._require_provider()
        prepared = [prepare_text(t) if isinstance(t, str) else "" for t in texts]

        try:
            vectors = await provider.embed_batch(prepared)
            if vectors is not None and len(vectors) == len(prepared):
                return [list(v) if v is not None else [] for v in vectors]
            logger.warning(
                "Batch embedding returned %s vectors for %d texts, embedding individually",
                len(vectors) if vectors is not None else "no", len(prepared),
            )
        except Exception as e:
            logger.warning("Batch embedding failed, embedding individually: %s", e)

        results = await asyncio.gather(
            *(self.generate_embedding(t) for t in prepared),
            return_exceptions=True,
        )
        vectors = []
        for i, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.debug("Embedding failed for text %d: %s", i, result)
                vectors.append([])
            else:
                vectors.append(result)
        return vectors

    def chunk_text(self, text: str, size: int = DEFAULT_CHUNK_SIZE,
                   overlap: int = DEFAULT_CHUNK_OVERLAP) -> list[str]:
        """Split text into overlapping windows (see text.chunk_text)."""
        return chunk_text(text, size, overlap)

    async def generate_chunk_embeddings(self, chunks: Sequence[str]) -> list[EmbeddedChunk]:
        """
        Embed ``chunks`` in one batch and pair each with its vector.

        Chunks whose vector is missing, empty or malformed are dropped and
        logged; the rest are returned with their original window index.
        """
        if not chunks:
            return []
        vectors = await self.get_batch_embeddings(chunks)

        embedded = []
        for i, chunk in enumerate(chunks):
            vector = vectors[i] if i < len(vectors) else None
            if not chunk or not self._valid(vector):
                logger.warning("Invalid chunk or embedding at index %d, skipping", i)
                continue
            embedded.append(EmbeddedChunk(i, chunk, [float(v) for v in vector]))

        if len(embedded) < len(chunks):
            logger.info("Embedded %d of %d chunks", len(embedded), len(chunks))
        return embedded
