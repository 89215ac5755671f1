"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    Embeddings enable semantic similarity search. The same provider instance
    must be used for both indexing and querying to ensure consistent vectors.
    Calls are asynchronous because most providers talk to a model server
    over HTTP.

    Example implementation:
        class SentenceTransformerEmbedding:
            def __init__(self, model: str = "all-MiniLM-L6-v2"):
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(model)

            @property
            def dimension(self) -> int:
                return self._model.get_sentence_embedding_dimension()

            async def embed(self, text: str) -> list[float]:
                vec = await asyncio.to_thread(self._model.encode, text)
                return vec.tolist()
    """

    @property
    def dimension(self) -> Optional[int]:
        """
        The dimensionality of the embedding vectors.

        ``None`` when the provider only learns it from the first response.
        """
        ...

    async def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Args:
            text: The text to embed

        Returns:
            A list of floats representing the embedding vector
        """
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, one per input text
        """
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and can be instantiated from configuration.
    This allows the store configuration (TOML) to specify providers by name
    rather than requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("openai", OpenAIEmbedding)

        # Later, from config:
        provider = registry.create_embedding("openai", {"model": "text-embedding-3-small"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing only registers classes; heavy libraries load on construction
        from . import embeddings  # noqa: F401

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    def list_embedding_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._embedding_providers)

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        if name not in self._embedding_providers:
            available = ", ".join(sorted(self._embedding_providers)) or "none"
            raise ValueError(
                f"Unknown embedding provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._embedding_providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create embedding provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e


_registry: Optional[ProviderRegistry] = None


def get_registry() -> ProviderRegistry:
    """Get the process-wide provider registry."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry
