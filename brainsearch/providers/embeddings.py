"""
Embedding providers.

- OpenAIEmbedding: OpenAI embeddings API (AsyncOpenAI)
- OllamaEmbedding: local Ollama server over HTTP (httpx)
- SentenceTransformerEmbedding: local sentence-transformers model

Providers raise whatever their client raises; EmbeddingGateway turns
failures into ProviderError.
"""

import asyncio
import logging
import os
from typing import Optional

import httpx

from .base import get_registry

logger = logging.getLogger(__name__)

# Known output sizes, so the gateway can validate before the first call
_OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding provider using OpenAI's embeddings API.

    Requires: BRAINSEARCH_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimension: int | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise RuntimeError("OpenAIEmbedding requires 'openai' library")

        self.model = model
        key = (
            api_key
            or os.environ.get("BRAINSEARCH_OPENAI_API_KEY")
            or os.environ.get("OPENAI_API_KEY")
        )
        if not key:
            raise ValueError(
                "OpenAI API key required. Set BRAINSEARCH_OPENAI_API_KEY or OPENAI_API_KEY"
            )
        self._dimension = dimension or _OPENAI_DIMENSIONS.get(model)
        self._client = AsyncOpenAI(api_key=key, timeout=timeout, max_retries=max_retries)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _request_kwargs(self) -> dict:
        # Only text-embedding-3 models accept a reduced output size
        if self._dimension and self.model.startswith("text-embedding-3"):
            return {"dimensions": self._dimension}
        return {}

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(
            model=self.model, input=text, **self._request_kwargs()
        )
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self._client.embeddings.create(
            model=self.model, input=texts, **self._request_kwargs()
        )
        ordered = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in ordered]


class OllamaEmbedding:
    """
    Embedding provider using a local Ollama server.

    The dimension is learned from the first response.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str | None = None,
        timeout: float = 60.0,
    ):
        self.model = model
        self.base_url = (
            base_url or os.environ.get("OLLAMA_HOST") or "http://localhost:11434"
        ).rstrip("/")
        self._timeout = timeout
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    async def _post(self, payload) -> list[list[float]]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": payload},
            )
            response.raise_for_status()
        embeddings = response.json().get("embeddings") or []
        if embeddings and embeddings[0] and self._dimension is None:
            self._dimension = len(embeddings[0])
            logger.debug("Ollama model %s has dimension %d", self.model, self._dimension)
        return embeddings

    async def embed(self, text: str) -> list[float]:
        embeddings = await self._post(text)
        return list(embeddings[0]) if embeddings else []

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return [list(e) for e in await self._post(texts)]


class SentenceTransformerEmbedding:
    """
    Embedding provider using a local sentence-transformers model.

    Encoding is CPU-bound, so it runs in a worker thread.
    """

    def __init__(self, model: str = "all-MiniLM-L6-v2"):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise RuntimeError(
                "SentenceTransformerEmbedding requires 'sentence-transformers'. "
                "Install with: pip install 'brainsearch[local]'"
            )
        self.model_name = model
        logger.info("Loading embedding model: %s", model)
        self._model = SentenceTransformer(model)

    @property
    def dimension(self) -> Optional[int]:
        return self._model.get_sentence_embedding_dimension()

    async def embed(self, text: str) -> list[float]:
        vector = await asyncio.to_thread(self._model.encode, text)
        return vector.tolist()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self._model.encode, texts)
        return vectors.tolist()


# Register providers
_registry = get_registry()
_registry.register_embedding("openai", OpenAIEmbedding)
_registry.register_embedding("ollama", OllamaEmbedding)
_registry.register_embedding("sentence-transformers", SentenceTransformerEmbedding)
