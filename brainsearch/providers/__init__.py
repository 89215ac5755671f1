"""
Embedding providers for brainsearch.

Providers are configured by name in the store's TOML config and created
through the registry. Concrete providers register themselves when the
``embeddings`` module is imported; the registry does that lazily.
"""

from .base import EmbeddingProvider, ProviderRegistry, get_registry

__all__ = [
    "EmbeddingProvider",
    "ProviderRegistry",
    "get_registry",
]
