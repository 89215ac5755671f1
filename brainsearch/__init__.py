"""
brainsearch - hybrid retrieval and relation discovery for a personal
knowledge store.

Notes and a single profile are searched semantically when embeddings are
available and by keyword otherwise; related notes are found by tags,
embeddings, keywords and recency.
"""

from .api import Brain
from .errors import BrainSearchError, ProviderError, StoreError, ValidationError
from .maintenance import BackfillResult
from .related import RelationFinder
from .search import SearchOrchestrator
from .types import Chunk, Education, Experience, Item, ProfileDetails, SearchQuery

__version__ = "0.1.0"

__all__ = [
    "Brain",
    "BackfillResult",
    "BrainSearchError",
    "Chunk",
    "Education",
    "Experience",
    "Item",
    "ProfileDetails",
    "ProviderError",
    "RelationFinder",
    "SearchOrchestrator",
    "SearchQuery",
    "StoreError",
    "ValidationError",
]
