"""
Vector index and settings-blob persistence exports.
"""

from .base import StoredVector, VectorSearchResult
from .index import VectorIndex, cosine_similarity
from .settings_store import InMemorySettingsStore, JsonFileSettingsStore, SettingsStore

__all__ = [
    "StoredVector",
    "VectorSearchResult",
    "VectorIndex",
    "cosine_similarity",
    "SettingsStore",
    "JsonFileSettingsStore",
    "InMemorySettingsStore",
]
