"""
Exception types raised by the indexing subsystem.
"""

from typing import Optional


class NoteIndexError(Exception):
    """Base class for all note index errors."""


class ExtractionError(NoteIndexError):
    """Raised when a document has no indexable text after filtering."""

    def __init__(self, identity: str, reason: Optional[str] = None) -> None:
        message = f"Error extracting text for [[{identity}]]"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.identity = identity


class ProviderError(NoteIndexError):
    """Raised when the embedding provider fails (auth, rate limit, network)."""


class ConfigurationError(NoteIndexError):
    """Raised when no usable embedding provider can be configured."""


class ConsistencyError(NoteIndexError):
    """
    Raised when the index is asked to mutate a record it does not hold.

    This signals a programming error in the caller, which should have checked
    ``VectorIndex.has`` first.
    """


class VectorNotFoundError(NoteIndexError):
    """Raised when a search is requested for an identity that is not indexed."""
