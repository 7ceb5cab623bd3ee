"""
Configuration management for the note_embeddings project.

Values are primarily sourced from environment variables.
"""

from dataclasses import dataclass
import os

from dotenv import load_dotenv

from .constants import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_INDEX_CONCURRENCY,
    DEFAULT_NOTES_ROOT,
    DEFAULT_SEARCH_RESULT_LIMIT,
    DEFAULT_SETTINGS_PATH,
    MAX_INDEX_CONCURRENCY,
)
from .embedding import EmbeddingModel


load_dotenv()


@dataclass
class Config:
    # Embeddings
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
    local_embedding_device: str | None = os.getenv("LOCAL_EMBEDDING_DEVICE", None)

    # Indexing
    index_concurrency: int = int(
        os.getenv("INDEX_CONCURRENCY", str(DEFAULT_INDEX_CONCURRENCY))
    )
    notes_root: str = os.getenv("NOTES_ROOT", DEFAULT_NOTES_ROOT)
    settings_path: str = os.getenv("SETTINGS_PATH", DEFAULT_SETTINGS_PATH)

    # Search
    search_result_limit: int = int(
        os.getenv("SEARCH_RESULT_LIMIT", str(DEFAULT_SEARCH_RESULT_LIMIT))
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def validate(self) -> None:
        if self.embedding_model not in EmbeddingModel.keys():
            raise ValueError(
                f"Unsupported embedding model '{self.embedding_model}'. "
                f"Supported models: {EmbeddingModel.keys()}"
            )

        if not 1 <= self.index_concurrency <= MAX_INDEX_CONCURRENCY:
            raise ValueError(
                f"INDEX_CONCURRENCY must be between 1 and {MAX_INDEX_CONCURRENCY}, "
                f"got {self.index_concurrency}."
            )

        if self.search_result_limit < 1:
            raise ValueError("SEARCH_RESULT_LIMIT must be at least 1.")
