"""
Embedding providers: OpenAI embeddings API, local Sentence Transformers and an
offline feature-hashing model.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np
import openai
from sentence_transformers import SentenceTransformer

from .errors import ConfigurationError, ProviderError
from .logging_utils import get_logger

if TYPE_CHECKING:
    from .config import Config


logger = get_logger(__name__)


class ProviderKind(Enum):
    OPENAI = "openai"
    LOCAL = "local"
    HASH = "hash"


class EmbeddingModel(Enum):
    """
    Supported embedding models.

    Each member carries the settings key it is stored under, the provider
    model name, the dimensions to request (``None`` leaves the provider
    default) and which provider serves it.
    """

    V2 = ("v2", "text-embedding-ada-002", None, ProviderKind.OPENAI)
    V3_SMALL = ("v3_small", "text-embedding-3-small", 256, ProviderKind.OPENAI)
    MINILM = ("minilm", "sentence-transformers/all-MiniLM-L6-v2", 384, ProviderKind.LOCAL)
    HASH = ("hash", "sha256-feature-hash", 64, ProviderKind.HASH)

    def __init__(
        self,
        key: str,
        model_name: str,
        dimensions: Optional[int],
        provider: ProviderKind,
    ) -> None:
        self.key = key
        self.model_name = model_name
        self.dimensions = dimensions
        self.provider = provider

    @classmethod
    def keys(cls) -> List[str]:
        return [member.key for member in cls]

    @classmethod
    def from_key(cls, key: str) -> "EmbeddingModel":
        for member in cls:
            if member.key == key:
                return member
        raise ConfigurationError(
            f"Unknown embedding model '{key}'. Supported models: {cls.keys()}"
        )


class EmbeddingProvider(ABC):
    """Turns texts into fixed-length vectors."""

    model: EmbeddingModel

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Return one vector per input text, in input order.

        Raises ProviderError on any provider-side failure.
        """

    async def embed_one(self, text: str) -> List[float]:
        vectors = await self.embed([text])
        if not vectors:
            raise ProviderError("Embedding provider returned no vectors")
        return vectors[0]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, api_key: str, model: EmbeddingModel) -> None:
        if model.provider is not ProviderKind.OPENAI:
            raise ConfigurationError(f"Model '{model.key}' is not served by OpenAI")
        self.model = model
        self._client = openai.AsyncOpenAI(api_key=api_key)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        kwargs = {}
        if self.model.dimensions is not None:
            kwargs["dimensions"] = self.model.dimensions
        try:
            response = await self._client.embeddings.create(
                model=self.model.model_name,
                input=list(texts),
                **kwargs,
            )
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI embedding request failed: {exc}") from exc

        logger.debug(
            "Received %d embeddings from %s", len(response.data), self.model.model_name
        )
        return [list(entry.embedding) for entry in response.data]


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Local model wrapper with lazy loading.

    Encoding is CPU/GPU bound, so it runs in a worker thread to keep the
    event loop free for other in-flight documents.
    """

    def __init__(self, model: EmbeddingModel, device: Optional[str] = None) -> None:
        if model.provider is not ProviderKind.LOCAL:
            raise ConfigurationError(f"Model '{model.key}' is not a local model")
        self.model = model
        self.device = device
        self._model: SentenceTransformer | None = None

    @property
    def transformer(self) -> SentenceTransformer:
        if self._model is None:
            logger.info("Loading embedding model '%s'...", self.model.model_name)
            self._model = SentenceTransformer(self.model.model_name, device=self.device)
            logger.info("Model loaded.")
        return self._model

    def _encode(self, texts: List[str]) -> np.ndarray:
        return self.transformer.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
        )

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        texts_list = list(texts)
        try:
            embeddings = await asyncio.to_thread(self._encode, texts_list)
        except (OSError, RuntimeError, ValueError) as exc:
            raise ProviderError(
                f"Local embedding with '{self.model.model_name}' failed: {exc}"
            ) from exc
        return [[float(v) for v in row] for row in embeddings]


_TOKEN_RE = re.compile(r"\w+")


class HashEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embeddings built by feature hashing.

    Each lowercase word token is hashed with SHA-256 into one of
    ``dimensions`` buckets with a sign taken from the same digest, and the
    result is L2-normalised. Texts sharing words score as similar, so the
    index is usable without network access or model downloads.
    """

    def __init__(self, model: EmbeddingModel = EmbeddingModel.HASH) -> None:
        if model.provider is not ProviderKind.HASH:
            raise ConfigurationError(f"Model '{model.key}' is not a hash model")
        self.model = model
        self.dimensions: int = model.dimensions or 64

    def vector_for(self, text: str) -> List[float]:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            hashed = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(hashed[:4], "big") % self.dimensions
            vector[bucket] += 1.0 if hashed[4] & 1 else -1.0

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return [float(v) for v in vector]

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.vector_for(text) for text in texts]


def build_embedder(config: "Config", model: EmbeddingModel) -> EmbeddingProvider:
    """
    Construct the provider for ``model`` from the current configuration.

    A configuration change means building a new provider; instances are
    never reconfigured in place.
    """
    if model.provider is ProviderKind.OPENAI:
        if not config.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY must be set to use the "
                f"'{model.key}' embedding model."
            )
        return OpenAIEmbeddingProvider(api_key=config.openai_api_key, model=model)

    if model.provider is ProviderKind.HASH:
        return HashEmbeddingProvider(model=model)

    return SentenceTransformerProvider(model=model, device=config.local_embedding_device)
