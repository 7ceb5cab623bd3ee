"""
Shared pytest fixtures for the note index tests.

Provides a deterministic stub embedding provider that counts calls, an
in-memory settings store and a temporary notes folder.
"""

import asyncio
from pathlib import Path
from typing import Dict, List, Sequence, Set

import pytest

from note_embeddings.config import Config
from note_embeddings.documents import Document, FolderDocumentStore
from note_embeddings.embedding import EmbeddingModel, EmbeddingProvider
from note_embeddings.errors import ProviderError
from note_embeddings.service import IndexService
from note_embeddings.vector_store.index import VectorIndex
from note_embeddings.vector_store.settings_store import InMemorySettingsStore


def char_sum_vector(text: str) -> List[float]:
    """Deterministic 3-d vector: length, character sum bucket, vowel count."""
    vowels = sum(1 for c in text if c in "aeiou")
    return [float(len(text)), float(sum(ord(c) for c in text) % 101 + 1), float(vowels + 1)]


class StubEmbedder(EmbeddingProvider):
    def __init__(
        self,
        model: EmbeddingModel = EmbeddingModel.V3_SMALL,
        fail_on: Sequence[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.model = model
        self.fail_on: Set[str] = set(fail_on)
        self.delay = delay
        self.calls: List[str] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.extend(texts)
        if self.delay:
            await asyncio.sleep(self.delay)
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise ProviderError(f"rate limited on {text!r}")
        return [char_sum_vector(text) for text in texts]


def write_notes(root: Path, notes: Dict[str, str]) -> None:
    for rel, text in notes.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def doc(identity: str, text: str, path: str = "") -> Document:
    return Document(identity=identity, path=path or f"{identity}.md", text=text)


@pytest.fixture
def embedder():
    return StubEmbedder()


@pytest.fixture
def index():
    return VectorIndex()


@pytest.fixture
def settings_store():
    return InMemorySettingsStore()


@pytest.fixture
def notes_dir(tmp_path):
    root = tmp_path / "vault"
    write_notes(
        root,
        {
            "Permanent/alpha.md": "Alpha note about gardens",
            "Permanent/beta.md": "Beta note about oceans",
            "Permanent/gamma.md": "Gamma note about mountains",
            "Literature/book.md": "Notes on a book",
            "Daily/2024-01-01.md": "Daily log",
        },
    )
    return root


@pytest.fixture
def documents(notes_dir):
    return FolderDocumentStore(str(notes_dir))


@pytest.fixture
def config(tmp_path, notes_dir):
    return Config(
        openai_api_key="",
        embedding_model=EmbeddingModel.V3_SMALL.key,
        index_concurrency=2,
        notes_root=str(notes_dir),
        settings_path=str(tmp_path / "settings.json"),
        search_result_limit=5,
        log_level="INFO",
    )


@pytest.fixture
def service(config, settings_store, documents, embedder):
    def factory(cfg, model):
        embedder.model = model
        return embedder

    return IndexService(
        config=config,
        store=settings_store,
        documents=documents,
        embedder_factory=factory,
    )
