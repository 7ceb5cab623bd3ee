"""
Composition root: settings, vector index, embedding provider and orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from .concurrency import ProgressListener
from .config import Config
from .documents import DocumentRef, DocumentStore
from .embedding import EmbeddingModel, EmbeddingProvider, build_embedder
from .errors import ConfigurationError
from .logging_utils import get_logger
from .note_group import NoteGroup, files_for_allow_pattern, files_in_group_folder
from .orchestrator import IndexingOrchestrator, IndexRunSummary, documents_needing_index
from .settings import IndexSettings
from .vector_store.base import StoredVector, VectorSearchResult
from .vector_store.index import VectorIndex
from .vector_store.settings_store import SettingsStore


logger = get_logger(__name__)

EmbedderFactory = Callable[[Config, EmbeddingModel], EmbeddingProvider]


@dataclass
class IndexStatus:
    stored_vectors: int
    documents_in_scope: int
    documents_needing_index: int
    model: str
    active_group: Optional[str]


class IndexService:
    """
    Owns the loaded settings and the vector index built from them.

    The embedding provider is built on first use from the current
    configuration and rebuilt whenever the model changes.
    """

    def __init__(
        self,
        config: Config,
        store: SettingsStore,
        documents: DocumentStore,
        embedder_factory: EmbedderFactory = build_embedder,
    ) -> None:
        self.config = config
        self.store = store
        self.documents = documents
        self._embedder_factory = embedder_factory
        self._embedder: Optional[EmbeddingProvider] = None

        self.settings, records = IndexSettings.from_blob(
            store.load(), default_model=config.embedding_model
        )
        self.index = self._new_index(records)
        logger.info(
            "Loaded %d vectors (model=%s)",
            self.index.count(),
            self.settings.embeddings_model_version,
        )

    def _new_index(self, records: List[StoredVector]) -> VectorIndex:
        return VectorIndex(
            records,
            content_marker=self.settings.content_marker,
            on_change=self.save_settings,
        )

    def save_settings(self) -> None:
        self.store.save(self.settings.to_blob(self.index.records()))

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    @property
    def model(self) -> EmbeddingModel:
        return EmbeddingModel.from_key(self.settings.embeddings_model_version)

    def embedder(self) -> EmbeddingProvider:
        """Return the provider for the active model, raising ConfigurationError."""
        model = self.model
        if self._embedder is None or self._embedder.model is not model:
            self._embedder = self._embedder_factory(self.config, model)
        return self._embedder

    def orchestrator(self) -> IndexingOrchestrator:
        return IndexingOrchestrator(
            index=self.index,
            documents=self.documents,
            embedder=self.embedder(),
            concurrency=self.config.index_concurrency,
        )

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    @property
    def active_group(self) -> Optional[NoteGroup]:
        return self.settings.active_group

    def scope_documents(self) -> List[DocumentRef]:
        """Notes in the active group, or by allow pattern when it has no folder."""
        all_docs = self.documents.list_documents()
        group = self.active_group
        if group is not None and group.notes_folder:
            return files_in_group_folder(all_docs, group)

        return files_for_allow_pattern(all_docs, self.settings.allow_pattern)

    def set_group_folder(self, group_index: int, folder: Optional[str]) -> None:
        self._check_group_index(group_index)
        self.settings.note_groups[group_index].notes_folder = folder or None
        self.save_settings()

    def _check_group_index(self, group_index: int) -> None:
        if not 0 <= group_index < len(self.settings.note_groups):
            raise ConfigurationError(
                f"No note group {group_index}; "
                f"{len(self.settings.note_groups)} groups are configured"
            )

    def set_content_marker(self, marker: str) -> None:
        self.settings.content_marker = marker
        self.index.content_marker = marker
        self.save_settings()

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def clear_vectors(self) -> int:
        """Drop every stored vector; returns how many were dropped."""
        dropped = self.index.count()
        self.index = self._new_index([])
        self.save_settings()
        logger.info("Cleared %d vectors", dropped)
        return dropped

    async def reindex(self, listener: Optional[ProgressListener] = None) -> IndexRunSummary:
        orchestrator = self.orchestrator()
        return await orchestrator.index_documents(self.scope_documents(), listener)

    async def index_documents(
        self,
        refs: List[DocumentRef],
        listener: Optional[ProgressListener] = None,
    ) -> IndexRunSummary:
        return await self.orchestrator().index_documents(refs, listener)

    async def set_active_group(
        self,
        group_index: int,
        listener: Optional[ProgressListener] = None,
    ) -> IndexRunSummary:
        """
        Make ``group_index`` the indexed group.

        Only one group is indexed at a time, so switching groups drops the
        existing vectors before indexing the new scope.
        """
        self._check_group_index(group_index)
        embedder = self.embedder()  # raises before stored vectors are touched
        if group_index != self.settings.indexed_note_group:
            self.settings.indexed_note_group = group_index
            self.clear_vectors()
        logger.info(
            "Indexing note group '%s' with %s",
            self.settings.note_groups[group_index].name,
            embedder.model.key,
        )
        return await self.reindex(listener)

    async def change_embedding_model(
        self,
        model_key: str,
        listener: Optional[ProgressListener] = None,
    ) -> IndexRunSummary:
        """Switch models, discard vectors from the old model and re-index."""
        model = EmbeddingModel.from_key(model_key)
        previous = self.settings.embeddings_model_version
        self.settings.embeddings_model_version = model.key
        try:
            self.embedder()
        except ConfigurationError:
            self.settings.embeddings_model_version = previous
            raise
        self.clear_vectors()
        logger.info("Embedding model changed %s -> %s", previous, model.key)
        return await self.reindex(listener)

    # ------------------------------------------------------------------
    # Single note operations
    # ------------------------------------------------------------------

    async def index_note(self, ref: DocumentRef) -> StoredVector:
        return await self.orchestrator().upsert_document(ref)

    async def search_similar(
        self,
        ref: DocumentRef,
        limit: Optional[int] = None,
    ) -> List[VectorSearchResult]:
        results = await self.orchestrator().search_similar(ref)
        return results[:limit] if limit is not None else results

    def status(self) -> IndexStatus:
        scope = self.scope_documents()
        needing = documents_needing_index(self.index, self.documents, scope)
        group = self.active_group
        return IndexStatus(
            stored_vectors=self.index.count(),
            documents_in_scope=len(scope),
            documents_needing_index=len(needing),
            model=self.settings.embeddings_model_version,
            active_group=group.name if group is not None else None,
        )
