"""
Drives upserts over a set of notes through the ConcurrencyManager.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .concurrency import ConcurrencyManager, ProgressListener
from .constants import DEFAULT_INDEX_CONCURRENCY
from .documents import DocumentRef, DocumentStore
from .embedding import EmbeddingProvider
from .errors import ExtractionError
from .logging_utils import get_logger
from .note_group import NoteGroup, files_for_allow_pattern, files_in_group_folder
from .vector_store.base import StoredVector, VectorSearchResult
from .vector_store.index import VectorIndex


logger = get_logger(__name__)


@dataclass
class IndexRunSummary:
    total: int
    completed: int
    failed: int
    stored_vectors: int


def documents_needing_index(
    index: VectorIndex,
    documents: DocumentStore,
    refs: Iterable[DocumentRef],
) -> List[DocumentRef]:
    """
    Preview which of ``refs`` an indexing run would send to the embedder.

    Notes that cannot be read or have no indexable text are skipped, as a
    batch run would skip them.
    """
    needing: List[DocumentRef] = []
    for ref in refs:
        try:
            document = documents.load(ref)
        except ExtractionError as exc:
            logger.warning("Skipping '%s': %s", ref.path, exc)
            continue
        if not index.is_indexed(document):
            needing.append(ref)
    return needing


class IndexingOrchestrator:
    """
    Index notes into a VectorIndex with a fixed embedding provider.

    Each successful upsert persists on its own, so an interrupted run keeps
    every note it finished.
    """

    def __init__(
        self,
        index: VectorIndex,
        documents: DocumentStore,
        embedder: EmbeddingProvider,
        concurrency: int = DEFAULT_INDEX_CONCURRENCY,
    ) -> None:
        self.index = index
        self.documents = documents
        self.embedder = embedder
        self.concurrency = concurrency

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def documents_in_scope(
        self,
        group: Optional[NoteGroup] = None,
        allow_pattern: Optional[str] = None,
    ) -> List[DocumentRef]:
        all_docs = self.documents.list_documents()
        if group is not None:
            return files_in_group_folder(all_docs, group)
        if allow_pattern is not None:
            return files_for_allow_pattern(all_docs, allow_pattern)
        return all_docs

    def documents_needing_index(self, refs: Iterable[DocumentRef]) -> List[DocumentRef]:
        return documents_needing_index(self.index, self.documents, refs)

    # ------------------------------------------------------------------
    # Batch mode
    # ------------------------------------------------------------------

    async def _index_one(self, ref: DocumentRef) -> None:
        document = self.documents.load(ref)
        await self.index.upsert(document, self.embedder)

    def start_indexing(
        self,
        refs: Sequence[DocumentRef],
        listener: Optional[ProgressListener] = None,
    ) -> ConcurrencyManager[DocumentRef]:
        """Queue ``refs`` for indexing and return the manager running them."""
        logger.info(
            "Enqueued %d notes for embedding with %s (concurrency=%d)",
            len(refs),
            self.embedder.model.key,
            self.concurrency,
        )
        return ConcurrencyManager(
            limit=self.concurrency,
            items=refs,
            task=self._index_one,
            listener=listener,
        )

    async def index_documents(
        self,
        refs: Sequence[DocumentRef],
        listener: Optional[ProgressListener] = None,
    ) -> IndexRunSummary:
        manager = self.start_indexing(refs, listener)
        await manager.done()
        summary = IndexRunSummary(
            total=manager.total,
            completed=manager.completed,
            failed=manager.failed,
            stored_vectors=self.index.count(),
        )
        if summary.failed:
            logger.warning(
                "Indexing finished with %d of %d notes failed", summary.failed, summary.total
            )
        else:
            logger.info("Indexing finished: %d notes processed", summary.completed)
        return summary

    async def index_note_group(
        self,
        group: NoteGroup,
        listener: Optional[ProgressListener] = None,
    ) -> IndexRunSummary:
        return await self.index_documents(self.documents_in_scope(group=group), listener)

    # ------------------------------------------------------------------
    # Single-document mode (errors propagate)
    # ------------------------------------------------------------------

    async def upsert_document(self, ref: DocumentRef) -> StoredVector:
        return await self.index.upsert(self.documents.load(ref), self.embedder)

    async def search_similar(self, ref: DocumentRef) -> List[VectorSearchResult]:
        record = await self.upsert_document(ref)
        return self.index.search(record)
