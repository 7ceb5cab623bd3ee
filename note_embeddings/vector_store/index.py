"""
In-memory vector index over notes, persisted through a flush callback.

The index keeps two views of the same records: a map keyed by identity and
a set of content digests. Every mutation finishes synchronously before the
flush callback runs, so concurrent upserts on one event loop never observe a
half-applied change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

import numpy as np

from .base import StoredVector, VectorSearchResult
from ..errors import ConsistencyError, ExtractionError, VectorNotFoundError
from ..hashing import digest as content_digest
from ..logging_utils import get_logger
from ..text_filter import filter_out_metadata

if TYPE_CHECKING:
    from ..documents import Document
    from ..embedding import EmbeddingProvider


logger = get_logger(__name__)

Query = Union[StoredVector, Sequence[float], np.ndarray]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimension mismatch: {va.shape} vs {vb.shape}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        logger.warning("Zero-magnitude vector in similarity computation; using 0.0")
        return 0.0
    return float(np.dot(va, vb) / denom)


class VectorIndex:
    def __init__(
        self,
        records: Iterable[StoredVector] = (),
        content_marker: str = "",
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.content_marker = content_marker
        self._on_change = on_change
        self._vectors: Dict[str, StoredVector] = {}
        self._digests: Set[str] = set()
        for record in records:
            self._put(record)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def has(self, digest: str) -> bool:
        return digest in self._digests

    def get(self, identity: str) -> Optional[StoredVector]:
        return self._vectors.get(identity)

    def count(self) -> int:
        return len(self._vectors)

    def records(self) -> List[StoredVector]:
        return list(self._vectors.values())

    def _find_by_digest(self, digest: str) -> Optional[StoredVector]:
        for record in self._vectors.values():
            if record.digest == digest:
                return record
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _put(self, record: StoredVector) -> None:
        previous = self._vectors.get(record.identity)
        if previous is not None and previous.digest != record.digest:
            self._digests.discard(previous.digest)
        self._vectors[record.identity] = record
        self._digests.add(record.digest)

    def _flush(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def save(self, record: StoredVector) -> None:
        """Insert or overwrite the record for ``record.identity`` and persist."""
        self._put(record)
        logger.debug("Saved vector for [[%s]]", record.identity)
        self._flush()

    def delete_by_digest(self, digest: str) -> None:
        record = self._find_by_digest(digest)
        if record is None:
            raise ConsistencyError(f"No stored vector has digest {digest}")
        del self._vectors[record.identity]
        self._digests.discard(digest)
        logger.debug("Deleted vector for [[%s]]", record.identity)
        self._flush()

    def rename_identity(
        self,
        digest: str,
        new_identity: str,
        path: Optional[str] = None,
    ) -> StoredVector:
        record = self._find_by_digest(digest)
        if record is None:
            raise ConsistencyError(
                f"Cannot rename to [[{new_identity}]]: no stored vector has digest {digest}"
            )
        occupant = self._vectors.get(new_identity)
        if occupant is not None and occupant is not record:
            raise ConsistencyError(
                f"Cannot rename [[{record.identity}]] to [[{new_identity}]]: identity in use"
            )

        old_identity = record.identity
        del self._vectors[old_identity]
        record.identity = new_identity
        if path is not None:
            record.path = path
        self._vectors[new_identity] = record
        logger.info("Renamed vector [[%s]] -> [[%s]]", old_identity, new_identity)
        self._flush()
        return record

    def clear(self) -> None:
        self._vectors.clear()
        self._digests.clear()
        self._flush()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: Query) -> List[VectorSearchResult]:
        """
        Rank every stored vector by cosine similarity to ``query``.

        When the query is a stored record, the record with the same digest is
        left out. The full ranking is returned; callers slice it.
        """
        if isinstance(query, StoredVector):
            query_embedding = query.embedding
            exclude_digest: Optional[str] = query.digest
        else:
            query_embedding = query
            exclude_digest = None

        candidates = [r for r in self._vectors.values() if r.digest != exclude_digest]
        if not candidates:
            return []

        q = np.asarray(query_embedding, dtype=np.float64)
        matrix = np.asarray([r.embedding for r in candidates], dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
            raise ValueError(
                f"Query dimension {q.shape[0]} does not match stored vectors {matrix.shape}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        zero = norms == 0.0
        if zero.any():
            logger.warning(
                "%d zero-magnitude vector(s) in search; scoring them 0.0", int(zero.sum())
            )
        similarities = np.where(zero, 0.0, (matrix @ q) / np.where(zero, 1.0, norms))

        results = [
            VectorSearchResult(stored_vector=record, similarity=float(sim))
            for record, sim in zip(candidates, similarities)
        ]
        # sorted() is stable, so equal scores keep insertion order
        return sorted(results, key=lambda r: r.similarity, reverse=True)

    def find_top_matches(self, identity: str, n: int = 1) -> List[VectorSearchResult]:
        record = self.get(identity)
        if record is None:
            raise VectorNotFoundError(f"No vector stored for [[{identity}]]")
        return self.search(record)[:n]

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    def extract(self, document: "Document") -> str:
        text = filter_out_metadata(document.text, self.content_marker)
        if not text:
            raise ExtractionError(document.identity)
        return text

    def is_indexed(self, document: "Document") -> bool:
        """True when upserting ``document`` would not need an embedding call."""
        try:
            digest = content_digest(self.extract(document))
        except ExtractionError:
            return True
        return self.has(digest)

    async def upsert(self, document: "Document", embedder: "EmbeddingProvider") -> StoredVector:
        """
        Make sure ``document`` is represented by exactly one current record.

        Unchanged notes return their record, renamed notes get their record
        repointed, and only new or edited content reaches the embedder.
        """
        text = self.extract(document)
        digest = content_digest(text)

        existing = self.get(document.identity)
        if existing is not None:
            if existing.digest == digest:
                return existing
            logger.info("Content of [[%s]] changed; re-embedding", document.identity)
            self.delete_by_digest(existing.digest)
        if self.has(digest):
            return self.rename_identity(digest, document.identity, path=document.path)

        embedding = await embedder.embed_one(text)

        # Another upsert may have stored the same content while we awaited
        if self.has(digest) and self.get(document.identity) is None:
            return self.rename_identity(digest, document.identity, path=document.path)

        record = StoredVector(
            identity=document.identity,
            path=document.path,
            embedding=embedding,
            digest=digest,
        )
        self.save(record)
        return record
