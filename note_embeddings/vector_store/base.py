"""
Record types shared by the vector index and its persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping


@dataclass
class StoredVector:
    """
    One indexed note.

    ``identity`` is the link text of the note and may change on rename;
    ``digest`` is the content hash and never changes for a record.
    """

    identity: str
    path: str
    embedding: List[float] = field(repr=False)
    digest: str

    def to_dict(self) -> Dict[str, Any]:
        # Key names match the blob written by earlier releases
        return {
            "linktext": self.identity,
            "path": self.path,
            "embedding": list(self.embedding),
            "sha": self.digest,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "StoredVector":
        return cls(
            identity=str(raw.get("linktext", raw.get("identity", ""))),
            path=str(raw.get("path", "")),
            embedding=[float(v) for v in raw.get("embedding", [])],
            digest=str(raw.get("sha", raw.get("digest", ""))),
        )


@dataclass
class VectorSearchResult:
    stored_vector: StoredVector
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.stored_vector.identity,
            "path": self.stored_vector.path,
            "similarity": round(self.similarity, 4),
        }
