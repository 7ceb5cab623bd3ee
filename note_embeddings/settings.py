"""
User preferences persisted in the settings blob next to the vectors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import (
    DEFAULT_ALLOW_PATTERN,
    DEFAULT_EMBEDDING_MODEL,
    UNLABELLED_EMBEDDING_MODEL,
)
from .note_group import NoteGroup, default_note_groups
from .vector_store.base import StoredVector


# Blob keys owned by this module; anything else is carried through untouched
_KNOWN_KEYS = (
    "vectors",
    "embeddingsModelVersion",
    "indexedNoteGroup",
    "noteGroups",
    "contentMarker",
    "allowPattern",
)


@dataclass
class IndexSettings:
    embeddings_model_version: str = DEFAULT_EMBEDDING_MODEL
    indexed_note_group: int = 0
    note_groups: List[NoteGroup] = field(default_factory=default_note_groups)
    content_marker: str = ""
    allow_pattern: str = DEFAULT_ALLOW_PATTERN
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def active_group(self) -> Optional[NoteGroup]:
        if 0 <= self.indexed_note_group < len(self.note_groups):
            return self.note_groups[self.indexed_note_group]
        return None

    @classmethod
    def from_blob(
        cls,
        blob: Optional[Mapping[str, Any]],
        default_model: str = DEFAULT_EMBEDDING_MODEL,
    ) -> Tuple["IndexSettings", List[StoredVector]]:
        """
        Split a stored blob into preferences and vector records.

        A blob that has vectors but no model version predates version
        labels; its vectors came from the unlabelled (legacy) model.
        """
        blob = blob or {}
        vectors = [StoredVector.from_dict(raw) for raw in blob.get("vectors", [])]

        model_version = blob.get("embeddingsModelVersion")
        if not model_version:
            model_version = UNLABELLED_EMBEDDING_MODEL if vectors else default_model

        raw_groups = blob.get("noteGroups")
        note_groups = (
            [NoteGroup.from_dict(raw) for raw in raw_groups]
            if raw_groups
            else default_note_groups()
        )

        settings = cls(
            embeddings_model_version=str(model_version),
            indexed_note_group=int(blob.get("indexedNoteGroup", 0)),
            note_groups=note_groups,
            content_marker=str(blob.get("contentMarker", "")),
            allow_pattern=str(blob.get("allowPattern", DEFAULT_ALLOW_PATTERN)),
            extra={k: v for k, v in blob.items() if k not in _KNOWN_KEYS},
        )
        return settings, vectors

    def to_blob(self, vectors: List[StoredVector]) -> Dict[str, Any]:
        blob: Dict[str, Any] = dict(self.extra)
        blob.update(
            {
                "vectors": [v.to_dict() for v in vectors],
                "embeddingsModelVersion": self.embeddings_model_version,
                "indexedNoteGroup": self.indexed_note_group,
                "noteGroups": [g.to_dict() for g in self.note_groups],
                "contentMarker": self.content_marker,
                "allowPattern": self.allow_pattern,
            }
        )
        return blob
