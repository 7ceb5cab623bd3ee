"""
Note groups: named folders whose notes are eligible for indexing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .constants import DEFAULT_COPILOT_PROMPT
from .documents import DocumentRef


@dataclass
class NoteGroup:
    name: str
    notes_folder: Optional[str] = None
    copilot_prompt: str = DEFAULT_COPILOT_PROMPT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "notesFolder": self.notes_folder,
            "copilotPrompt": self.copilot_prompt,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "NoteGroup":
        return cls(
            name=str(raw.get("name", "")),
            notes_folder=raw.get("notesFolder"),
            copilot_prompt=str(raw.get("copilotPrompt", DEFAULT_COPILOT_PROMPT)),
        )


def default_note_groups() -> List[NoteGroup]:
    return [NoteGroup(name="Permanent Notes"), NoteGroup(name="Literature Notes")]


def files_in_group_folder(
    documents: Sequence[DocumentRef],
    group: NoteGroup,
) -> List[DocumentRef]:
    """Notes whose path starts with the group folder (case-insensitive)."""
    if not group.notes_folder:
        return []
    folder = group.notes_folder.lower()
    return [doc for doc in documents if doc.path.lower().startswith(folder)]


def files_for_allow_pattern(
    documents: Sequence[DocumentRef],
    allow_pattern: str,
) -> List[DocumentRef]:
    """
    Select notes with a comma-separated allow pattern.

    Each comma-separated alternative is split on ``*``; a note matches the
    alternative when its lower-cased path contains every piece. ``"daily*2024"``
    matches ``"Daily/2024-01-01.md"``.
    """
    alternatives = [
        [piece for piece in alt.split("*") if piece]
        for alt in allow_pattern.lower().split(",")
        if alt
    ]
    return [
        doc
        for doc in documents
        if any(all(piece in doc.path.lower() for piece in pieces) for pieces in alternatives)
    ]
