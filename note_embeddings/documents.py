"""
Host document store: where notes are listed and read from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional

from .constants import NOTE_EXTENSION
from .errors import ExtractionError
from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class DocumentRef:
    """A note location, as a forward-slash path relative to the notes root."""

    path: str


@dataclass
class Document:
    identity: str
    path: str
    text: str


class DocumentStore(ABC):
    @abstractmethod
    def list_documents(self, scope: Optional[str] = None) -> List[DocumentRef]:
        """List notes, optionally only those whose path starts with ``scope``."""

    @abstractmethod
    def read_text(self, ref: DocumentRef) -> str:
        """Return the raw text of a note."""

    @abstractmethod
    def identity_for(self, ref: DocumentRef) -> str:
        """Return the stable link text used to key the note in the index."""

    def load(self, ref: DocumentRef) -> Document:
        """Read a note; unreadable or undecodable notes raise ExtractionError."""
        identity = self.identity_for(ref)
        try:
            text = self.read_text(ref)
        except (OSError, UnicodeDecodeError) as exc:
            raise ExtractionError(identity, str(exc)) from exc
        return Document(identity=identity, path=ref.path, text=text)


class FolderDocumentStore(DocumentStore):
    """Markdown notes in a directory tree."""

    def __init__(self, root: str, extension: str = NOTE_EXTENSION) -> None:
        self.root = Path(root)
        self.extension = extension

    def list_documents(self, scope: Optional[str] = None) -> List[DocumentRef]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Notes root '{self.root}' is not a directory")

        refs: List[DocumentRef] = []
        prefix = scope.lower() if scope else None
        for file_path in sorted(self.root.rglob(f"*{self.extension}")):
            if not file_path.is_file():
                continue
            rel = file_path.relative_to(self.root).as_posix()
            if any(part.startswith(".") for part in PurePosixPath(rel).parts):
                continue
            if prefix is not None and not rel.lower().startswith(prefix):
                continue
            refs.append(DocumentRef(path=rel))
        logger.debug("Listed %d notes under '%s' (scope=%s)", len(refs), self.root, scope)
        return refs

    def read_text(self, ref: DocumentRef) -> str:
        return (self.root / ref.path).read_text(encoding="utf-8")

    def identity_for(self, ref: DocumentRef) -> str:
        path = PurePosixPath(ref.path)
        if path.suffix == self.extension:
            path = path.with_suffix("")
        return path.as_posix()

    def resolve(self, path: str) -> DocumentRef:
        """
        Turn a user-supplied path (absolute or relative) into a DocumentRef.

        Paths that point outside the notes root raise FileNotFoundError.
        """
        root = self.root.resolve()
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = root / candidate
        candidate = candidate.resolve()
        if not candidate.is_relative_to(root) or not candidate.is_file():
            raise FileNotFoundError(f"Note '{path}' not found under '{self.root}'")
        return DocumentRef(path=candidate.relative_to(root).as_posix())
