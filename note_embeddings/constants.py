"""
Project-wide constants that are unlikely to change at runtime.
"""

from typing import Final

# Model keys as written to the settings blob
DEFAULT_EMBEDDING_MODEL: Final[str] = "v3_small"  # default for new vector stores
UNLABELLED_EMBEDDING_MODEL: Final[str] = "v2"  # stores created before the version was recorded

DEFAULT_INDEX_CONCURRENCY: Final[int] = 3
MAX_INDEX_CONCURRENCY: Final[int] = 16

DEFAULT_SETTINGS_PATH: Final[str] = "./.note_embeddings/settings.json"
DEFAULT_NOTES_ROOT: Final[str] = "."
DEFAULT_SEARCH_RESULT_LIMIT: Final[int] = 5

NOTE_EXTENSION: Final[str] = ".md"

DEFAULT_ALLOW_PATTERN: Final[str] = ".*"

DEFAULT_COPILOT_PROMPT: Final[str] = (
    "The following is a Zettelkasten note written by the user. The note should have "
    "1. a clear title, 2. a single, clear thought stated briefly, 3. links to relevant ideas.\n"
    "Suggest revisions for this note. Be very brief and concise. Imitate their writing style. "
    "If you show an example of the suggested edits, wrap them in a <note></note> tag. "
    "If you want to suggest splitting into multiple notes, use more than one <note></note> tag."
)
