"""
Content addressing for note text.
"""

import base64
import hashlib


def normalize_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def digest(text: str) -> str:
    """
    Return the base64-encoded SHA-256 of the normalised text.

    Two notes with the same normalised body share a digest, which is what the
    index uses for deduplication and for spotting edits.
    """
    raw = hashlib.sha256(normalize_text(text).encode("utf-8")).digest()
    return base64.b64encode(raw).decode("ascii")
