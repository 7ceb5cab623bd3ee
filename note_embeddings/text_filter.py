"""
Extraction of the indexable body from a markdown note.
"""

from typing import List

from .hashing import normalize_text


FRONT_MATTER_FENCE = "---"


def strip_front_matter(text: str) -> str:
    lines = text.split("\n")
    if not lines or lines[0].strip() != FRONT_MATTER_FENCE:
        return text
    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_FENCE:
            return "\n".join(lines[i + 1:])
    # Unterminated fence: treat the whole note as body
    return text


def heading_depth(line: str) -> int:
    stripped = line.lstrip()
    depth = len(stripped) - len(stripped.lstrip("#"))
    if depth == 0:
        return 0
    rest = stripped[depth:]
    # "#tag" is an inline tag, not a heading
    if rest and not rest.startswith(" "):
        return 0
    return depth


def filter_out_metadata(text: str, content_marker: str = "") -> str:
    """
    Reduce a note to the text that should be embedded.

    Front matter is always removed. When ``content_marker`` is set (for
    example ``"# Body"``), only the lines under that heading are kept, up to
    the next heading of the same or a shallower depth.
    """
    text = strip_front_matter(normalize_text(text))
    marker = content_marker.strip()
    if not marker:
        return text.strip()

    marker_depth = heading_depth(marker) or 1
    recording = False
    kept: List[str] = []
    for line in text.split("\n"):
        if line.strip() == marker:
            recording = True
            continue
        depth = heading_depth(line)
        if recording and depth and depth <= marker_depth:
            recording = False
        if recording:
            kept.append(line)
    return "\n".join(kept).strip()
