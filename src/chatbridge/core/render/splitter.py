"""Length-bounded splitting of outbound text.

Cuts prefer paragraph boundaries, then line boundaries, then a hard cut.
The separator at a paragraph or line cut is consumed; nothing else is lost.
"""

from __future__ import annotations

from typing import List, Tuple


def split_points(text: str, max_len: int) -> Tuple[List[str], List[str]]:
    """Split *text* and also return the separator consumed after each chunk.

    ``"".join(c + s for c, s in zip(chunks, separators)) == text`` always
    holds. A cut that consumes the tail of the text produces no empty
    trailing chunk.
    """
    if max_len <= 0:
        raise ValueError(f"max_len must be positive, got {max_len}")
    if len(text) <= max_len:
        return [text], [""]

    chunks: List[str] = []
    separators: List[str] = []
    remaining = text

    while len(remaining) > max_len:
        # last "\n\n" starting at or before max_len
        idx = remaining.rfind("\n\n", 0, max_len + 2)
        if idx > 0:
            chunks.append(remaining[:idx])
            separators.append("\n\n")
            remaining = remaining[idx + 2:]
            continue

        idx = remaining.rfind("\n", 0, max_len + 1)
        if idx > 0:
            chunks.append(remaining[:idx])
            separators.append("\n")
            remaining = remaining[idx + 1:]
            continue

        chunks.append(remaining[:max_len])
        separators.append("")
        remaining = remaining[max_len:]

    if remaining:
        chunks.append(remaining)
        separators.append("")
    return chunks, separators


def split_text(text: str, max_len: int) -> List[str]:
    """Split *text* into chunks of at most *max_len* characters."""
    chunks, _ = split_points(text, max_len)
    return chunks
