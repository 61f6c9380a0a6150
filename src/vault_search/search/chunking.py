"""Paragraph-aware text chunking with character overlap."""

from __future__ import annotations

import re

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _split_long(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Cut *text* into windows of *chunk_size* characters, preferring word boundaries."""
    pieces: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            space = text.rfind(" ", start + chunk_size // 2, end)
            if space != -1:
                end = space
        pieces.append(text[start:end].strip())
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)
    return [p for p in pieces if p]


def chunk_text(text: str, chunk_size: int, overlap: int = 0) -> list[str]:
    """Split *text* into chunks of at most *chunk_size* characters.

    Paragraphs are packed greedily; a paragraph longer than *chunk_size* is
    cut into overlapping windows.  When the last paragraph of a chunk is no
    longer than *overlap*, it is repeated at the start of the next chunk.

    Returns an empty list for blank text and ``[text]`` when it already fits.
    """
    if chunk_size <= 0:
        msg = "chunk_size must be positive"
        raise ValueError(msg)
    if overlap >= chunk_size:
        msg = "overlap must be smaller than chunk_size"
        raise ValueError(msg)

    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= chunk_size:
        return [stripped]

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(stripped) if p.strip()]
    chunks: list[str] = []
    current: list[str] = []
    has_new = False

    def size(parts: list[str]) -> int:
        return sum(len(p) for p in parts) + 2 * max(len(parts) - 1, 0)

    def flush() -> None:
        nonlocal current, has_new
        if has_new:
            chunks.append("\n\n".join(current))
        tail = current[-1] if current else ""
        current = [tail] if has_new and overlap and len(tail) <= overlap else []
        has_new = False

    for para in paragraphs:
        if len(para) > chunk_size:
            flush()
            current = []
            chunks.extend(_split_long(para, chunk_size, overlap))
            continue
        if size([*current, para]) > chunk_size:
            flush()
            if size([*current, para]) > chunk_size:
                current = []
        current.append(para)
        has_new = True

    flush()
    return chunks
