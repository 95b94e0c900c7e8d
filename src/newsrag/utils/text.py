"""Text helpers: HTML cleanup and sentence-aware chunking."""

from __future__ import annotations

import re
from typing import List

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E\n]")

MIN_CHUNK_CHARS = 20


def clean_text(text: str) -> str:
    """Strip HTML tags, collapse whitespace and drop non-printable characters."""
    text = _TAG_RE.sub("", text or "")
    text = _SPACE_RE.sub(" ", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    return text.strip()


def chunk_text(text: str, *, max_chars: int = 500, overlap: int = 100) -> List[str]:
    """Split text into overlapping chunks, preferring to end on a sentence.

    A chunk is cut at the last period past its midpoint when there is one.
    Chunks of ``MIN_CHUNK_CHARS`` characters or fewer are dropped.
    """
    if not text:
        return []
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    overlap = max(0, min(overlap, max_chars - 1))

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = start + max_chars
        if end < len(text):
            last_period = text.rfind(".", start, end + 1)
            if last_period > start + max_chars // 2:
                end = last_period + 1
        chunks.append(text[start:end].strip())
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)
    return [chunk for chunk in chunks if len(chunk) > MIN_CHUNK_CHARS]
