"""Generation component interface and the offline extractive generator."""

from __future__ import annotations

import re
from typing import Iterator, Optional, Protocol, Sequence

from newsrag.generation.prompt import summarize_context
from newsrag.models import Message, SearchResult

_SENTENCE_RE = re.compile(r"\S.*?(?:[.!?](?=\s)|$)", re.DOTALL)


class Generator(Protocol):
    """Turns a question, retrieved passages and history into an answer.

    ``stream`` yields incremental text deltas whose concatenation is the full
    answer. Implementations raise :class:`~newsrag.errors.GenerationFailedError`
    on upstream failure, attaching a fallback answer when they have one.
    """

    def generate(self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]) -> str: ...

    def stream(
        self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]
    ) -> Iterator[str]: ...

    def fallback_answer(self, query: str, passages: Sequence[SearchResult]) -> Optional[str]: ...


class ExtractiveGenerator:
    """Answers from the retrieved passages without calling a model.

    Used when no API key is configured, so the service still answers in
    development and in tests.
    """

    def __init__(self, max_sources: int = 3) -> None:
        self.max_sources = max_sources

    def generate(self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]) -> str:
        if not passages:
            return summarize_context(passages)
        excerpts = "\n\n".join(
            f"According to Source {idx}: {passage.text}"
            for idx, passage in enumerate(passages[: self.max_sources], start=1)
        )
        return f"Here is what the news coverage says:\n\n{excerpts}"

    def stream(
        self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]
    ) -> Iterator[str]:
        answer = self.generate(query, passages, history)
        position = 0
        for match in _SENTENCE_RE.finditer(answer):
            yield answer[position : match.end()]
            position = match.end()
        if position < len(answer):
            yield answer[position:]

    def fallback_answer(self, query: str, passages: Sequence[SearchResult]) -> Optional[str]:
        return summarize_context(passages)
