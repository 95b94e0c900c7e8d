"""Gemini-backed answer generation through LangChain."""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional, Sequence

from langchain_google_genai import ChatGoogleGenerativeAI

from newsrag.errors import GenerationFailedError
from newsrag.generation.prompt import build_messages, summarize_context
from newsrag.models import Message, SearchResult

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = ("429", "resourceexhausted", "resource_exhausted", "rate limit", "quota")


def is_rate_limited(exc: BaseException) -> bool:
    """Best-effort detection of upstream throttling across client library versions."""
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if status == 429:
        return True
    text = f"{type(exc).__name__} {exc}".lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def content_text(content: Any) -> str:
    """Flatten LangChain message content, which may be a string or a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "".join(parts)
    return "" if content is None else str(content)


class GeminiGenerator:
    """Answers questions with a Gemini chat model.

    Rate-limit failures carry a context summary as the fallback answer; other
    failures carry none.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_GEMINI_MODEL,
        *,
        api_key: str | None = None,
        temperature: float = 0.3,
        timeout: float | None = 60.0,
        chat_model: Any | None = None,
    ) -> None:
        self.model_name = model_name
        if chat_model is None:
            chat_model = ChatGoogleGenerativeAI(
                model=model_name,
                temperature=temperature,
                google_api_key=api_key,
                timeout=timeout,
            )
        self._model = chat_model
        logger.info(f"Initialized Gemini generator with {model_name}")

    def _failure(self, exc: Exception, passages: Sequence[SearchResult], operation: str) -> GenerationFailedError:
        rate_limited = is_rate_limited(exc)
        logger.error(f"Gemini {operation} failed ({'rate limited' if rate_limited else type(exc).__name__}): {exc}")
        return GenerationFailedError(
            f"Failed to {operation} response from Gemini",
            fallback=summarize_context(passages) if rate_limited else None,
            details={"model": self.model_name, "rate_limited": rate_limited},
        )

    def generate(self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]) -> str:
        messages = build_messages(query, passages, history)
        try:
            response = self._model.invoke(messages)
        except Exception as exc:
            raise self._failure(exc, passages, "generate") from exc
        return content_text(response.content)

    def stream(
        self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]
    ) -> Iterator[str]:
        messages = build_messages(query, passages, history)
        try:
            for chunk in self._model.stream(messages):
                text = content_text(chunk.content)
                if text:
                    yield text
        except Exception as exc:
            raise self._failure(exc, passages, "stream") from exc

    def fallback_answer(self, query: str, passages: Sequence[SearchResult]) -> Optional[str]:
        return summarize_context(passages)
