"""Retrieval-augmented question answering over the news index.

The orchestrator runs each request through the same steps:

1. validate the session
2. fetch the recent history (context window)
3. retrieve the top passages from the vector index
4. store the user turn
5. generate an answer, blocking or streamed delta by delta
6. store the assistant turn
7. return the answer with its sources

An empty corpus short-circuits after step 3 with a canned answer.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from newsrag.errors import (
    GenerationError,
    GenerationFailedError,
    NewsRagError,
    RequestFailedError,
    SessionInvalidError,
    StoreUnavailableError,
)
from newsrag.generation.base import Generator
from newsrag.generation.channel import DeltaChannel
from newsrag.index.vector_index import VectorIndex
from newsrag.models import Message, QueryResult, SearchResult, Session, Source
from newsrag.session.store import SessionStore
from newsrag.utils.timeouts import GENERATION_POOL, call_with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CORPUS_ANSWER = (
    "I don't have any news articles to search through yet. "
    "Please make sure the news corpus has been ingested."
)
SOURCE_PREVIEW_CHARS = 200

DeltaSink = Callable[[str], None]


def to_source(result: SearchResult) -> Source:
    return Source(
        text=result.text[:SOURCE_PREVIEW_CHARS] + "...",
        score=round(float(result.score), 4),
        metadata=dict(result.metadata),
    )


class RetrievalOrchestrator:
    """Coordinates sessions, retrieval and generation for one query at a time."""

    def __init__(
        self,
        sessions: SessionStore,
        index: VectorIndex,
        generator: Generator,
        *,
        top_k: int = 5,
        history_window: int = 10,
        generation_timeout: Optional[float] = 60.0,
    ) -> None:
        self.sessions = sessions
        self.index = index
        self.generator = generator
        self.top_k = top_k
        self.history_window = history_window
        self.generation_timeout = generation_timeout

    def _store_call(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        """Run a session-store command, retrying once if the backend drops out."""
        try:
            return fn(*args)
        except StoreUnavailableError as first:
            logger.warning("%s failed (%s), retrying once", operation, first.message)
            try:
                return fn(*args)
            except StoreUnavailableError as exc:
                raise RequestFailedError(
                    f"Session store unavailable during {operation}", {"operation": operation}
                ) from exc

    def _guard(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        """Shape any unexpected collaborator failure into :class:`RequestFailedError`."""
        try:
            return fn(*args)
        except NewsRagError:
            raise
        except Exception as exc:
            logger.exception("%s failed unexpectedly", operation)
            raise RequestFailedError(f"{operation} failed: {exc}", {"operation": operation}) from exc

    # Session management

    def create_session(self) -> Session:
        return self._guard("create_session", self._store_call, "create_session", self.sessions.create_session)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._guard("get_session", self._store_call, "get_session", self.sessions.get_session, session_id)

    def get_history(self, session_id: str, limit: int = 100) -> List[Message]:
        def _history() -> List[Message]:
            self._require_session(session_id)
            return self._store_call("get_history", self.sessions.get_history, session_id, limit)

        return self._guard("get_history", _history)

    def clear_history(self, session_id: str) -> None:
        def _clear() -> None:
            self._require_session(session_id)
            self._store_call("clear_history", self.sessions.clear_history, session_id)

        self._guard("clear_history", _clear)

    def delete_session(self, session_id: str) -> None:
        self._guard("delete_session", self._store_call, "delete_session", self.sessions.delete_session, session_id)

    def indexed_document_count(self) -> int:
        return self.index.size()

    def status(self) -> Dict[str, Any]:
        return {
            "status": "operational",
            "documents_indexed": self.index.size(),
            "store_backend": getattr(self.sessions.store, "backend_name", "unknown"),
        }

    # Query pipeline

    def process_query(self, session_id: str, query: str) -> QueryResult:
        return self._guard("process_query", self._run, session_id, query, None)

    def process_query_stream(self, session_id: str, query: str, on_delta: DeltaSink) -> QueryResult:
        """Like :meth:`process_query`, forwarding each answer delta to ``on_delta`` as it arrives.

        The concatenation of all deltas equals the returned answer.
        """
        return self._guard("process_query_stream", self._run, session_id, query, on_delta)

    def _require_session(self, session_id: str) -> None:
        if not self._store_call("validate_session", self.sessions.validate_session, session_id):
            raise SessionInvalidError(session_id)

    def _add_message(self, session_id: str, role: str, content: str) -> Message:
        return self._store_call(f"add_{role}_message", self.sessions.add_message, session_id, role, content)

    def _run(self, session_id: str, query: str, on_delta: Optional[DeltaSink]) -> QueryResult:
        self._require_session(session_id)
        history = self._store_call("get_history", self.sessions.get_history, session_id, self.history_window)
        passages = self.index.search(query, self.top_k)

        if not passages:
            logger.info("Corpus is empty, answering session %s with the canned response", session_id)
            self._add_message(session_id, "user", query)
            self._add_message(session_id, "assistant", NO_CORPUS_ANSWER)
            if on_delta is not None:
                on_delta(NO_CORPUS_ANSWER)
            return QueryResult(answer=NO_CORPUS_ANSWER, sources=[])

        self._add_message(session_id, "user", query)
        if on_delta is None:
            answer = self._generate(query, passages, history)
        else:
            answer = self._generate_stream(query, passages, history, on_delta)
        self._add_message(session_id, "assistant", answer)

        return QueryResult(answer=answer, sources=[to_source(passage) for passage in passages])

    def _recover(self, query: str, passages: Sequence[SearchResult], exc: Exception) -> str:
        """Fallback answer for a failed generation, or :class:`GenerationError` if there is none."""
        fallback = exc.fallback if isinstance(exc, GenerationFailedError) else None
        if fallback is None and isinstance(exc, TimeoutError):
            fallback = self.generator.fallback_answer(query, passages)
        if fallback is None:
            raise GenerationError(f"Failed to generate an answer: {exc}") from exc
        logger.warning("Generation failed (%s), using fallback answer", exc)
        return fallback

    def _generate(self, query: str, passages: Sequence[SearchResult], history: Sequence[Message]) -> str:
        try:
            return call_with_timeout(
                self.generator.generate, self.generation_timeout, query, passages, history, pool=GENERATION_POOL
            )
        except (GenerationFailedError, TimeoutError) as exc:
            return self._recover(query, passages, exc)

    def _generate_stream(
        self,
        query: str,
        passages: Sequence[SearchResult],
        history: Sequence[Message],
        on_delta: DeltaSink,
    ) -> str:
        pieces: List[str] = []
        channel = DeltaChannel(
            self.generator.stream(query, passages, history), idle_timeout=self.generation_timeout
        )
        try:
            with channel:
                for delta in channel:
                    pieces.append(delta)
                    on_delta(delta)
        except (GenerationFailedError, TimeoutError) as exc:
            fallback = self._recover(query, passages, exc)
            if pieces:
                fallback = "\n\n" + fallback
            pieces.append(fallback)
            on_delta(fallback)
        return "".join(pieces)
