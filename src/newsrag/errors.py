"""Exception hierarchy shared by the retrieval and session layers.

Every failure that leaves a component boundary is one of these types, so the
web and CLI layers only need to know this module.
"""

from __future__ import annotations

from typing import Any


class NewsRagError(Exception):
    """Base exception for all newsrag errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SessionInvalidError(NewsRagError):
    """Raised when a session is unknown or has expired."""

    def __init__(self, session_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["session_id"] = session_id
        self.session_id = session_id
        super().__init__("Invalid or expired session", details)


class EmbeddingUnavailableError(NewsRagError):
    """Raised when the embedding backend cannot produce vectors."""


class GenerationFailedError(NewsRagError):
    """Raised by a generator when the upstream model call fails.

    ``fallback`` carries an answer the generator can still offer (for example a
    summary of the retrieved passages); ``None`` means there is nothing to
    recover with.
    """

    def __init__(
        self,
        message: str,
        fallback: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.fallback = fallback
        super().__init__(message, details)


class GenerationError(NewsRagError):
    """Generation failed and no fallback answer was available."""


class StoreUnavailableError(NewsRagError):
    """Raised when the networked key/value store cannot serve a command."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class RequestFailedError(NewsRagError):
    """A single request could not be completed; the process stays healthy."""


class IndexCorruptError(NewsRagError):
    """Raised when a persisted index snapshot cannot be decoded."""


class DimensionMismatchError(NewsRagError):
    """Embedding dimensionality differs from the one the index was built with."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )
