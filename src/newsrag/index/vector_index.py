"""In-process vector index with a flat JSON snapshot."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Sequence, Tuple

import numpy as np

from newsrag.embedding.encoder import Embedder
from newsrag.errors import DimensionMismatchError, IndexCorruptError
from newsrag.index.similarity import cosine_scores, rank
from newsrag.models import DocumentChunk, SearchResult

LOGGER = logging.getLogger(__name__)


class _Rows(NamedTuple):
    texts: Tuple[str, ...]
    embeddings: np.ndarray
    metadata: Tuple[Dict[str, Any], ...]


class VectorIndex:
    """Holds ``(text, embedding, metadata)`` rows and answers top-K cosine queries.

    Search is an exact O(n*d) scan over the embedding matrix. Mutations
    (``add_documents``, ``clear``, ``reload``) are serialized by a lock and
    replace the whole ``_rows`` tuple in one assignment; a search reads
    ``_rows`` once and works on that snapshot.
    """

    def __init__(self, embedder: Embedder, path: Path | None = None) -> None:
        self.embedder = embedder
        self.dimension = int(embedder.dimension)
        self.path = Path(path) if path is not None else None
        self._rows = self._empty_rows()
        self._lock = threading.Lock()

    def _empty_rows(self) -> _Rows:
        return _Rows((), np.zeros((0, self.dimension), dtype="float32"), ())

    def size(self) -> int:
        return len(self._rows.texts)

    def _check_dimension(self, matrix: np.ndarray) -> None:
        actual = int(matrix.shape[1]) if matrix.ndim == 2 else -1
        if actual != self.dimension:
            raise DimensionMismatchError(self.dimension, actual)

    def add_documents(self, chunks: Sequence[DocumentChunk | Dict[str, Any]]) -> int:
        """Embed and append chunks, then persist. Returns the number added.

        The batch is embedded before anything is touched: if embedding fails
        the index is left exactly as it was.
        """
        records = [
            chunk if isinstance(chunk, DocumentChunk) else DocumentChunk(
                text=chunk["text"], metadata=dict(chunk.get("metadata") or {})
            )
            for chunk in chunks
        ]
        if not records:
            return 0
        for record in records:
            if not record.text or not record.text.strip():
                raise ValueError("Cannot index a chunk with empty text")

        vectors = np.asarray(self.embedder.embed([record.text for record in records]), dtype="float32")
        if vectors.ndim != 2 or vectors.shape[0] != len(records):
            raise ValueError("Embeddings and chunks length mismatch")
        self._check_dimension(vectors)

        with self._lock:
            current = self._rows
            self._rows = _Rows(
                current.texts + tuple(record.text for record in records),
                np.vstack([current.embeddings, vectors]),
                current.metadata + tuple(dict(record.metadata) for record in records),
            )
            self._persist_locked()

        LOGGER.info("Added %d documents to vector index (total %d)", len(records), self.size())
        return len(records)

    def search(self, query: str, top_k: int = 5) -> List[SearchResult]:
        rows = self._rows
        if not rows.texts or top_k <= 0:
            return []

        query_vector = np.asarray(self.embedder.embed([query]), dtype="float32")[0]
        if query_vector.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(query_vector.shape[0]))

        scores = cosine_scores(rows.embeddings, query_vector)
        return [
            SearchResult(text=rows.texts[idx], score=float(scores[idx]), metadata=rows.metadata[idx])
            for idx in rank(scores, top_k)
        ]

    def clear(self) -> None:
        with self._lock:
            self._rows = self._empty_rows()
            self._persist_locked()
        LOGGER.info("Vector index cleared")

    def persist(self) -> None:
        with self._lock:
            self._persist_locked()

    def _persist_locked(self) -> None:
        if self.path is None:
            return
        rows = self._rows
        snapshot = {
            "documents": list(rows.texts),
            "embeddings": rows.embeddings.tolist(),
            "metadata": list(rows.metadata),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".index-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, ensure_ascii=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug("Vector index saved to %s", self.path)

    def reload(self) -> int:
        """Load the snapshot from disk, best effort. Returns the number of rows loaded.

        A missing or unreadable snapshot leaves an empty index. A snapshot built
        with a different embedding dimension is a configuration error and is
        raised.
        """
        if self.path is None or not self.path.exists():
            LOGGER.info("No vector index snapshot found, starting empty")
            self._reset()
            return 0

        try:
            texts, embeddings, metadata = self._read_snapshot(self.path)
        except IndexCorruptError as exc:
            LOGGER.warning("%s; starting with an empty index", exc)
            self._reset()
            return 0

        if not texts:
            self._reset()
            return 0
        self._check_dimension(embeddings)
        with self._lock:
            self._rows = _Rows(tuple(texts), embeddings, tuple(metadata))
        LOGGER.info("Vector index loaded with %d documents", len(texts))
        return len(texts)

    def _reset(self) -> None:
        with self._lock:
            self._rows = self._empty_rows()

    @staticmethod
    def _read_snapshot(path: Path) -> tuple[List[str], np.ndarray, List[Dict[str, Any]]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise IndexCorruptError(f"Unreadable index snapshot {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise IndexCorruptError(f"Index snapshot {path} is not an object")
        texts = data.get("documents") or []
        raw_embeddings = data.get("embeddings") or []
        metadata = data.get("metadata") or [{} for _ in texts]
        if not (len(texts) == len(raw_embeddings) == len(metadata)):
            raise IndexCorruptError(
                f"Index snapshot {path} has inconsistent array lengths",
                {"documents": len(texts), "embeddings": len(raw_embeddings), "metadata": len(metadata)},
            )
        try:
            embeddings = np.asarray(raw_embeddings, dtype="float32")
        except (TypeError, ValueError) as exc:
            raise IndexCorruptError(f"Index snapshot {path} has malformed embeddings: {exc}") from exc
        if texts and embeddings.ndim != 2:
            raise IndexCorruptError(f"Index snapshot {path} has ragged embeddings")
        return (
            [str(text) for text in texts],
            embeddings,
            [dict(item) if isinstance(item, dict) else {} for item in metadata],
        )
