"""Embedding model management."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol, Sequence, Union

import numpy as np
from sentence_transformers import SentenceTransformer

from newsrag.errors import EmbeddingUnavailableError
from newsrag.utils.timeouts import EMBEDDING_POOL, call_with_timeout

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSION = 384

logger = logging.getLogger(__name__)

TextInput = Union[str, Sequence[str], Iterable[str]]

_TOKEN_RE = re.compile(r"\w+")


def _as_batch(texts: TextInput) -> list[str]:
    if isinstance(texts, str):
        return [texts]
    return list(texts)


class Embedder(Protocol):
    dimension: int

    def embed(self, texts: TextInput) -> np.ndarray: ...


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for query and document embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()

        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend != "torch":
                logger.warning(
                    f"Failed to load model with backend '{self.config.backend}': {e}. "
                    "Falling back to PyTorch."
                )
                self.config.backend = "torch"
                self._model = self._load_model()
            else:
                raise

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            f"Loaded embedding model {self.config.model_name} "
            f"(backend: {self.config.backend}, dimension: {self.dimension})"
        )

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def embed(self, texts: TextInput) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = _as_batch(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)


def _stable_hash(token: str) -> int:
    # Python's hash() is salted per process; the fallback has to be reproducible.
    return int.from_bytes(hashlib.md5(token.encode("utf-8")).digest()[:8], "little")


class HashingEmbedder:
    """Deterministic bag-of-tokens embedding used when no model is reachable.

    Each token adds weight to a hashed bucket, plus a smaller positional
    component, and the vector is L2-normalized. Texts that share words land
    near each other, which keeps retrieval usable in degraded mode.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def _embed_one(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype="float32")
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return vector
        weight = 1.0 / np.sqrt(len(tokens))
        for position, token in enumerate(tokens):
            bucket = _stable_hash(token)
            vector[bucket % self.dimension] += weight
            vector[(bucket + position) % self.dimension] += 0.1 * weight
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector

    def embed(self, texts: TextInput) -> np.ndarray:
        batch = _as_batch(texts)
        if not batch:
            return np.zeros((0, self.dimension), dtype="float32")
        return np.vstack([self._embed_one(text) for text in batch])


class FallbackEmbedder:
    """Embedding component used by the index.

    Calls the primary model with a timeout and degrades to
    :class:`HashingEmbedder` of the same dimension when the model is missing,
    raises, times out or returns the wrong shape.
    """

    def __init__(self, primary: Embedder | None = None, *, timeout: float | None = 30.0) -> None:
        self.primary = primary
        self.timeout = timeout
        dimension = primary.dimension if primary is not None else DEFAULT_DIMENSION
        self.fallback = HashingEmbedder(dimension)
        self.dimension = dimension

    @classmethod
    def load(cls, model_name: str = DEFAULT_MODEL, *, timeout: float | None = 30.0) -> "FallbackEmbedder":
        """Load the sentence-transformer model, or run on hashing embeddings alone."""
        try:
            primary: Embedder | None = EmbeddingModel(EmbeddingConfig(model_name=model_name))
        except Exception as exc:
            logger.warning("Embedding model %s unavailable (%s), using local hashing embeddings", model_name, exc)
            primary = None
        return cls(primary, timeout=timeout)

    def _embed_primary(self, batch: list[str]) -> np.ndarray:
        assert self.primary is not None
        try:
            vectors = call_with_timeout(self.primary.embed, self.timeout, batch, pool=EMBEDDING_POOL)
        except Exception as exc:
            raise EmbeddingUnavailableError(f"Embedding backend failed: {exc}") from exc
        vectors = np.asarray(vectors, dtype="float32")
        if vectors.shape != (len(batch), self.dimension):
            raise EmbeddingUnavailableError(
                "Embedding backend returned unexpected shape",
                {"shape": tuple(vectors.shape), "expected": (len(batch), self.dimension)},
            )
        return vectors

    def embed(self, texts: TextInput) -> np.ndarray:
        batch = _as_batch(texts)
        if not batch:
            return np.zeros((0, self.dimension), dtype="float32")
        if self.primary is not None:
            try:
                return self._embed_primary(batch)
            except EmbeddingUnavailableError as exc:
                logger.warning("%s; falling back to local hashing embeddings", exc)
        return self.fallback.embed(batch)
