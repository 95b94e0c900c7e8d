"""Wire the store, index, generator and orchestrator from an :class:`AppConfig`."""

from __future__ import annotations

import logging
from pathlib import Path

from newsrag.config import AppConfig
from newsrag.embedding.encoder import FallbackEmbedder
from newsrag.generation.base import ExtractiveGenerator, Generator
from newsrag.generation.gemini import GeminiGenerator
from newsrag.index.vector_index import VectorIndex
from newsrag.rag.pipeline import RetrievalOrchestrator
from newsrag.session.store import SessionStore
from newsrag.store.kv import connect_store

LOGGER = logging.getLogger(__name__)


def build_generator(config: AppConfig) -> Generator:
    """Gemini when an API key is configured, otherwise the extractive generator."""
    if not config.google_api_key:
        LOGGER.warning("No Google API key configured, answering from retrieved passages only")
        return ExtractiveGenerator()
    try:
        return GeminiGenerator(
            config.gemini_model,
            api_key=config.google_api_key,
            timeout=config.generation_timeout,
        )
    except Exception as exc:
        LOGGER.warning("Could not initialise Gemini (%s), answering from retrieved passages only", exc)
        return ExtractiveGenerator()


def build_index(config: AppConfig, base_dir: Path | None = None) -> VectorIndex:
    embedder = FallbackEmbedder.load(config.model_name, timeout=config.embedding_timeout)
    index = VectorIndex(embedder, config.resolve_index_path(base_dir))
    index.reload()
    return index


def build_orchestrator(config: AppConfig, base_dir: Path | None = None) -> RetrievalOrchestrator:
    store = connect_store(config.redis_url, timeout=config.store_connect_timeout)
    sessions = SessionStore(store, ttl_seconds=config.session_ttl)
    return RetrievalOrchestrator(
        sessions,
        build_index(config, base_dir),
        build_generator(config),
        top_k=config.top_k,
        history_window=config.history_window,
        generation_timeout=config.generation_timeout,
    )
