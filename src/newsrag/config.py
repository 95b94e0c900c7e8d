"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from newsrag.embedding.encoder import DEFAULT_MODEL
from newsrag.generation.gemini import DEFAULT_GEMINI_MODEL

DEFAULT_INDEX_PATH = Path("data/vector_store/index.json")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class AppConfig:
    redis_url: str | None = "redis://localhost:6379/0"
    session_ttl: int = 86400
    index_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    google_api_key: str | None = None
    top_k: int = 5
    history_window: int = 10
    chunk_chars: int = 500
    overlap: int = 100
    store_connect_timeout: float = 2.0
    embedding_timeout: float = 30.0
    generation_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.index_path is None:
            self.index_path = DEFAULT_INDEX_PATH

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "AppConfig":
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if env is None else env
        defaults = cls()
        index_path = env.get("VECTOR_STORE_PATH")
        return cls(
            redis_url=env.get("REDIS_URL", defaults.redis_url),
            session_ttl=_env_int(env, "SESSION_TTL", defaults.session_ttl),
            index_path=Path(index_path) if index_path else defaults.index_path,
            model_name=env.get("EMBEDDING_MODEL", defaults.model_name),
            gemini_model=env.get("GEMINI_MODEL", defaults.gemini_model),
            google_api_key=env.get("GOOGLE_API_KEY") or env.get("GEMINI_API_KEY"),
            top_k=_env_int(env, "TOP_K", defaults.top_k),
            history_window=_env_int(env, "HISTORY_WINDOW", defaults.history_window),
            store_connect_timeout=_env_float(
                env, "STORE_CONNECT_TIMEOUT", defaults.store_connect_timeout
            ),
            embedding_timeout=_env_float(env, "EMBEDDING_TIMEOUT", defaults.embedding_timeout),
            generation_timeout=_env_float(env, "GENERATION_TIMEOUT", defaults.generation_timeout),
        )

    def resolve_index_path(self, base_dir: Path | None = None) -> Path:
        if self.index_path is None:
            self.index_path = DEFAULT_INDEX_PATH
        if Path(self.index_path).is_absolute() or base_dir is None:
            return Path(self.index_path)
        return base_dir / self.index_path
