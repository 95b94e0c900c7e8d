"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path

from newsrag.config import DEFAULT_INDEX_PATH, AppConfig


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_default_config(self) -> None:
        """Should create config with default values."""
        config = AppConfig()

        assert config.index_path == Path("data/vector_store/index.json")
        assert config.model_name == "sentence-transformers/all-MiniLM-L6-v2"
        assert config.session_ttl == 86400
        assert config.top_k == 5
        assert config.history_window == 10
        assert config.chunk_chars == 500
        assert config.overlap == 100

    def test_custom_config(self) -> None:
        """Should create config with custom values."""
        config = AppConfig(index_path=Path("/custom/index.json"), top_k=3, redis_url="memory://")

        assert config.index_path == Path("/custom/index.json")
        assert config.top_k == 3
        assert config.redis_url == "memory://"

    def test_resolve_index_path_absolute(self) -> None:
        """Should return absolute path as-is."""
        config = AppConfig(index_path=Path("/absolute/index.json"))

        assert config.resolve_index_path(Path("/base")) == Path("/absolute/index.json")

    def test_resolve_index_path_relative_no_base(self) -> None:
        """Should return relative path when no base_dir provided."""
        config = AppConfig(index_path=Path("relative/index.json"))

        assert config.resolve_index_path(base_dir=None) == Path("relative/index.json")

    def test_resolve_index_path_relative_with_base(self, tmp_path: Path) -> None:
        """Should join relative path onto base_dir."""
        config = AppConfig(index_path=Path("store/index.json"))

        assert config.resolve_index_path(tmp_path) == tmp_path / "store" / "index.json"

    def test_resolve_restores_default_when_unset(self) -> None:
        """Should fall back to the default index path when cleared."""
        config = AppConfig()
        config.index_path = None

        assert config.resolve_index_path() == DEFAULT_INDEX_PATH


class TestFromEnv:
    """Test environment overrides."""

    def test_empty_env_uses_defaults(self) -> None:
        """Should match defaults when nothing is set."""
        assert AppConfig.from_env({}) == AppConfig()

    def test_reads_variables(self) -> None:
        """Should read every supported variable."""
        config = AppConfig.from_env(
            {
                "REDIS_URL": "redis://cache:6379/1",
                "SESSION_TTL": "60",
                "VECTOR_STORE_PATH": "/tmp/idx.json",
                "GOOGLE_API_KEY": "key",
                "TOP_K": "3",
                "HISTORY_WINDOW": "4",
                "GENERATION_TIMEOUT": "12.5",
            }
        )

        assert config.redis_url == "redis://cache:6379/1"
        assert config.session_ttl == 60
        assert config.index_path == Path("/tmp/idx.json")
        assert config.google_api_key == "key"
        assert config.top_k == 3
        assert config.history_window == 4
        assert config.generation_timeout == 12.5

    def test_gemini_api_key_alias(self) -> None:
        """Should accept GEMINI_API_KEY when GOOGLE_API_KEY is absent."""
        assert AppConfig.from_env({"GEMINI_API_KEY": "alt"}).google_api_key == "alt"

    def test_invalid_numbers_fall_back(self) -> None:
        """Should ignore unparseable numeric values."""
        config = AppConfig.from_env({"SESSION_TTL": "soon", "STORE_CONNECT_TIMEOUT": "fast"})

        assert config.session_ttl == 86400
        assert config.store_connect_timeout == 2.0
