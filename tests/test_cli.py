"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from newsrag.cli import _config, _setup_logging, app
from newsrag.embedding.encoder import HashingEmbedder
from newsrag.index.vector_index import VectorIndex
from newsrag.models import QueryResult, SearchResult, Session, Source

runner = CliRunner()


@pytest.fixture
def index(tmp_path: Path) -> VectorIndex:
    return VectorIndex(HashingEmbedder(384), tmp_path / "index.json")


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("newsrag.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("newsrag.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestConfigOverrides:
    """Tests for _config helper."""

    def test_overrides_take_precedence(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Command line options replace environment values."""
        monkeypatch.setenv("REDIS_URL", "redis://env:6379/0")

        config = _config(tmp_path / "idx.json", "memory://")

        assert config.index_path == tmp_path / "idx.json"
        assert config.redis_url == "memory://"

    def test_keeps_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Missing options leave environment values in place."""
        monkeypatch.setenv("REDIS_URL", "redis://env:6379/0")

        assert _config(None).redis_url == "redis://env:6379/0"


class TestIngestCommand:
    """Tests for the ingest command."""

    def test_ingest_sample_corpus(self, index: VectorIndex) -> None:
        """Indexes the built-in corpus when no file is given."""
        with patch("newsrag.cli.build_index", return_value=index):
            result = runner.invoke(app, ["ingest"])

        assert result.exit_code == 0
        assert "sample corpus" in result.stdout
        assert "Articles: 6" in result.stdout
        assert index.size() > 0

    def test_ingest_file(self, index: VectorIndex, tmp_path: Path) -> None:
        """Indexes articles read from a JSON file."""
        path = tmp_path / "articles.json"
        path.write_text(
            json.dumps([{"title": "Budget", "content": "The council approved the new transport budget today. " * 2}])
        )

        with patch("newsrag.cli.build_index", return_value=index):
            result = runner.invoke(app, ["ingest", str(path)])

        assert result.exit_code == 0
        assert "Articles: 1" in result.stdout

    def test_ingest_missing_file(self, tmp_path: Path) -> None:
        """Fails on a missing article file."""
        result = runner.invoke(app, ["ingest", str(tmp_path / "absent.json")])
        assert result.exit_code != 0

    def test_ingest_no_usable_articles(self, tmp_path: Path) -> None:
        """Warns when the file holds nothing to index."""
        path = tmp_path / "articles.json"
        path.write_text("[]")

        with patch("newsrag.cli.build_index") as mock_build:
            result = runner.invoke(app, ["ingest", str(path)])

        assert result.exit_code == 0
        assert "No articles to ingest" in result.stdout
        mock_build.assert_not_called()


class TestSearchCommand:
    """Tests for the search command."""

    @patch("newsrag.cli.build_index")
    def test_search_no_results(self, mock_build: MagicMock) -> None:
        """Shows a message when nothing matches."""
        mock_build.return_value.search.return_value = []

        result = runner.invoke(app, ["search", "anything"])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    @patch("newsrag.cli.build_index")
    def test_search_with_results(self, mock_build: MagicMock) -> None:
        """Prints a table of matches."""
        mock_build.return_value.search.return_value = [
            SearchResult(text="Rain expected", score=0.8123, metadata={"title": "Storms", "source": "Weather Desk"})
        ]

        result = runner.invoke(app, ["search", "rain", "--top-k", "3"])

        assert result.exit_code == 0
        assert "0.8123" in result.stdout
        assert "Storms" in result.stdout
        mock_build.return_value.search.assert_called_once_with("rain", 3)


class TestChatCommand:
    """Tests for the interactive chat command."""

    @patch("newsrag.cli.build_orchestrator")
    def test_chat_streams_answer(self, mock_build: MagicMock) -> None:
        """Streams deltas and lists sources until an empty line."""
        orchestrator = mock_build.return_value
        orchestrator.create_session.return_value = Session(id="abc", created_at="t")
        orchestrator.indexed_document_count.return_value = 3

        def fake_stream(session_id, query, on_delta):
            on_delta("It will ")
            on_delta("rain.")
            return QueryResult(
                answer="It will rain.",
                sources=[Source(text="Rain...", score=0.9, metadata={"title": "Storms"})],
            )

        orchestrator.process_query_stream.side_effect = fake_stream

        result = runner.invoke(app, ["chat", "--redis-url", "memory://"], input="weather?\n\n")

        assert result.exit_code == 0
        assert "It will rain." in result.stdout
        assert "Storms" in result.stdout
        orchestrator.process_query_stream.assert_called_once()
        assert orchestrator.process_query_stream.call_args.args[:2] == ("abc", "weather?")


class TestClearIndexCommand:
    """Tests for the clear-index command."""

    def test_clear_index(self, index: VectorIndex) -> None:
        """Removes every chunk."""
        index.add_documents([{"text": "a chunk that will be removed"}])

        with patch("newsrag.cli.build_index", return_value=index):
            result = runner.invoke(app, ["clear-index"])

        assert result.exit_code == 0
        assert "Removed 1 chunks" in result.stdout
        assert index.size() == 0


class TestSessionsCommand:
    """Tests for the sessions command."""

    def test_no_sessions(self) -> None:
        """Reports when the store is empty."""
        result = runner.invoke(app, ["sessions", "--redis-url", "memory://"])

        assert result.exit_code == 0
        assert "No active sessions" in result.stdout


class TestServeCommand:
    """Tests for the serve command."""

    @patch("uvicorn.run")
    def test_serve(self, mock_run: MagicMock) -> None:
        """Starts uvicorn with the requested host and port."""
        result = runner.invoke(app, ["serve", "--port", "8080"])

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["port"] == 8080
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
