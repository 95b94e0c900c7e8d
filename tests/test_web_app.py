"""Tests for the FastAPI web application."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from newsrag.embedding.encoder import HashingEmbedder
from newsrag.errors import GenerationError, RequestFailedError
from newsrag.generation.base import ExtractiveGenerator
from newsrag.index.vector_index import VectorIndex
from newsrag.ingestion.articles import ingest, sample_articles
from newsrag.rag.pipeline import NO_CORPUS_ANSWER, RetrievalOrchestrator
from newsrag.session.store import SessionStore
from newsrag.store.kv import InMemoryKVStore
from newsrag.web.app import app, get_orchestrator


@pytest.fixture
def index(tmp_path: Path) -> VectorIndex:
    return VectorIndex(HashingEmbedder(384), tmp_path / "index.json")


@pytest.fixture
def orchestrator(index: VectorIndex) -> RetrievalOrchestrator:
    ingest(index, sample_articles())
    return RetrievalOrchestrator(SessionStore(InMemoryKVStore()), index, ExtractiveGenerator())


@pytest.fixture
def client(orchestrator: RetrievalOrchestrator) -> Iterator[TestClient]:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _session_id(client: TestClient) -> str:
    response = client.post("/api/session")
    assert response.status_code == 201
    return response.json()["data"]["id"]


def _events(body: str) -> list[dict[str, Any]]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


class TestHealth:
    """Tests for GET /health."""

    def test_health(self, client: TestClient) -> None:
        """Reports healthy with a timestamp."""
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert "timestamp" in data


class TestSessionEndpoints:
    """Tests for the /api/session routes."""

    def test_create_session(self, client: TestClient) -> None:
        """Creates a session with zero messages."""
        response = client.post("/api/session")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["message_count"] == 0

    def test_get_session(self, client: TestClient) -> None:
        """Returns a stored session."""
        session_id = _session_id(client)

        response = client.get(f"/api/session/{session_id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == session_id

    def test_get_unknown_session(self, client: TestClient) -> None:
        """Returns 404 for an unknown session."""
        assert client.get("/api/session/unknown").status_code == 404

    def test_history_after_chat(self, client: TestClient) -> None:
        """Lists both turns oldest first."""
        session_id = _session_id(client)
        client.post("/api/chat", json={"session_id": session_id, "message": "hello"})

        data = client.get(f"/api/session/{session_id}/history").json()["data"]

        assert data["count"] == 2
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]

    def test_history_unknown_session(self, client: TestClient) -> None:
        """Returns 404 for an unknown session."""
        assert client.get("/api/session/unknown/history").status_code == 404

    def test_clear_history(self, client: TestClient) -> None:
        """Empties the history and keeps the session."""
        session_id = _session_id(client)
        client.post("/api/chat", json={"session_id": session_id, "message": "hello"})

        assert client.delete(f"/api/session/{session_id}/history").status_code == 200

        assert client.get(f"/api/session/{session_id}/history").json()["data"]["count"] == 0
        assert client.get(f"/api/session/{session_id}").json()["data"]["message_count"] == 0

    def test_delete_session(self, client: TestClient) -> None:
        """Removes the session."""
        session_id = _session_id(client)

        assert client.delete(f"/api/session/{session_id}").status_code == 200
        assert client.get(f"/api/session/{session_id}").status_code == 404


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_chat_success(self, client: TestClient) -> None:
        """Returns an answer with sources."""
        session_id = _session_id(client)

        response = client.post(
            "/api/chat", json={"session_id": session_id, "message": "what's the weather forecast today"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["answer"]
        assert data["sources"][0]["metadata"]["source"] == "Weather Desk"
        assert "timestamp" in data

    def test_chat_empty_message(self, client: TestClient) -> None:
        """Returns 400 for a blank message."""
        session_id = _session_id(client)
        response = client.post("/api/chat", json={"session_id": session_id, "message": "   "})
        assert response.status_code == 400

    def test_chat_missing_session_id(self, client: TestClient) -> None:
        """Returns 400 for an empty session id."""
        response = client.post("/api/chat", json={"session_id": "", "message": "hello"})
        assert response.status_code == 400

    def test_chat_invalid_session(self, client: TestClient) -> None:
        """Returns 401 for an expired session."""
        response = client.post("/api/chat", json={"session_id": "expired", "message": "hello"})
        assert response.status_code == 401

    def test_chat_empty_corpus(self, client: TestClient, orchestrator: RetrievalOrchestrator) -> None:
        """Answers with the canned response when nothing is indexed."""
        orchestrator.index.clear()
        session_id = _session_id(client)

        data = client.post("/api/chat", json={"session_id": session_id, "message": "hello"}).json()["data"]

        assert data["answer"] == NO_CORPUS_ANSWER
        assert data["sources"] == []

    @pytest.mark.parametrize(
        "error, status",
        [(GenerationError("no fallback"), 502), (RequestFailedError("store down"), 503)],
    )
    def test_chat_errors(self, error: Exception, status: int) -> None:
        """Maps orchestrator failures to HTTP status codes."""
        failing = MagicMock()
        failing.process_query.side_effect = error
        app.dependency_overrides[get_orchestrator] = lambda: failing
        try:
            response = TestClient(app).post("/api/chat", json={"session_id": "s", "message": "hello"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == status


class TestChatStreamEndpoint:
    """Tests for POST /api/chat/stream."""

    def test_stream_chunks_then_done(self, client: TestClient) -> None:
        """Emits chunk events whose content forms the stored answer."""
        session_id = _session_id(client)

        response = client.post("/api/chat/stream", json={"session_id": session_id, "message": "forecast"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _events(response.text)
        chunks = [e["content"] for e in events if e["type"] == "chunk"]
        assert chunks
        assert events[-1]["type"] == "done"
        assert events[-1]["sources"]

        history = client.get(f"/api/session/{session_id}/history").json()["data"]["messages"]
        assert history[-1]["content"] == "".join(chunks)

    def test_stream_invalid_session(self, client: TestClient) -> None:
        """Emits a single error event for an expired session."""
        response = client.post("/api/chat/stream", json={"session_id": "expired", "message": "hello"})

        events = _events(response.text)
        assert events == [{"type": "error", "message": "Invalid or expired session"}]

    def test_stream_empty_message(self, client: TestClient) -> None:
        """Returns 400 before streaming for a blank message."""
        response = client.post("/api/chat/stream", json={"session_id": "s", "message": ""})
        assert response.status_code == 400


class TestStatusEndpoint:
    """Tests for GET /api/chat/status."""

    def test_status(self, client: TestClient, orchestrator: RetrievalOrchestrator) -> None:
        """Reports the indexed chunk count and store backend."""
        data = client.get("/api/chat/status").json()["data"]

        assert data["status"] == "operational"
        assert data["documents_indexed"] == orchestrator.indexed_document_count()
        assert data["store_backend"] == "memory"
