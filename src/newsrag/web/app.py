"""FastAPI application exposing sessions and chat over HTTP."""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, NoReturn

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from newsrag.config import AppConfig
from newsrag.errors import GenerationError, NewsRagError, SessionInvalidError
from newsrag.models import QueryResult
from newsrag.rag.factory import build_orchestrator
from newsrag.rag.pipeline import RetrievalOrchestrator

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="newsrag", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_orchestrator: RetrievalOrchestrator | None = None
_orchestrator_lock = threading.Lock()


class ChatPayload(BaseModel):
    session_id: str
    message: str


def get_orchestrator() -> RetrievalOrchestrator:
    """Process-wide orchestrator, built on first use from the environment."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator(AppConfig.from_env(), Path.cwd())
        return _orchestrator


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _raise_http(exc: NewsRagError) -> NoReturn:
    if isinstance(exc, SessionInvalidError):
        raise HTTPException(
            status_code=401, detail="Invalid or expired session. Please create a new session."
        ) from exc
    if isinstance(exc, GenerationError):
        raise HTTPException(status_code=502, detail="Failed to generate a response") from exc
    LOGGER.error("Request failed: %s", exc)
    raise HTTPException(status_code=503, detail="Failed to process message") from exc


def _require_message(payload: ChatPayload) -> str:
    if not payload.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    return message


def _result_payload(result: QueryResult) -> dict[str, Any]:
    return {**result.to_dict(), "timestamp": _now()}


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy", "timestamp": _now(), "version": app.version}


@app.post("/api/session", status_code=201)
def create_session(orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    try:
        session = orchestrator.create_session()
    except NewsRagError as exc:
        _raise_http(exc)
    return {"success": True, "data": asdict(session)}


@app.get("/api/session/{session_id}")
def get_session(
    session_id: str, orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)
) -> dict[str, Any]:
    try:
        session = orchestrator.get_session(session_id)
    except NewsRagError as exc:
        _raise_http(exc)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True, "data": asdict(session)}


@app.get("/api/session/{session_id}/history")
def get_history(
    session_id: str,
    limit: int = 100,
    orchestrator: RetrievalOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        messages = orchestrator.get_history(session_id, limit)
    except SessionInvalidError:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    except NewsRagError as exc:
        _raise_http(exc)
    return {
        "success": True,
        "data": {
            "session_id": session_id,
            "messages": [asdict(message) for message in messages],
            "count": len(messages),
        },
    }


@app.delete("/api/session/{session_id}/history")
def clear_history(
    session_id: str, orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)
) -> dict[str, Any]:
    try:
        orchestrator.clear_history(session_id)
    except SessionInvalidError:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    except NewsRagError as exc:
        _raise_http(exc)
    return {"success": True, "message": "Chat history cleared"}


@app.delete("/api/session/{session_id}")
def delete_session(
    session_id: str, orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)
) -> dict[str, Any]:
    try:
        orchestrator.delete_session(session_id)
    except NewsRagError as exc:
        _raise_http(exc)
    return {"success": True, "message": "Session deleted"}


@app.post("/api/chat")
def chat(
    payload: ChatPayload, orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)
) -> dict[str, Any]:
    message = _require_message(payload)
    try:
        result = orchestrator.process_query(payload.session_id, message)
    except NewsRagError as exc:
        _raise_http(exc)
    return {"success": True, "data": _result_payload(result)}


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


def stream_events(orchestrator: RetrievalOrchestrator, session_id: str, message: str) -> Iterator[str]:
    """Run a streamed query on a worker thread and yield its deltas as SSE frames."""
    events: "queue.Queue[tuple[str, Any]]" = queue.Queue()

    def _run() -> None:
        try:
            result = orchestrator.process_query_stream(
                session_id, message, lambda delta: events.put(("chunk", delta))
            )
        except Exception as exc:
            events.put(("error", exc))
        else:
            events.put(("done", result))

    threading.Thread(target=_run, name="newsrag_sse", daemon=True).start()

    while True:
        kind, payload = events.get()
        if kind == "chunk":
            yield _sse({"type": "chunk", "content": payload})
        elif kind == "done":
            yield _sse({"type": "done", "sources": _result_payload(payload)["sources"], "timestamp": _now()})
            return
        else:
            LOGGER.error("Stream error: %s", payload)
            if isinstance(payload, SessionInvalidError):
                detail = "Invalid or expired session"
            else:
                detail = "Failed to process message"
            yield _sse({"type": "error", "message": detail})
            return


@app.post("/api/chat/stream")
def chat_stream(
    payload: ChatPayload, orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)
) -> StreamingResponse:
    message = _require_message(payload)
    return StreamingResponse(
        stream_events(orchestrator, payload.session_id, message),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/chat/status")
def chat_status(orchestrator: RetrievalOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return {"success": True, "data": {**orchestrator.status(), "timestamp": _now()}}
