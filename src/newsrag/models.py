"""Core newsrag data models."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

Role = Literal["user", "assistant"]
ROLES: tuple[str, ...] = ("user", "assistant")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class DocumentChunk:
    """Chunk of article text paired with provenance metadata."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResult:
    text: str
    score: float
    metadata: Dict[str, Any]


@dataclass(slots=True)
class Session:
    """Conversation context stored under ``session:<id>``."""

    id: str
    created_at: str
    message_count: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        data = json.loads(raw)
        return cls(
            id=data["id"],
            created_at=data["created_at"],
            message_count=int(data.get("message_count", 0)),
        )


@dataclass(slots=True)
class Message:
    """Single history entry stored in ``history:<id>``."""

    id: str
    role: Role
    content: str
    timestamp: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "Message":
        data = json.loads(raw)
        return cls(
            id=data["id"],
            role=data["role"],
            content=data["content"],
            timestamp=data["timestamp"],
        )


@dataclass(slots=True)
class Source:
    """Retrieved passage as reported back to the caller."""

    text: str
    score: float
    metadata: Dict[str, Any]


@dataclass(slots=True)
class QueryResult:
    answer: str
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"answer": self.answer, "sources": [asdict(source) for source in self.sources]}
