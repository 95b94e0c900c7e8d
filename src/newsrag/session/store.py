"""Session and message-history lifecycle on top of a :class:`KVStore`."""

from __future__ import annotations

import logging
from typing import List, Optional

from newsrag.models import ROLES, Message, Session, new_id, utc_now_iso
from newsrag.store.kv import KVStore

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 86400


class SessionStore:
    """Creates sessions, appends messages and reads history.

    A session record lives under ``session:<id>`` and its history list under
    ``history:<id>``; both carry the same TTL. Expired sessions simply
    disappear from the store.
    """

    session_prefix = "session:"
    history_prefix = "history:"

    def __init__(self, store: KVStore, *, ttl_seconds: int = DEFAULT_SESSION_TTL) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _session_key(self, session_id: str) -> str:
        return f"{self.session_prefix}{session_id}"

    def _history_key(self, session_id: str) -> str:
        return f"{self.history_prefix}{session_id}"

    def create_session(self) -> Session:
        session = Session(id=new_id(), created_at=utc_now_iso(), message_count=0)
        self.store.set(self._session_key(session.id), session.to_json(), self.ttl_seconds)
        LOGGER.info("Created session %s", session.id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        raw = self.store.get(self._session_key(session_id))
        return Session.from_json(raw) if raw else None

    def validate_session(self, session_id: str) -> bool:
        """Return whether the session exists, refreshing its TTL if it does."""
        if not session_id or not self.store.exists(self._session_key(session_id)):
            return False
        self.store.refresh_ttl(self._session_key(session_id), self.ttl_seconds)
        self.store.refresh_ttl(self._history_key(session_id), self.ttl_seconds)
        return True

    def add_message(self, session_id: str, role: str, content: str) -> Message:
        """Append a message and bump the session's counter.

        The history append and the counter rewrite are two separate writes;
        concurrent calls on one session may interleave.
        """
        if role not in ROLES:
            raise ValueError(f"Unsupported role: {role!r}")
        message = Message(id=new_id(), role=role, content=content, timestamp=utc_now_iso())  # type: ignore[arg-type]
        self.store.append(self._history_key(session_id), message.to_json())

        session = self.get_session(session_id)
        if session is not None:
            session.message_count += 1
            self.store.set(self._session_key(session_id), session.to_json(), self.ttl_seconds)

        self.store.refresh_ttl(self._history_key(session_id), self.ttl_seconds)
        return message

    def get_history(self, session_id: str, limit: int = 100) -> List[Message]:
        """Most recent ``limit`` messages, oldest first."""
        if limit <= 0:
            return []
        raw_messages = self.store.range(self._history_key(session_id), -limit, -1)
        return [Message.from_json(raw) for raw in raw_messages]

    def clear_history(self, session_id: str) -> None:
        self.store.delete(self._history_key(session_id))
        session = self.get_session(session_id)
        if session is not None:
            session.message_count = 0
            self.store.set(self._session_key(session_id), session.to_json(), self.ttl_seconds)
        LOGGER.info("Cleared history for session %s", session_id)

    def delete_session(self, session_id: str) -> None:
        self.store.delete(self._session_key(session_id))
        self.store.delete(self._history_key(session_id))
        LOGGER.info("Deleted session %s", session_id)

    def list_sessions(self) -> List[str]:
        """Ids of all live sessions. Administrative use only: scans the keyspace."""
        keys = self.store.keys_matching(f"{self.session_prefix}*")
        return sorted(key[len(self.session_prefix):] for key in keys)
