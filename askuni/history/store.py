"""Per-user chat history and conversation thread mapping.

The streaming core only talks to history through this interface: it
resolves a session to a durable assistant thread, serialises generations
per session, and appends turns once an answer is final. The in-process
implementation keeps everything in memory; a database-backed store only
needs to provide the same coroutines.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

from askuni.models.schemas import Attachment, Role, SessionSummary, StoredMessage

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 60


@dataclass
class _SessionRecord:
    session_id: str
    owner: str
    title: str
    thread_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    messages: list[StoredMessage] = field(default_factory=list)


def new_thread_id() -> str:
    return f"thread_{uuid.uuid4().hex}"


class HistoryStore:
    """In-memory history keyed by session id and owned by an identity."""

    def __init__(self) -> None:
        self._sessions: dict[str, _SessionRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialise generations that touch the same conversation."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                # Last holder or waiter gone
                del self._lock_users[session_id]
                self._locks.pop(session_id, None)

    async def owner_of(self, session_id: str) -> str | None:
        record = self._sessions.get(session_id)
        return record.owner if record else None

    async def upsert_session(self, session_id: str, owner: str, title: str) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            self._sessions[session_id] = _SessionRecord(
                session_id=session_id,
                owner=owner,
                title=(title or "New chat")[:TITLE_MAX_LENGTH],
            )
            return
        record.updated_at = datetime.now()

    async def ensure_thread(self, session_id: str, owner: str) -> str:
        """Return the durable thread of a session, minting one if needed."""
        record = self._sessions.get(session_id)
        if record is None:
            await self.upsert_session(session_id, owner, "New chat")
            record = self._sessions[session_id]
        if record.thread_id is None:
            record.thread_id = new_thread_id()
            logger.info(f"Created thread {record.thread_id} for session {session_id}")
        return record.thread_id

    async def add_message(
        self,
        session_id: str,
        role: Role,
        text: str,
        attachments: list[Attachment] | None = None,
    ) -> None:
        record = self._sessions.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session: {session_id}")
        record.messages.append(
            StoredMessage(role=role, text=text, attachments=attachments or [])
        )
        record.updated_at = datetime.now()

    async def list_sessions(self, owner: str) -> list[SessionSummary]:
        records = [r for r in self._sessions.values() if r.owner == owner]
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return [
            SessionSummary(
                session_id=r.session_id,
                title=r.title,
                created_at=r.created_at,
                updated_at=r.updated_at,
                message_count=len(r.messages),
            )
            for r in records
        ]

    async def get_messages(self, session_id: str, owner: str) -> list[StoredMessage] | None:
        """Messages of a session, or None if it does not belong to ``owner``."""
        record = self._sessions.get(session_id)
        if record is None or record.owner != owner:
            return None
        return list(record.messages)

    async def delete_session(self, session_id: str, owner: str) -> bool:
        record = self._sessions.get(session_id)
        if record is None or record.owner != owner:
            return False
        del self._sessions[session_id]
        return True


# Module-level singleton instance
_history_store: HistoryStore | None = None


def get_history_store() -> HistoryStore:
    """Get or create the global history store."""
    global _history_store
    if _history_store is None:
        _history_store = HistoryStore()
    return _history_store
