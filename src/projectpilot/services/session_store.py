import copy
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Protocol

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..errors import SessionStoreError
from ..models import (
    ChatRole,
    ContentEstablished,
    ContentObserved,
    Session,
    SessionCompletionStatus,
    SessionMessage,
    SessionMode,
    SessionStatus,
    SessionSubMode,
    SessionSummary,
    WhatComesNext,
)
from ..session.state_machine import occupies_active_slot
from .redis import RedisCrudService, get_redis_crud_service

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Persistence contract for sessions, their transcripts and summaries.

    Every call is atomic for a single entity; callers never rely on
    multi-entity transactions.
    """

    async def fetch(self, session_id: str) -> Session | None: ...

    async def fetch_active_for_project(self, project_id: str) -> List[Session]: ...

    async def fetch_sessions_for_project(self, project_id: str) -> List[Session]: ...

    async def save(self, session: Session) -> None: ...

    async def append_message(self, message: SessionMessage) -> None: ...

    async def fetch_messages(self, session_id: str) -> List[SessionMessage]: ...

    async def save_summary(self, summary: SessionSummary) -> None: ...

    async def fetch_summary(self, session_id: str) -> SessionSummary | None: ...

    async def fetch_sessions_pending_summarisation(self, older_than: datetime) -> List[Session]: ...

    async def fetch_sessions_with_status(self, status: SessionStatus) -> List[Session]: ...


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _session_to_dict(session: Session) -> Dict[str, Any]:
    return {
        "id": session.id,
        "project_id": session.project_id,
        "mode": session.mode.value,
        "sub_mode": session.sub_mode.value if session.sub_mode else None,
        "status": session.status.value,
        "created_at": _iso(session.created_at),
        "last_active_at": _iso(session.last_active_at),
        "completed_at": _iso(session.completed_at),
        "summary_id": session.summary_id,
    }


def _dict_to_session(data: Dict[str, Any]) -> Session:
    sub_mode = data.get("sub_mode")
    return Session(
        id=data["id"],
        project_id=data["project_id"],
        mode=SessionMode(data["mode"]),
        sub_mode=SessionSubMode(sub_mode) if sub_mode else None,
        status=SessionStatus(data["status"]),
        created_at=_parse_dt(data["created_at"]),
        last_active_at=_parse_dt(data["last_active_at"]),
        completed_at=_parse_dt(data.get("completed_at")),
        summary_id=data.get("summary_id"),
    )


def _message_to_dict(message: SessionMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "session_id": message.session_id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": _iso(message.timestamp),
        "raw_voice_transcript": message.raw_voice_transcript,
    }


def _dict_to_message(data: Dict[str, Any]) -> SessionMessage:
    return SessionMessage(
        id=data["id"],
        session_id=data["session_id"],
        role=ChatRole(data["role"]),
        content=data["content"],
        timestamp=_parse_dt(data["timestamp"]),
        raw_voice_transcript=data.get("raw_voice_transcript"),
    )


def _summary_to_dict(summary: SessionSummary) -> Dict[str, Any]:
    return {
        "id": summary.id,
        "session_id": summary.session_id,
        "mode": summary.mode.value,
        "sub_mode": summary.sub_mode.value if summary.sub_mode else None,
        "completion_status": summary.completion_status.value,
        "content_established": {
            "decisions": summary.content_established.decisions,
            "facts_learned": summary.content_established.facts_learned,
            "progress_made": summary.content_established.progress_made,
        },
        "content_observed": {
            "patterns": summary.content_observed.patterns,
            "concerns": summary.content_observed.concerns,
            "strengths": summary.content_observed.strengths,
        },
        "what_comes_next": {
            "next_actions": summary.what_comes_next.next_actions,
            "open_questions": summary.what_comes_next.open_questions,
            "suggested_mode": summary.what_comes_next.suggested_mode,
        },
        "started_at": _iso(summary.started_at),
        "ended_at": _iso(summary.ended_at),
        "duration": summary.duration,
        "message_count": summary.message_count,
        "input_tokens": summary.input_tokens,
        "output_tokens": summary.output_tokens,
    }


def _dict_to_summary(data: Dict[str, Any]) -> SessionSummary:
    sub_mode = data.get("sub_mode")
    return SessionSummary(
        id=data["id"],
        session_id=data["session_id"],
        mode=SessionMode(data["mode"]),
        sub_mode=SessionSubMode(sub_mode) if sub_mode else None,
        completion_status=SessionCompletionStatus(data["completion_status"]),
        content_established=ContentEstablished(**data.get("content_established", {})),
        content_observed=ContentObserved(**data.get("content_observed", {})),
        what_comes_next=WhatComesNext(**data.get("what_comes_next", {})),
        started_at=_parse_dt(data["started_at"]),
        ended_at=_parse_dt(data["ended_at"]),
        duration=int(data.get("duration", 0)),
        message_count=int(data.get("message_count", 0)),
        input_tokens=data.get("input_tokens"),
        output_tokens=data.get("output_tokens"),
    )


class InMemorySessionStore:
    """Process-local session store. Returns copies so callers never share state."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._messages: Dict[str, List[SessionMessage]] = {}
        self._summaries: Dict[str, SessionSummary] = {}

    async def fetch(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def fetch_active_for_project(self, project_id: str) -> List[Session]:
        found = [
            s
            for s in self._sessions.values()
            if s.project_id == project_id and occupies_active_slot(s.status)
        ]
        found.sort(key=lambda s: s.last_active_at, reverse=True)
        return copy.deepcopy(found)

    async def fetch_sessions_for_project(self, project_id: str) -> List[Session]:
        found = [s for s in self._sessions.values() if s.project_id == project_id]
        found.sort(key=lambda s: s.created_at)
        return copy.deepcopy(found)

    async def save(self, session: Session) -> None:
        self._sessions[session.id] = copy.deepcopy(session)

    async def append_message(self, message: SessionMessage) -> None:
        self._messages.setdefault(message.session_id, []).append(copy.deepcopy(message))

    async def fetch_messages(self, session_id: str) -> List[SessionMessage]:
        return copy.deepcopy(self._messages.get(session_id, []))

    async def save_summary(self, summary: SessionSummary) -> None:
        self._summaries[summary.session_id] = copy.deepcopy(summary)

    async def fetch_summary(self, session_id: str) -> SessionSummary | None:
        summary = self._summaries.get(session_id)
        return copy.deepcopy(summary) if summary else None

    async def fetch_sessions_pending_summarisation(self, older_than: datetime) -> List[Session]:
        found = [
            s
            for s in self._sessions.values()
            if s.status == SessionStatus.PAUSED and s.last_active_at < older_than
        ]
        found.sort(key=lambda s: s.last_active_at)
        return copy.deepcopy(found)

    async def fetch_sessions_with_status(self, status: SessionStatus) -> List[Session]:
        found = [s for s in self._sessions.values() if s.status == status]
        found.sort(key=lambda s: s.last_active_at, reverse=True)
        return copy.deepcopy(found)


SESSION_KEY_PREFIX = "session:"
PROJECT_KEY_PREFIX = "project:"
STATUS_KEY_PREFIX = "sessions:status:"


class RedisSessionStore:
    """Session store backed by Redis JSON documents plus set indexes."""

    def __init__(self, redis_crud: RedisCrudService) -> None:
        self._redis = redis_crud

    def _session_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    def _messages_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}:messages"

    def _summary_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}:summary"

    def _project_key(self, project_id: str) -> str:
        return f"{PROJECT_KEY_PREFIX}{project_id}:sessions"

    def _status_key(self, status: SessionStatus) -> str:
        return f"{STATUS_KEY_PREFIX}{status.value}"

    async def fetch(self, session_id: str) -> Session | None:
        raw = await self._redis.get(self._session_key(session_id))
        if raw is None:
            return None
        try:
            return _dict_to_session(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid session data for %s: %s", session_id, e)
            raise SessionStoreError(f"Corrupt session record {session_id}") from e

    async def _fetch_many(self, session_ids) -> List[Session]:
        sessions = []
        for session_id in session_ids:
            session = await self.fetch(session_id)
            if session is not None:
                sessions.append(session)
        return sessions

    async def fetch_active_for_project(self, project_id: str) -> List[Session]:
        ids = await self._redis.members(self._project_key(project_id))
        found = [s for s in await self._fetch_many(ids) if occupies_active_slot(s.status)]
        found.sort(key=lambda s: s.last_active_at, reverse=True)
        return found

    async def fetch_sessions_for_project(self, project_id: str) -> List[Session]:
        ids = await self._redis.members(self._project_key(project_id))
        found = await self._fetch_many(ids)
        found.sort(key=lambda s: s.created_at)
        return found

    async def save(self, session: Session) -> None:
        await self._redis.set(self._session_key(session.id), json.dumps(_session_to_dict(session)))
        await self._redis.add_member(self._project_key(session.project_id), session.id)
        for status in SessionStatus:
            if status != session.status:
                await self._redis.remove_member(self._status_key(status), session.id)
        await self._redis.add_member(self._status_key(session.status), session.id)

    async def append_message(self, message: SessionMessage) -> None:
        await self._redis.append(
            self._messages_key(message.session_id), json.dumps(_message_to_dict(message))
        )

    async def fetch_messages(self, session_id: str) -> List[SessionMessage]:
        raw_messages = await self._redis.get_list(self._messages_key(session_id))
        try:
            return [_dict_to_message(json.loads(raw)) for raw in raw_messages]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid message data for session %s: %s", session_id, e)
            raise SessionStoreError(f"Corrupt transcript for session {session_id}") from e

    async def save_summary(self, summary: SessionSummary) -> None:
        await self._redis.set(
            self._summary_key(summary.session_id), json.dumps(_summary_to_dict(summary))
        )

    async def fetch_summary(self, session_id: str) -> SessionSummary | None:
        raw = await self._redis.get(self._summary_key(session_id))
        if raw is None:
            return None
        try:
            return _dict_to_summary(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid summary data for session %s: %s", session_id, e)
            raise SessionStoreError(f"Corrupt summary record for session {session_id}") from e

    async def fetch_sessions_pending_summarisation(self, older_than: datetime) -> List[Session]:
        paused = await self.fetch_sessions_with_status(SessionStatus.PAUSED)
        found = [s for s in paused if s.last_active_at < older_than]
        found.sort(key=lambda s: s.last_active_at)
        return found

    async def fetch_sessions_with_status(self, status: SessionStatus) -> List[Session]:
        ids = await self._redis.members(self._status_key(status))
        # Index entries can lag a concurrent save; the record's own status wins.
        found = [s for s in await self._fetch_many(ids) if s.status == status]
        found.sort(key=lambda s: s.last_active_at, reverse=True)
        return found


# Lazy singleton, connected on first use
_session_store_instance: SessionStore | None = None
_redis_crud_instance: RedisCrudService | None = None


async def get_session_store_async() -> SessionStore:
    """Return the shared session store: Redis when configured and reachable, else in-memory."""
    global _session_store_instance, _redis_crud_instance
    if _session_store_instance is not None:
        return _session_store_instance

    redis_crud = get_redis_crud_service()
    if redis_crud is not None:
        try:
            await redis_crud.connect()
            _redis_crud_instance = redis_crud
            _session_store_instance = RedisSessionStore(redis_crud)
            logger.info("Session store: Redis")
            return _session_store_instance
        except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
            logger.warning("Redis unavailable, falling back to in-memory session store: %s", e)

    _session_store_instance = InMemorySessionStore()
    logger.info("Session store: in-memory")
    return _session_store_instance


async def close_session_store() -> None:
    """Release the shared session store and its Redis connection. Idempotent."""
    global _session_store_instance, _redis_crud_instance
    if _redis_crud_instance is not None:
        await _redis_crud_instance.close()
        _redis_crud_instance = None
        logger.debug("Session store (Redis) closed")
    _session_store_instance = None
