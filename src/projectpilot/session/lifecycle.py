import logging

from ..errors import SessionNotFoundError
from ..models import ChatRole, Session, SessionMessage, SessionMode, SessionStatus, SessionSubMode, utcnow
from ..services.session_store import SessionStore
from . import state_machine

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    """Creates, resumes and transitions sessions, and appends their messages.

    Every mutation re-fetches the session and validates through the state
    machine at the moment it is applied, so a transition computed from a stale
    read fails instead of overwriting newer state.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def _require(self, session_id: str) -> Session:
        session = await self._store.fetch(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def start_session(
        self,
        project_id: str,
        mode: SessionMode,
        sub_mode: SessionSubMode | None = None,
    ) -> Session:
        """Start a new active session, pausing any active session for the same project.

        Raises:
            ValueError: if a sub-mode is given for a mode other than execution support.
        """
        if sub_mode is not None and mode != SessionMode.EXECUTION_SUPPORT:
            raise ValueError(f"sub_mode {sub_mode.value} only applies to executionSupport sessions")

        existing = await self._store.fetch_active_for_project(project_id)
        for occupant in existing:
            if occupant.status != SessionStatus.ACTIVE:
                continue
            occupant.status = state_machine.transition(occupant.status, SessionStatus.PAUSED)
            occupant.last_active_at = utcnow()
            await self._store.save(occupant)
            logger.info("Paused existing active session %s for project %s", occupant.id, project_id)

        session = Session(project_id=project_id, mode=mode, sub_mode=sub_mode)
        await self._store.save(session)
        logger.info(
            "Started new session %s in mode %s for project %s", session.id, mode.value, project_id
        )
        return session

    async def resume_session(self, session_id: str) -> Session:
        session = await self._require(session_id)
        session.status = state_machine.transition(session.status, SessionStatus.ACTIVE)
        session.last_active_at = utcnow()
        await self._store.save(session)
        logger.info("Resumed session %s", session_id)
        return session

    async def transition_session(self, session_id: str, target: SessionStatus) -> Session:
        """Move a session to ``target``; stamps completed_at when the result is terminal."""
        session = await self._require(session_id)
        session.status = state_machine.transition(session.status, target)
        now = utcnow()
        session.last_active_at = now
        if state_machine.is_terminal(session.status):
            session.completed_at = now
        await self._store.save(session)
        logger.info("Transitioned session %s to %s", session_id, target.value)
        return session

    async def touch_session(self, session_id: str) -> Session:
        session = await self._require(session_id)
        session.last_active_at = utcnow()
        await self._store.save(session)
        return session

    async def add_message(
        self,
        session_id: str,
        role: ChatRole,
        content: str,
        raw_voice_transcript: str | None = None,
    ) -> SessionMessage:
        await self._require(session_id)
        message = SessionMessage(
            session_id=session_id,
            role=role,
            content=content,
            raw_voice_transcript=raw_voice_transcript,
        )
        await self._store.append_message(message)
        return message
