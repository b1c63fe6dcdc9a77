import asyncio
import logging
from datetime import timedelta
from typing import Dict, List

from ..errors import PipelineError
from ..models import Session, SessionCompletionStatus, SessionStatus, utcnow
from ..services.session_store import SessionStore
from . import state_machine
from .lifecycle import SessionLifecycleManager
from .summary import SummaryGenerationService

logger = logging.getLogger(__name__)

_RECOVERABLE_STATUSES = frozenset({SessionStatus.PAUSED, SessionStatus.PENDING_AUTO_SUMMARY})


class AutoSummarisationService:
    """Background worker that summarises sessions abandoned while paused.

    Each pass collects paused sessions idle for longer than ``timeout`` plus
    sessions left in ``pendingAutoSummary`` by an earlier pass, and drives
    each of them to ``autoSummarised``. A session that still fails after
    ``max_retries`` attempts is parked in ``pendingAutoSummary`` for the
    next pass.
    """

    def __init__(
        self,
        store: SessionStore,
        summary_service: SummaryGenerationService,
        lifecycle: SessionLifecycleManager,
        timeout: timedelta = state_machine.DEFAULT_AUTO_SUMMARY_TIMEOUT,
        max_retries: int = 3,
        check_interval: float = 900.0,
        backoff_base: float = 1.0,
        max_concurrency: int = 1,
    ) -> None:
        self._store = store
        self._summaries = summary_service
        self._lifecycle = lifecycle
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.check_interval = check_interval
        self.backoff_base = backoff_base
        self.max_concurrency = max(1, max_concurrency)
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop. No-op if already running."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="auto-summarisation")
        logger.info(
            "Auto-summarisation started (timeout=%s, interval=%ss, retries=%s)",
            self.timeout,
            self.check_interval,
            self.max_retries,
        )

    async def stop(self) -> None:
        """Ask the loop to stop and wait for it. Safe to call when not running.

        A pass that is mid model call finishes that call; waits between
        passes and between retries end immediately.
        """
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        try:
            await task
        finally:
            self._task = None
        logger.info("Auto-summarisation stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.process_pending_sessions()
            if await self._wait_for_stop(self.check_interval):
                break

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _collect_candidates(self) -> List[Session]:
        older_than = utcnow() - self.timeout
        stale = await self._store.fetch_sessions_pending_summarisation(older_than)
        pending = await self._store.fetch_sessions_with_status(SessionStatus.PENDING_AUTO_SUMMARY)

        candidates: Dict[str, Session] = {}
        for session in stale + pending:
            candidates.setdefault(session.id, session)
        return list(candidates.values())

    async def process_pending_sessions(self) -> None:
        """Run one pass over every eligible session. Never raises."""
        try:
            candidates = await self._collect_candidates()
        except Exception as e:
            logger.error("Auto-summarisation scan failed: %s", e, exc_info=not isinstance(e, PipelineError))
            return

        if not candidates:
            return
        logger.info("Auto-summarising %d session(s)", len(candidates))

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(session_id: str) -> None:
            async with semaphore:
                await self._summarise_with_retry(session_id)

        await asyncio.gather(*(run_one(s.id) for s in candidates))

    async def _summarise_once(self, session_id: str) -> bool:
        """One attempt. Returns False if the session no longer needs summarising.

        The summary is always regenerated from the current transcript; its id is
        derived from the session, so a retry overwrites an earlier attempt's record.
        """
        session = await self._store.fetch(session_id)
        if session is None or session.status not in _RECOVERABLE_STATUSES:
            return False

        await self._summaries.generate_summary(
            session_id, SessionCompletionStatus.INCOMPLETE_AUTO_SUMMARISED
        )
        await self._lifecycle.transition_session(session_id, SessionStatus.AUTO_SUMMARISED)
        return True

    async def _summarise_with_retry(self, session_id: str) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                if await self._summarise_once(session_id):
                    logger.info("Auto-summarised session %s", session_id)
                else:
                    logger.debug("Session %s no longer needs auto-summarisation", session_id)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    "Auto-summarisation attempt %d/%d for session %s failed: %s",
                    attempt,
                    self.max_retries,
                    session_id,
                    e,
                    exc_info=not isinstance(e, PipelineError),
                )
            if attempt < self.max_retries:
                if await self._wait_for_stop(self.backoff_base * 2**attempt):
                    logger.info("Stop requested, abandoning retries for session %s", session_id)
                    return

        logger.error(
            "Auto-summarisation failed for session %s after %d attempts: %s",
            session_id,
            self.max_retries,
            last_error,
        )
        await self._mark_pending(session_id)

    async def _mark_pending(self, session_id: str) -> None:
        try:
            session = await self._store.fetch(session_id)
            if session is None or session.status != SessionStatus.PAUSED:
                return
            await self._lifecycle.transition_session(session_id, SessionStatus.PENDING_AUTO_SUMMARY)
        except Exception as e:
            logger.error("Could not mark session %s as pending auto-summary: %s", session_id, e)
