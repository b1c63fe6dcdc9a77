import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from conftest import VALID_SUMMARY_JSON, ScriptedLLM
from projectpilot.errors import LLMError
from projectpilot.models import (
    ChatRole,
    Session,
    SessionCompletionStatus,
    SessionMessage,
    SessionMode,
    SessionStatus,
    SessionSummary,
    utcnow,
)
from projectpilot.services.session_store import InMemorySessionStore
from projectpilot.session.auto_summary import AutoSummarisationService
from projectpilot.session.lifecycle import SessionLifecycleManager
from projectpilot.session.summary import SummaryGenerationService


def _service(store: InMemorySessionStore, llm: ScriptedLLM, **kwargs) -> AutoSummarisationService:
    kwargs.setdefault("backoff_base", 0)
    return AutoSummarisationService(
        store,
        SummaryGenerationService(llm, store),
        SessionLifecycleManager(store),
        timeout=timedelta(hours=24),
        **kwargs,
    )


async def _paused_session(store: InMemorySessionStore, idle: timedelta) -> Session:
    session = Session(project_id="p1", mode=SessionMode.EXPLORATION, status=SessionStatus.PAUSED)
    session.last_active_at = utcnow() - idle
    await store.save(session)
    await store.append_message(SessionMessage(session.id, ChatRole.USER, "an idea"))
    await store.append_message(SessionMessage(session.id, ChatRole.ASSISTANT, "tell me more"))
    return session


@pytest.mark.asyncio
async def test_stale_paused_session_is_auto_summarised(store: InMemorySessionStore) -> None:
    stale = await _paused_session(store, timedelta(hours=25))
    fresh = await _paused_session(store, timedelta(hours=1))
    service = _service(store, ScriptedLLM(VALID_SUMMARY_JSON))

    await service.process_pending_sessions()

    done = await store.fetch(stale.id)
    assert done.status == SessionStatus.AUTO_SUMMARISED
    assert done.completed_at is not None
    summary = await store.fetch_summary(stale.id)
    assert summary.completion_status == SessionCompletionStatus.INCOMPLETE_AUTO_SUMMARISED
    assert done.summary_id == summary.id

    assert (await store.fetch(fresh.id)).status == SessionStatus.PAUSED


@pytest.mark.asyncio
async def test_retry_then_success(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    llm = ScriptedLLM(LLMError("timeout"), VALID_SUMMARY_JSON)

    await _service(store, llm, max_retries=3).process_pending_sessions()

    assert len(llm.calls) == 2
    assert (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED


@pytest.mark.asyncio
async def test_exhausted_retries_park_session_then_recover(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    failing = ScriptedLLM(LLMError("a"), LLMError("b"))

    await _service(store, failing, max_retries=2).process_pending_sessions()

    assert len(failing.calls) == 2
    assert (await store.fetch(session.id)).status == SessionStatus.PENDING_AUTO_SUMMARY
    assert await store.fetch_summary(session.id) is None

    working = ScriptedLLM(VALID_SUMMARY_JSON)
    await _service(store, working).process_pending_sessions()

    assert (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED
    assert len(working.calls) == 1


@pytest.mark.asyncio
async def test_earlier_summary_is_regenerated_from_current_transcript(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=2))
    earlier = SessionSummary(
        session_id=session.id,
        mode=session.mode,
        completion_status=SessionCompletionStatus.INCOMPLETE_AUTO_SUMMARISED,
        message_count=2,
    )
    await store.save_summary(earlier)
    await store.append_message(SessionMessage(session.id, ChatRole.USER, "one more thing"))
    await store.append_message(SessionMessage(session.id, ChatRole.ASSISTANT, "noted"))
    llm = ScriptedLLM(VALID_SUMMARY_JSON)

    await _service(store, llm).process_pending_sessions()

    assert len(llm.calls) == 1
    summary = await store.fetch_summary(session.id)
    assert summary.id == earlier.id
    assert summary.message_count == len(await store.fetch_messages(session.id)) == 4
    assert (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED


@pytest.mark.asyncio
async def test_session_resumed_meanwhile_is_skipped(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=2))
    service = _service(store, ScriptedLLM(VALID_SUMMARY_JSON))

    resumed = await store.fetch(session.id)
    resumed.status = SessionStatus.ACTIVE
    await store.save(resumed)

    await service._summarise_with_retry(session.id)

    assert (await store.fetch(session.id)).status == SessionStatus.ACTIVE
    assert await store.fetch_summary(session.id) is None


@pytest.mark.asyncio
async def test_concurrent_processing(store: InMemorySessionStore) -> None:
    sessions = [await _paused_session(store, timedelta(days=2)) for _ in range(3)]
    llm = ScriptedLLM(*([VALID_SUMMARY_JSON] * 3))

    await _service(store, llm, max_concurrency=3).process_pending_sessions()

    for session in sessions:
        assert (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED


@pytest.mark.asyncio
async def test_start_stop_idempotent(store: InMemorySessionStore) -> None:
    service = _service(store, ScriptedLLM(), check_interval=3600)

    await service.stop()
    assert not service.is_running

    service.start()
    first_task = service._task
    service.start()
    assert service._task is first_task
    assert service.is_running

    await asyncio.wait_for(service.stop(), timeout=1)
    assert not service.is_running
    await service.stop()


@pytest.mark.asyncio
async def test_loop_runs_immediate_pass(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=2))
    service = _service(store, ScriptedLLM(VALID_SUMMARY_JSON), check_interval=3600)

    service.start()
    for _ in range(50):
        if (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED:
            break
        await asyncio.sleep(0.01)
    await service.stop()

    assert (await store.fetch(session.id)).status == SessionStatus.AUTO_SUMMARISED


@pytest.mark.asyncio
async def test_unexpected_error_counts_as_failed_attempt(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    llm = ScriptedLLM(RuntimeError("backend exploded"), RuntimeError("backend exploded"))

    await _service(store, llm, max_retries=2).process_pending_sessions()

    assert len(llm.calls) == 2
    assert (await store.fetch(session.id)).status == SessionStatus.PENDING_AUTO_SUMMARY


@pytest.mark.asyncio
async def test_loop_survives_unexpected_error(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    llm = ScriptedLLM(RuntimeError("backend exploded"))
    service = _service(store, llm, max_retries=1, check_interval=0.05)

    service.start()
    for _ in range(50):
        if (await store.fetch(session.id)).status == SessionStatus.PENDING_AUTO_SUMMARY:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.1)

    assert service.is_running
    assert (await store.fetch(session.id)).status == SessionStatus.PENDING_AUTO_SUMMARY
    await asyncio.wait_for(service.stop(), timeout=1)
    assert not service.is_running


@pytest.mark.asyncio
async def test_scan_failure_does_not_raise(store: InMemorySessionStore) -> None:
    service = _service(store, ScriptedLLM())
    store.fetch_sessions_pending_summarisation = AsyncMock(side_effect=RuntimeError("store down"))

    await service.process_pending_sessions()


@pytest.mark.asyncio
async def test_backoff_doubles_between_attempts(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    llm = ScriptedLLM(LLMError("a"), LLMError("b"), LLMError("c"))
    service = _service(store, llm, max_retries=3, backoff_base=1)
    delays = []

    async def record(delay: float) -> bool:
        delays.append(delay)
        return False

    with patch.object(service, "_wait_for_stop", side_effect=record):
        await service.process_pending_sessions()

    assert delays == [2, 4]
    assert len(llm.calls) == 3
    assert (await store.fetch(session.id)).status == SessionStatus.PENDING_AUTO_SUMMARY


@pytest.mark.asyncio
async def test_stop_cuts_backoff_short(store: InMemorySessionStore) -> None:
    session = await _paused_session(store, timedelta(days=3))
    llm = ScriptedLLM(LLMError("a"), VALID_SUMMARY_JSON)
    service = _service(store, llm, max_retries=3, backoff_base=100, check_interval=3600)

    service.start()
    for _ in range(50):
        if llm.calls:
            break
        await asyncio.sleep(0.01)
    await asyncio.wait_for(service.stop(), timeout=1)

    assert len(llm.calls) == 1
    assert (await store.fetch(session.id)).status == SessionStatus.PAUSED
