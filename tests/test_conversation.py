from datetime import timedelta

import pytest

from conftest import VALID_SUMMARY_JSON, ScriptedLLM
from projectpilot.context import ProjectData
from projectpilot.conversation import ConversationConfig, ConversationManager
from projectpilot.errors import LLMError, SessionNotActiveError, SessionNotFoundError
from projectpilot.llm import LLMRequestConfig, LLMRole
from projectpilot.models import (
    ChatRole,
    Project,
    Session,
    SessionCompletionStatus,
    SessionMode,
    SessionStatus,
    SessionSubMode,
    derived_id,
    utcnow,
)
from projectpilot.parsing.signals import ResponseSignal, SignalKind
from projectpilot.services.session_store import InMemorySessionStore
from projectpilot.session.lifecycle import SessionLifecycleManager
from projectpilot.session.summary import SummaryGenerationService

TASK_ID = "3f2b8c1e-5d4a-4e6b-9c7d-1a2b3c4d5e6f"


def _manager(store: InMemorySessionStore, llm: ScriptedLLM) -> ConversationManager:
    lifecycle = SessionLifecycleManager(store)
    return ConversationManager(llm, store, lifecycle, SummaryGenerationService(llm, store))


@pytest.fixture
def project_data() -> ProjectData:
    return ProjectData(project=Project(name="Garden shed", id="p1"))


@pytest.mark.asyncio
async def test_planning_turn_parses_signals_without_actions(
    store: InMemorySessionStore, project_data: ProjectData
) -> None:
    llm = ScriptedLLM("Let's proceed. [STRUCTURE_SUMMARY: 3 phases defined] [FIRST_ACTION: draft phase 1]")
    manager = _manager(store, llm)
    session = await manager.start_session("p1", SessionMode.PLANNING)

    result = await manager.send_message("Ready to plan", session.id, project_data)

    assert result.natural_language == "Let's proceed."
    assert result.actions == []
    assert result.signals == [
        ResponseSignal(SignalKind.STRUCTURE_SUMMARY, "3 phases defined"),
        ResponseSignal(SignalKind.FIRST_ACTION, "draft phase 1"),
    ]
    assert (result.input_tokens, result.output_tokens) == (10, 5)

    messages = await manager.get_messages(session.id)
    assert [(m.role, m.content) for m in messages] == [
        (ChatRole.USER, "Ready to plan"),
        (ChatRole.ASSISTANT, "Let's proceed. [STRUCTURE_SUMMARY: 3 phases defined] [FIRST_ACTION: draft phase 1]"),
    ]


@pytest.mark.asyncio
async def test_payload_has_system_prompt_then_history(
    store: InMemorySessionStore, project_data: ProjectData
) -> None:
    llm = ScriptedLLM("first reply", "second reply")
    manager = _manager(store, llm)
    session = await manager.start_session("p1", SessionMode.EXECUTION_SUPPORT, SessionSubMode.RETURN_BRIEFING)

    await manager.send_message("hello", session.id, project_data)
    await manager.send_message("again", session.id, project_data)

    sent = llm.calls[1]
    assert sent[0].role == LLMRole.SYSTEM
    assert "Current sub-mode: returnBriefing" in sent[0].content
    assert "Sub-mode: Return Briefing" in sent[0].content
    assert "PROJECT: Garden shed" in sent[0].content
    assert [(m.role, m.content) for m in sent[1:]] == [
        (LLMRole.USER, "hello"),
        (LLMRole.ASSISTANT, "first reply"),
        (LLMRole.USER, "again"),
    ]


@pytest.mark.asyncio
async def test_check_in_parses_actions(store: InMemorySessionStore, project_data: ProjectData) -> None:
    llm = ScriptedLLM(f"Nice work.\n[ACTION: COMPLETE_TASK] taskId: {TASK_ID} [/ACTION]\n[SESSION_END]")
    manager = _manager(store, llm)
    session = await manager.start_session("p1", SessionMode.EXECUTION_SUPPORT, SessionSubMode.CHECK_IN)

    result = await manager.send_message("Finished the base", session.id, project_data)

    assert result.natural_language == "Nice work."
    assert [a.params["taskId"] for a in result.actions] == [TASK_ID]
    assert result.signals == [ResponseSignal(SignalKind.SESSION_END)]


@pytest.mark.asyncio
async def test_check_in_sees_patterns_from_stored_sessions(
    store: InMemorySessionStore, project_data: ProjectData
) -> None:
    earlier = Session(project_id="p1", mode=SessionMode.EXECUTION_SUPPORT, status=SessionStatus.COMPLETED)
    earlier.completed_at = utcnow() - timedelta(days=20)
    await store.save(earlier)
    llm = ScriptedLLM("Welcome back.")
    manager = _manager(store, llm)
    session = await manager.start_session("p1", SessionMode.EXECUTION_SUPPORT, SessionSubMode.CHECK_IN)

    await manager.send_message("I'm back", session.id, project_data)

    system_prompt = llm.calls[0][0].content
    assert "Days since last session: 20" in system_prompt
    assert "Note: User is returning after an extended break." in system_prompt
    assert project_data.sessions == []


@pytest.mark.asyncio
async def test_explicit_config_overrides_mode(store: InMemorySessionStore, project_data: ProjectData) -> None:
    llm = ScriptedLLM(f"[ACTION: COMPLETE_TASK] taskId: {TASK_ID} [/ACTION]")
    manager = _manager(store, llm)
    session = await manager.start_session("p1", SessionMode.PLANNING)
    config = ConversationConfig(parse_actions=False, llm_config=LLMRequestConfig(max_tokens=100, temperature=0.1))

    result = await manager.send_message("go", session.id, project_data, config=config)

    assert result.actions == []
    assert llm.configs[0].max_tokens == 100


@pytest.mark.asyncio
async def test_send_requires_active_session(store: InMemorySessionStore, project_data: ProjectData) -> None:
    manager = _manager(store, ScriptedLLM())
    with pytest.raises(SessionNotFoundError):
        await manager.send_message("hi", "missing", project_data)

    session = await manager.start_session("p1", SessionMode.EXPLORATION)
    await manager.pause_session(session.id)
    with pytest.raises(SessionNotActiveError):
        await manager.send_message("hi", session.id, project_data)
    assert await manager.get_messages(session.id) == []


@pytest.mark.asyncio
async def test_model_failure_keeps_user_message(store: InMemorySessionStore, project_data: ProjectData) -> None:
    manager = _manager(store, ScriptedLLM(LLMError("upstream down")))
    session = await manager.start_session("p1", SessionMode.EXPLORATION)

    with pytest.raises(LLMError):
        await manager.send_message("hi", session.id, project_data)

    messages = await manager.get_messages(session.id)
    assert [m.role for m in messages] == [ChatRole.USER]


@pytest.mark.asyncio
async def test_turn_refreshes_last_active(store: InMemorySessionStore, project_data: ProjectData) -> None:
    manager = _manager(store, ScriptedLLM("ok"))
    session = await manager.start_session("p1", SessionMode.EXPLORATION)
    await manager.send_message("hi", session.id, project_data)
    assert (await store.fetch(session.id)).last_active_at >= session.last_active_at


@pytest.mark.asyncio
async def test_paused_session_lookup(store: InMemorySessionStore) -> None:
    manager = _manager(store, ScriptedLLM())
    assert await manager.paused_session("p1") is None
    first = await manager.start_session("p1", SessionMode.EXPLORATION)
    await manager.start_session("p1", SessionMode.DEFINITION)
    paused = await manager.paused_session("p1")
    assert paused.id == first.id


@pytest.mark.asyncio
async def test_complete_and_end_session(store: InMemorySessionStore, project_data: ProjectData) -> None:
    llm = ScriptedLLM("reply", VALID_SUMMARY_JSON, "reply", VALID_SUMMARY_JSON)
    manager = _manager(store, llm)

    done = await manager.start_session("p1", SessionMode.PLANNING)
    await manager.send_message("plan", done.id, project_data)
    summary = await manager.complete_session(done.id)
    assert summary.completion_status == SessionCompletionStatus.COMPLETED
    assert summary.id == derived_id(done.id, "summary")
    assert (await store.fetch(done.id)).status == SessionStatus.COMPLETED

    ended = await manager.start_session("p2", SessionMode.DEFINITION)
    await manager.send_message("define", ended.id, project_data)
    summary = await manager.end_session(ended.id)
    assert summary.completion_status == SessionCompletionStatus.INCOMPLETE_USER_ENDED
    assert (await store.fetch(ended.id)).summary_id == summary.id
