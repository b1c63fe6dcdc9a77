import sys
from pathlib import Path
from typing import List

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from projectpilot.errors import LLMError  # noqa: E402
from projectpilot.llm import LLMMessage, LLMRequestConfig, LLMResponse  # noqa: E402
from projectpilot.services.session_store import InMemorySessionStore  # noqa: E402
from projectpilot.session.lifecycle import SessionLifecycleManager  # noqa: E402
from projectpilot.session.summary import SummaryGenerationService  # noqa: E402


class ScriptedLLM:
    """LLMClient returning queued replies in order; an Exception in the queue is raised instead."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: List[List[LLMMessage]] = []
        self.configs: List[LLMRequestConfig] = []

    async def send(self, messages: List[LLMMessage], config: LLMRequestConfig) -> LLMResponse:
        self.calls.append(list(messages))
        self.configs.append(config)
        if not self.replies:
            raise LLMError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=reply, input_tokens=10, output_tokens=5)


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def lifecycle(store: InMemorySessionStore) -> SessionLifecycleManager:
    return SessionLifecycleManager(store)


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def summary_service(llm: ScriptedLLM, store: InMemorySessionStore) -> SummaryGenerationService:
    return SummaryGenerationService(llm, store)


VALID_SUMMARY_JSON = """{
  "contentEstablished": {"decisions": ["Use SQLite"], "factsLearned": ["Solo project"], "progressMade": ["Phase 1 agreed"]},
  "contentObserved": {"patterns": [], "concerns": ["Scope creep"], "strengths": ["Clear goal"]},
  "whatComesNext": {"nextActions": ["Draft schema"], "openQuestions": [], "suggestedMode": "planning"}
}"""
