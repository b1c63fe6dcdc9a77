"""Structured session summaries.

The model is asked for a three-section JSON object. Parsing happens in two
separate stages: ``parse_summary_payload`` validates the reply strictly, and
``build_fallback_summary`` derives a degraded summary from the transcript
when that fails. A degraded summary is never an error.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import NoMessagesError, SessionNotFoundError
from ..llm import LLMClient, LLMMessage, LLMRequestConfig, LLMRole
from ..models import (
    ChatRole,
    ContentEstablished,
    ContentObserved,
    Session,
    SessionCompletionStatus,
    SessionMessage,
    SessionSummary,
    WhatComesNext,
    utcnow,
)
from ..services.session_store import SessionStore
from ..settings import get_settings

logger = logging.getLogger(__name__)

FALLBACK_PROGRESS_CHARS = 300
# Shorter closing replies (acknowledgements, sign-offs) are not recorded as progress.
FALLBACK_PROGRESS_MIN_CHARS = 20
FALLBACK_FACT_CHARS = 200
FALLBACK_FACT_COUNT = 3


class _EstablishedPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    decisions: List[str]
    facts_learned: List[str] = Field(alias="factsLearned")
    progress_made: List[str] = Field(alias="progressMade")


class _ObservedPayload(BaseModel):
    patterns: List[str]
    concerns: List[str]
    strengths: List[str]


class _NextPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    next_actions: List[str] = Field(alias="nextActions")
    open_questions: List[str] = Field(alias="openQuestions")
    suggested_mode: Optional[str] = Field(default=None, alias="suggestedMode")


class SummaryPayload(BaseModel):
    """The JSON shape the summarisation prompt asks the model for."""

    model_config = ConfigDict(populate_by_name=True)

    content_established: _EstablishedPayload = Field(alias="contentEstablished")
    content_observed: _ObservedPayload = Field(alias="contentObserved")
    what_comes_next: _NextPayload = Field(alias="whatComesNext")


def extract_json(content: str) -> str:
    """Strip markdown code fences, or cut to the outermost ``{...}`` span."""
    trimmed = content.strip()

    if trimmed.startswith("```"):
        lines = trimmed.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        return "\n".join(lines).strip()

    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start != -1 and end > start:
        return trimmed[start : end + 1]

    return trimmed


def parse_summary_payload(content: str) -> SummaryPayload | None:
    """Strict stage: return the validated payload, or None if the reply does not match."""
    try:
        return SummaryPayload.model_validate_json(extract_json(content))
    except ValidationError as e:
        logger.debug("Summary payload rejected: %s", e.errors()[:3])
        return None


def render_transcript(messages: List[SessionMessage]) -> str:
    lines = []
    for message in messages:
        speaker = "User" if message.role == ChatRole.USER else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return "\n\n".join(lines)


def build_summary_prompt(session: Session, messages: List[SessionMessage]) -> str:
    label = session.mode.value
    if session.sub_mode is not None:
        label += f" session ({session.sub_mode.value})"
    else:
        label += " session"
    return f"Summarise this {label}:\n\n{render_transcript(messages)}"


def build_fallback_summary(
    session: Session,
    messages: List[SessionMessage],
    completion_status: SessionCompletionStatus,
) -> SessionSummary:
    """Heuristic stage: a deterministic digest built from the transcript alone."""
    assistant_messages = [m.content for m in messages if m.role == ChatRole.ASSISTANT]
    user_messages = [m.content for m in messages if m.role == ChatRole.USER]

    last_reply = assistant_messages[-1] if assistant_messages else ""
    progress = [last_reply[:FALLBACK_PROGRESS_CHARS]] if len(last_reply) > FALLBACK_PROGRESS_MIN_CHARS else []
    facts = [m[:FALLBACK_FACT_CHARS] for m in user_messages[:FALLBACK_FACT_COUNT]]

    return SessionSummary(
        session_id=session.id,
        mode=session.mode,
        sub_mode=session.sub_mode,
        completion_status=completion_status,
        content_established=ContentEstablished(facts_learned=facts, progress_made=progress),
    )


def _summary_from_payload(
    payload: SummaryPayload,
    session: Session,
    completion_status: SessionCompletionStatus,
) -> SessionSummary:
    established = payload.content_established
    observed = payload.content_observed
    coming = payload.what_comes_next
    return SessionSummary(
        session_id=session.id,
        mode=session.mode,
        sub_mode=session.sub_mode,
        completion_status=completion_status,
        content_established=ContentEstablished(
            decisions=list(established.decisions),
            facts_learned=list(established.facts_learned),
            progress_made=list(established.progress_made),
        ),
        content_observed=ContentObserved(
            patterns=list(observed.patterns),
            concerns=list(observed.concerns),
            strengths=list(observed.strengths),
        ),
        what_comes_next=WhatComesNext(
            next_actions=list(coming.next_actions),
            open_questions=list(coming.open_questions),
            suggested_mode=coming.suggested_mode,
        ),
    )


class SummaryGenerationService:
    """Generates, persists and links the summary of a finished session."""

    def __init__(self, llm_client: LLMClient, store: SessionStore) -> None:
        self._llm = llm_client
        self._store = store

    async def generate_summary(
        self,
        session_id: str,
        completion_status: SessionCompletionStatus,
    ) -> SessionSummary:
        """Summarise a session's full transcript and link the result to the session.

        Raises:
            SessionNotFoundError: the session does not exist.
            NoMessagesError: the transcript is empty.
            LLMError: the model call failed.
        """
        session = await self._store.fetch(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        messages = await self._store.fetch_messages(session_id)
        if not messages:
            raise NoMessagesError(session_id)

        settings = get_settings()
        response = await self._llm.send(
            [
                LLMMessage(LLMRole.SYSTEM, settings.summary_system_prompt),
                LLMMessage(LLMRole.USER, build_summary_prompt(session, messages)),
            ],
            LLMRequestConfig(
                max_tokens=settings.summary_max_tokens,
                temperature=settings.summary_temperature,
                model=settings.model,
            ),
        )

        payload = parse_summary_payload(response.content)
        if payload is not None:
            summary = _summary_from_payload(payload, session, completion_status)
        else:
            logger.warning(
                "Failed to parse summary JSON for session %s, building fallback summary",
                session_id,
            )
            summary = build_fallback_summary(session, messages, completion_status)

        summary.started_at = messages[0].timestamp if messages else session.created_at
        summary.ended_at = messages[-1].timestamp if messages else utcnow()
        summary.duration = int((summary.ended_at - summary.started_at).total_seconds())
        summary.message_count = len(messages)
        summary.input_tokens = response.input_tokens
        summary.output_tokens = response.output_tokens

        await self._store.save_summary(summary)

        updated = await self._store.fetch(session_id)
        if updated is not None:
            updated.summary_id = summary.id
            await self._store.save(updated)

        logger.info("Generated summary %s for session %s", summary.id, session_id)
        return summary
