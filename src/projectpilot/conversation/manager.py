import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from ..context import ContextAssembler, PortfolioData, ProjectData
from ..errors import SessionNotActiveError, SessionNotFoundError
from ..llm import LLMClient, LLMMessage, LLMRequestConfig, LLMRole
from ..models import (
    ChatRole,
    DeliverableStatus,
    Session,
    SessionCompletionStatus,
    SessionMessage,
    SessionMode,
    SessionStatus,
    SessionSubMode,
    SessionSummary,
)
from ..modes import mode_configuration
from ..parsing.actions import AIAction
from ..parsing.signals import ResponseSignal, ResponseSignalParser
from ..prompts import PromptComposer, catalogue_summary, deliverable_template
from ..services.session_store import SessionStore
from ..session.lifecycle import SessionLifecycleManager
from ..session.summary import SummaryGenerationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationConfig:
    parse_actions: bool = False
    llm_config: LLMRequestConfig = field(default_factory=LLMRequestConfig)

    @classmethod
    def for_mode(cls, mode: SessionMode, sub_mode: SessionSubMode | None = None) -> "ConversationConfig":
        return cls(
            parse_actions=mode_configuration(mode, sub_mode).parse_actions,
            llm_config=LLMRequestConfig.from_settings(),
        )


@dataclass
class ConversationResult:
    natural_language: str
    actions: List[AIAction] = field(default_factory=list)
    signals: List[ResponseSignal] = field(default_factory=list)
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


def _to_llm_message(message: SessionMessage) -> LLMMessage:
    role = LLMRole.USER if message.role == ChatRole.USER else LLMRole.ASSISTANT
    return LLMMessage(role, message.content)


def prompt_variables(
    mode: SessionMode, sub_mode: SessionSubMode | None, project_data: ProjectData
) -> Dict[str, str]:
    """Template variables injected into the mode prompt."""
    variables: Dict[str, str] = {}

    if mode == SessionMode.EXPLORATION:
        variables["deliverable_catalogue"] = catalogue_summary()

    elif mode == SessionMode.DEFINITION:
        deliverables = project_data.deliverables
        finished = [
            d.type.value
            for d in deliverables
            if d.status in (DeliverableStatus.COMPLETED, DeliverableStatus.REVISED)
        ]
        open_ = [
            d.type.value
            for d in deliverables
            if d.status in (DeliverableStatus.PENDING, DeliverableStatus.IN_PROGRESS)
        ]
        all_types = finished + open_
        variables["deliverable_list"] = ", ".join(all_types) if all_types else "None specified"

        current = next((d for d in deliverables if d.status == DeliverableStatus.IN_PROGRESS), None)
        if current is None:
            current = next((d for d in deliverables if d.status == DeliverableStatus.PENDING), None)
        if current is not None:
            template = deliverable_template(current.type)
            variables["current_deliverable"] = current.type.value
            variables["deliverable_template_info_requirements"] = template.formatted_requirements()
            variables["deliverable_template_structure"] = template.formatted_structure()
        else:
            variables["current_deliverable"] = "None"
            variables["deliverable_template_info_requirements"] = "N/A"
            variables["deliverable_template_structure"] = "N/A"

    elif mode == SessionMode.EXECUTION_SUPPORT:
        variables["sub_mode"] = sub_mode.value if sub_mode is not None else "general"

    return variables


class ConversationManager:
    """Runs conversation turns and session start, pause, completion and summaries."""

    def __init__(
        self,
        llm_client: LLMClient,
        store: SessionStore,
        lifecycle: SessionLifecycleManager,
        summary_service: SummaryGenerationService,
        prompt_composer: PromptComposer | None = None,
        context_assembler: ContextAssembler | None = None,
        signal_parser: ResponseSignalParser | None = None,
    ) -> None:
        self._llm = llm_client
        self._store = store
        self._lifecycle = lifecycle
        self._summaries = summary_service
        self._composer = prompt_composer or PromptComposer()
        self._assembler = context_assembler or ContextAssembler()
        self._parser = signal_parser or ResponseSignalParser()

    async def start_session(
        self, project_id: str, mode: SessionMode, sub_mode: SessionSubMode | None = None
    ) -> Session:
        return await self._lifecycle.start_session(project_id, mode, sub_mode)

    async def resume_session(self, session_id: str) -> Session:
        return await self._lifecycle.resume_session(session_id)

    async def paused_session(self, project_id: str) -> Session | None:
        occupants = await self._store.fetch_active_for_project(project_id)
        return next((s for s in occupants if s.status == SessionStatus.PAUSED), None)

    async def send_message(
        self,
        content: str,
        session_id: str,
        project_data: ProjectData,
        portfolio_data: PortfolioData | None = None,
        config: ConversationConfig | None = None,
        raw_voice_transcript: str | None = None,
    ) -> ConversationResult:
        """Run one user turn against an active session.

        Args:
            content: User message text.
            session_id: Target session; must be active.
            project_data: Project records used to build context.
            portfolio_data: Cross-project data for project reviews.
            config: Overrides the mode's default parsing and model parameters.
            raw_voice_transcript: Unedited transcript when the message was dictated.

        Returns:
            ConversationResult: Reply text without signals or actions, plus both and token usage.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionNotActiveError: Session is paused or terminal.
            LLMError: Model call failed. The user message stays recorded.
        """
        session = await self._store.fetch(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(session_id, session.status.value)

        effective = config or ConversationConfig.for_mode(session.mode, session.sub_mode)

        await self._lifecycle.add_message(
            session_id, ChatRole.USER, content, raw_voice_transcript=raw_voice_transcript
        )

        system_prompt = self._composer.compose(
            session.mode,
            session.sub_mode,
            prompt_variables(session.mode, session.sub_mode, project_data),
        )
        if not project_data.sessions:
            project_data = replace(
                project_data, sessions=await self._store.fetch_sessions_for_project(session.project_id)
            )
        history = [_to_llm_message(m) for m in await self._store.fetch_messages(session_id)]
        payload = self._assembler.assemble_payload(
            system_prompt,
            session.mode,
            session.sub_mode,
            project_data,
            portfolio_data,
            history,
        )

        response = await self._llm.send(payload.messages, effective.llm_config)
        parsed = self._parser.parse(response.content, parse_actions=effective.parse_actions)

        await self._lifecycle.add_message(session_id, ChatRole.ASSISTANT, response.content)
        await self._lifecycle.touch_session(session_id)

        logger.debug(
            "Session %s turn: %d signal(s), %d action(s)",
            session_id,
            len(parsed.signals),
            len(parsed.actions),
        )
        return ConversationResult(
            natural_language=parsed.natural_language,
            actions=parsed.actions,
            signals=parsed.signals,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )

    async def complete_session(
        self,
        session_id: str,
        completion_status: SessionCompletionStatus = SessionCompletionStatus.COMPLETED,
    ) -> SessionSummary:
        await self._lifecycle.transition_session(session_id, SessionStatus.COMPLETED)
        return await self._summaries.generate_summary(session_id, completion_status)

    async def pause_session(self, session_id: str) -> Session:
        return await self._lifecycle.transition_session(session_id, SessionStatus.PAUSED)

    async def end_session(self, session_id: str) -> SessionSummary:
        """End a session early at the user's request and summarise it."""
        await self._lifecycle.transition_session(session_id, SessionStatus.COMPLETED)
        return await self._summaries.generate_summary(
            session_id, SessionCompletionStatus.INCOMPLETE_USER_ENDED
        )

    async def get_messages(self, session_id: str) -> List[SessionMessage]:
        return await self._store.fetch_messages(session_id)
