"""Project context (the third prompt layer) and the final message payload.

Token counts are estimates at 0.3 tokens per character. Layer sections are
dropped lowest-priority first when over the mode's budget, and conversation
history is dropped oldest first when the whole request is over budget.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from ..llm import LLMMessage, LLMRole
from ..models import Deliverable, DeliverableStatus, Project, Session, SessionMode, SessionSubMode, SessionSummary
from ..prompts import LAYER_SEPARATOR
from .configuration import ComponentKind, ContextConfiguration, context_configuration
from .patterns import DeferredTask, compute_patterns, format_frequently_deferred, format_patterns

logger = logging.getLogger(__name__)

TOKENS_PER_CHAR = 0.3
MAX_DOCUMENT_CHARS = 2000
TRUNCATION_NOTICE = "[Earlier conversation history was truncated to fit within token budget]"


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) * TOKENS_PER_CHAR)


@dataclass
class ProjectData:
    """Everything the assembler may draw on for one project.

    ``structure_outline`` is a pre-rendered phase/milestone/task outline and
    ``relevant_context`` is retrieved knowledge-base text; both are used as-is.
    ``sessions`` is the project's session history, used for cross-session
    patterns.
    """

    project: Project
    deliverables: List[Deliverable] = field(default_factory=list)
    session_summaries: List[SessionSummary] = field(default_factory=list)
    structure_outline: Optional[str] = None
    relevant_context: Optional[str] = None
    sessions: List[Session] = field(default_factory=list)
    frequently_deferred: List[DeferredTask] = field(default_factory=list)


@dataclass
class PortfolioProject:
    project: Project
    latest_summary: Optional[SessionSummary] = None
    session_count: int = 0
    days_since_last_session: Optional[int] = None


@dataclass
class PortfolioData:
    projects: List[PortfolioProject] = field(default_factory=list)


@dataclass
class ContextPayload:
    system_prompt: str
    messages: List[LLMMessage]
    estimated_tokens: int
    history_truncated: bool = False


def _mode_label(summary: SessionSummary) -> str:
    if summary.sub_mode is not None:
        return f"{summary.mode.value}/{summary.sub_mode.value}"
    return summary.mode.value


def format_project_overview(project: Project) -> str:
    lines = [f"PROJECT: {project.name}", f"State: {project.lifecycle_state}"]
    if project.definition_of_done:
        lines.append(f"Definition of Done: {project.definition_of_done}")
    if project.notes:
        lines.append(f"Notes: {project.notes}")
    return "\n".join(lines)


def format_documents(deliverables: List[Deliverable]) -> str | None:
    finished = [
        d for d in deliverables if d.status in (DeliverableStatus.COMPLETED, DeliverableStatus.REVISED)
    ]
    if not finished:
        return None
    lines = ["DOCUMENTS:"]
    for doc in finished:
        lines.append("")
        lines.append(f"[{doc.type.value}: {doc.title}]")
        if len(doc.content) > MAX_DOCUMENT_CHARS:
            lines.append(doc.content[:MAX_DOCUMENT_CHARS])
            lines.append(f"[... truncated, {len(doc.content)} chars total]")
        else:
            lines.append(doc.content)
    return "\n".join(lines)


def _format_full_summary(summary: SessionSummary) -> str:
    lines = [
        f"Session ({_mode_label(summary)}) {summary.started_at:%Y-%m-%d} to {summary.ended_at:%Y-%m-%d}:"
    ]
    sections = [
        ("Decisions", summary.content_established.decisions),
        ("Facts learned", summary.content_established.facts_learned),
        ("Progress", summary.content_established.progress_made),
        ("Patterns", summary.content_observed.patterns),
        ("Concerns", summary.content_observed.concerns),
        ("Next actions", summary.what_comes_next.next_actions),
        ("Open questions", summary.what_comes_next.open_questions),
    ]
    for label, items in sections:
        if items:
            lines.append(f"  {label}: " + "; ".join(items))
    return "\n".join(lines)


def _format_condensed_summary(summary: SessionSummary) -> str:
    parts = []
    if summary.content_established.decisions:
        parts.append("decided: " + ", ".join(summary.content_established.decisions))
    if summary.content_observed.patterns:
        parts.append("patterns: " + ", ".join(summary.content_observed.patterns))
    if summary.what_comes_next.next_actions:
        parts.append("next: " + ", ".join(summary.what_comes_next.next_actions))
    detail = "; ".join(parts) if parts else "no notable content"
    return f"  - {summary.started_at:%Y-%m-%d} ({_mode_label(summary)}): {detail}"


def format_session_summaries(
    summaries: List[SessionSummary], full_count: int, condensed_count: int
) -> str | None:
    """Most recent ``full_count`` summaries in full, the next ``condensed_count`` on one line each."""
    if not summaries:
        return None
    ordered = sorted(summaries, key=lambda s: s.ended_at, reverse=True)
    lines = ["SESSION HISTORY:"]
    for summary in ordered[:full_count]:
        lines.append("")
        lines.append(_format_full_summary(summary))
    condensed = ordered[full_count : full_count + condensed_count]
    if condensed:
        lines.append("")
        lines.append("Earlier sessions (condensed):")
        lines.extend(_format_condensed_summary(s) for s in condensed)
    return "\n".join(lines)


def format_portfolio(portfolio: PortfolioData | None) -> str | None:
    if portfolio is None or not portfolio.projects:
        return None
    lines = ["PORTFOLIO OVERVIEW:"]
    for entry in portfolio.projects:
        line = f"- {entry.project.name} ({entry.project.lifecycle_state}), {entry.session_count} sessions"
        if entry.days_since_last_session is not None:
            line += f", last active {entry.days_since_last_session}d ago"
        lines.append(line)
        summary = entry.latest_summary
        if summary is not None:
            if summary.what_comes_next.next_actions:
                lines.append("  Next: " + summary.what_comes_next.next_actions[0])
            if summary.content_observed.concerns:
                lines.append("  Concern: " + summary.content_observed.concerns[0])
    return "\n".join(lines)


class ContextAssembler:
    """Renders mode-specific project context and builds the model payload."""

    def __init__(self, total_budget: int = 20000, response_reserve: int = 2500) -> None:
        self.total_budget = total_budget
        self.response_reserve = response_reserve

    def _render(
        self,
        kind: ComponentKind,
        config: ContextConfiguration,
        project_data: ProjectData,
        portfolio_data: PortfolioData | None,
    ) -> str | None:
        if kind == ComponentKind.PROJECT_OVERVIEW:
            return format_project_overview(project_data.project)
        if kind == ComponentKind.DOCUMENTS:
            return format_documents(project_data.deliverables)
        if kind == ComponentKind.SESSION_SUMMARIES:
            return format_session_summaries(
                project_data.session_summaries, config.full_summary_count, config.condensed_summary_count
            )
        if kind == ComponentKind.PROJECT_STRUCTURE:
            if project_data.structure_outline:
                return "CURRENT STRUCTURE:\n" + project_data.structure_outline
            return None
        if kind == ComponentKind.RELEVANT_KNOWLEDGE:
            if project_data.relevant_context:
                return "RELEVANT KNOWLEDGE:\n" + project_data.relevant_context
            return None
        if kind == ComponentKind.FREQUENTLY_DEFERRED:
            return format_frequently_deferred(project_data.frequently_deferred)
        if kind == ComponentKind.PATTERNS_AND_OBSERVATIONS:
            return format_patterns(compute_patterns(project_data.sessions, project_data.frequently_deferred))
        return format_portfolio(portfolio_data)

    def assemble_layer3(
        self,
        mode: SessionMode,
        sub_mode: SessionSubMode | None,
        project_data: ProjectData,
        portfolio_data: PortfolioData | None = None,
    ) -> str:
        config = context_configuration(mode, sub_mode)
        sections = []
        for component in config.components:
            content = self._render(component.kind, config, project_data, portfolio_data)
            if content:
                sections.append((component.priority, content))

        # stable: equal priorities keep configuration order
        sections.sort(key=lambda s: s[0])

        total = sum(estimate_tokens(content) for _, content in sections)
        while sections and total > config.token_budget:
            worst = max(range(len(sections)), key=lambda i: sections[i][0])
            total -= estimate_tokens(sections[worst][1])
            dropped = sections.pop(worst)
            logger.debug("Dropped context section with priority %s to fit budget", dropped[0])

        return "\n\n".join(content for _, content in sections)

    def assemble_payload(
        self,
        system_prompt: str,
        mode: SessionMode,
        sub_mode: SessionSubMode | None,
        project_data: ProjectData,
        portfolio_data: PortfolioData | None = None,
        history: List[LLMMessage] | None = None,
    ) -> ContextPayload:
        """Build the ordered message list for one model call.

        Args:
            system_prompt: Foundation and mode layers, already composed.
            mode: Session mode, selects the context components.
            sub_mode: Execution support sub-mode, if any.
            project_data: Project records to render as context.
            portfolio_data: Cross-project data for project reviews.
            history: Full conversation so far, oldest first.

        Returns:
            ContextPayload: one system message, an optional truncation notice,
            then the most recent history that fits the budget.
        """
        history = history or []
        layer3 = self.assemble_layer3(mode, sub_mode, project_data, portfolio_data)
        full_prompt = system_prompt + LAYER_SEPARATOR + layer3 if layer3 else system_prompt

        remaining = self.total_budget - estimate_tokens(full_prompt) - self.response_reserve
        kept: List[LLMMessage] = []
        for message in reversed(history):
            cost = estimate_tokens(message.content)
            if remaining - cost < 0:
                break
            remaining -= cost
            kept.append(message)
        kept.reverse()

        messages = [LLMMessage(LLMRole.SYSTEM, full_prompt)]
        truncated = len(kept) < len(history)
        if truncated:
            logger.info("Truncated %d history messages to fit token budget", len(history) - len(kept))
            messages.append(LLMMessage(LLMRole.SYSTEM, TRUNCATION_NOTICE))
        messages.extend(kept)

        return ContextPayload(
            system_prompt=full_prompt,
            messages=messages,
            estimated_tokens=sum(estimate_tokens(m.content) for m in messages),
            history_truncated=truncated,
        )
