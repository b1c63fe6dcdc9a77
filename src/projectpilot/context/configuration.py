from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from ..models import SessionMode, SessionSubMode


class ComponentKind(str, Enum):
    PROJECT_OVERVIEW = "projectOverview"
    DOCUMENTS = "documents"
    SESSION_SUMMARIES = "sessionSummaries"
    PROJECT_STRUCTURE = "projectStructure"
    RELEVANT_KNOWLEDGE = "relevantKnowledge"
    PORTFOLIO_SUMMARY = "portfolioSummary"
    FREQUENTLY_DEFERRED = "frequentlyDeferred"
    PATTERNS_AND_OBSERVATIONS = "patternsAndObservations"


@dataclass(frozen=True)
class ContextComponent:
    kind: ComponentKind
    # Lower number is kept longer when the budget is exceeded.
    priority: int


@dataclass(frozen=True)
class ContextConfiguration:
    mode: SessionMode
    sub_mode: SessionSubMode | None
    components: Tuple[ContextComponent, ...]
    token_budget: int
    full_summary_count: int = 2
    condensed_summary_count: int = 3


def _components(*pairs: Tuple[ComponentKind, int]) -> Tuple[ContextComponent, ...]:
    return tuple(ContextComponent(kind, priority) for kind, priority in pairs)


def context_configuration(
    mode: SessionMode, sub_mode: SessionSubMode | None = None
) -> ContextConfiguration:
    """Which project-context components a mode sees, and how many tokens they may use."""
    if mode == SessionMode.EXPLORATION:
        return ContextConfiguration(
            mode=mode,
            sub_mode=None,
            components=_components(
                (ComponentKind.PROJECT_OVERVIEW, 1),
                (ComponentKind.SESSION_SUMMARIES, 2),
                (ComponentKind.DOCUMENTS, 3),
                (ComponentKind.RELEVANT_KNOWLEDGE, 3),
                (ComponentKind.PROJECT_STRUCTURE, 4),
            ),
            token_budget=2000,
            full_summary_count=1,
            condensed_summary_count=2,
        )
    if mode == SessionMode.DEFINITION:
        return ContextConfiguration(
            mode=mode,
            sub_mode=None,
            components=_components(
                (ComponentKind.PROJECT_OVERVIEW, 1),
                (ComponentKind.SESSION_SUMMARIES, 2),
                (ComponentKind.DOCUMENTS, 2),
                (ComponentKind.RELEVANT_KNOWLEDGE, 3),
            ),
            token_budget=3000,
            full_summary_count=2,
            condensed_summary_count=2,
        )
    if mode == SessionMode.PLANNING:
        return ContextConfiguration(
            mode=mode,
            sub_mode=None,
            components=_components(
                (ComponentKind.PROJECT_OVERVIEW, 1),
                (ComponentKind.DOCUMENTS, 1),
                (ComponentKind.SESSION_SUMMARIES, 2),
                (ComponentKind.PROJECT_STRUCTURE, 2),
                (ComponentKind.RELEVANT_KNOWLEDGE, 3),
            ),
            token_budget=4000,
            full_summary_count=2,
            condensed_summary_count=3,
        )

    if sub_mode == SessionSubMode.PROJECT_REVIEW:
        return ContextConfiguration(
            mode=mode,
            sub_mode=sub_mode,
            components=_components(
                (ComponentKind.PORTFOLIO_SUMMARY, 1),
                (ComponentKind.PATTERNS_AND_OBSERVATIONS, 2),
                (ComponentKind.SESSION_SUMMARIES, 2),
            ),
            token_budget=3000,
            full_summary_count=1,
            condensed_summary_count=3,
        )
    if sub_mode == SessionSubMode.RETROSPECTIVE:
        return ContextConfiguration(
            mode=mode,
            sub_mode=sub_mode,
            components=_components(
                (ComponentKind.PROJECT_OVERVIEW, 1),
                (ComponentKind.SESSION_SUMMARIES, 1),
                (ComponentKind.DOCUMENTS, 2),
                (ComponentKind.PROJECT_STRUCTURE, 2),
                (ComponentKind.PATTERNS_AND_OBSERVATIONS, 2),
            ),
            token_budget=5000,
            full_summary_count=3,
            condensed_summary_count=5,
        )
    # check-in, return briefing and plain execution support
    return ContextConfiguration(
        mode=mode,
        sub_mode=sub_mode,
        components=_components(
            (ComponentKind.PROJECT_OVERVIEW, 1),
            (ComponentKind.SESSION_SUMMARIES, 1),
            (ComponentKind.PROJECT_STRUCTURE, 2),
            (ComponentKind.FREQUENTLY_DEFERRED, 2),
            (ComponentKind.PATTERNS_AND_OBSERVATIONS, 2),
            (ComponentKind.DOCUMENTS, 3),
            (ComponentKind.RELEVANT_KNOWLEDGE, 3),
        ),
        token_budget=5000,
        full_summary_count=3,
        condensed_summary_count=3,
    )
