from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..models import Session, SessionStatus, utcnow

RETURN_AFTER_DAYS = 14
FREQUENT_DEFERRAL_THRESHOLD = 3


class EngagementTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


@dataclass(frozen=True)
class DeferredTask:
    """A task the user keeps pushing back, as reported by the entity store."""

    name: str
    times_deferred: int


@dataclass(frozen=True)
class CrossSessionPatterns:
    days_since_last_session: Optional[int] = None
    average_session_gap: Optional[float] = None
    completed_session_count: int = 0
    frequently_deferred_task_names: List[str] = field(default_factory=list)
    deferral_count: int = 0
    engagement_trend: Optional[EngagementTrend] = None
    is_return: bool = False


def _ended_at(session: Session) -> datetime:
    return session.completed_at or session.last_active_at


def _average_gap_days(sessions: List[Session]) -> float | None:
    if len(sessions) < 2:
        return None
    total = sum(
        (_ended_at(curr) - _ended_at(prev)).total_seconds() / 86400
        for prev, curr in zip(sessions, sessions[1:])
    )
    return total / (len(sessions) - 1)


def compute_patterns(
    sessions: List[Session],
    deferred_tasks: List[DeferredTask] | None = None,
    now: datetime | None = None,
) -> CrossSessionPatterns:
    """Observations over a project's finished sessions and repeatedly deferred tasks.

    The engagement trend compares the average gap of the newer half of the
    sessions with the older half: under 0.7x is increasing, over 1.4x is
    decreasing. It needs at least four finished sessions.
    """
    now = now or utcnow()
    deferred_tasks = deferred_tasks or []
    finished = sorted(
        (s for s in sessions if s.status in (SessionStatus.COMPLETED, SessionStatus.AUTO_SUMMARISED)),
        key=_ended_at,
    )

    days_since = (now - _ended_at(finished[-1])).days if finished else None

    trend = None
    if len(finished) >= 4:
        mid = len(finished) // 2
        older = _average_gap_days(finished[:mid])
        newer = _average_gap_days(finished[mid:])
        if older and newer is not None:
            ratio = newer / older
            if ratio < 0.7:
                trend = EngagementTrend.INCREASING
            elif ratio > 1.4:
                trend = EngagementTrend.DECREASING
            else:
                trend = EngagementTrend.STABLE

    names = list(dict.fromkeys(t.name for t in deferred_tasks))
    return CrossSessionPatterns(
        days_since_last_session=days_since,
        average_session_gap=_average_gap_days(finished),
        completed_session_count=len(finished),
        frequently_deferred_task_names=names,
        deferral_count=sum(1 for t in deferred_tasks if t.times_deferred >= FREQUENT_DEFERRAL_THRESHOLD),
        engagement_trend=trend,
        is_return=days_since is not None and days_since >= RETURN_AFTER_DAYS,
    )


def format_patterns(patterns: CrossSessionPatterns) -> str | None:
    lines = []
    if patterns.days_since_last_session is not None:
        lines.append(f"Days since last session: {patterns.days_since_last_session}")
    if patterns.average_session_gap is not None:
        lines.append(f"Average session gap: {patterns.average_session_gap:.1f} days")
    if patterns.completed_session_count > 0:
        lines.append(f"Total completed sessions: {patterns.completed_session_count}")
    if patterns.engagement_trend is not None:
        lines.append(f"Engagement trend: {patterns.engagement_trend.value}")
    if patterns.is_return:
        lines.append("Note: User is returning after an extended break.")
    if patterns.deferral_count > 0:
        lines.append(f"Tasks deferred {FREQUENT_DEFERRAL_THRESHOLD}+ times: {patterns.deferral_count}")
    if not lines:
        return None
    return "PATTERNS AND OBSERVATIONS:\n" + "\n".join(lines)


def format_frequently_deferred(tasks: List[DeferredTask]) -> str | None:
    if not tasks:
        return None
    lines = ["FREQUENTLY DEFERRED:"]
    lines.extend(f"- {t.name} (deferred {t.times_deferred}x)" for t in tasks)
    return "\n".join(lines)
