"""Pure transition rules for session statuses.

Nothing in this module touches storage; the lifecycle manager re-validates
every mutation here at the moment it is applied.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet

from ..errors import InvalidTransitionError
from ..models import Session, SessionStatus

_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.PAUSED, SessionStatus.COMPLETED}),
    SessionStatus.PAUSED: frozenset(
        {
            SessionStatus.ACTIVE,
            SessionStatus.COMPLETED,
            SessionStatus.AUTO_SUMMARISED,
            SessionStatus.PENDING_AUTO_SUMMARY,
        }
    ),
    SessionStatus.PENDING_AUTO_SUMMARY: frozenset({SessionStatus.AUTO_SUMMARISED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.AUTO_SUMMARISED: frozenset(),
}

DEFAULT_AUTO_SUMMARY_TIMEOUT = timedelta(hours=24)


def valid_transitions(status: SessionStatus) -> FrozenSet[SessionStatus]:
    """Return every status reachable from ``status`` in one step."""
    return _TRANSITIONS[status]


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(current: SessionStatus, target: SessionStatus) -> SessionStatus:
    """Return ``target`` if it is reachable from ``current``.

    Raises:
        InvalidTransitionError: when no edge leads from ``current`` to ``target``.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    return target


def is_terminal(status: SessionStatus) -> bool:
    return not _TRANSITIONS[status]


def occupies_active_slot(status: SessionStatus) -> bool:
    """Whether the status counts toward the one-session-per-project limit."""
    return status in (SessionStatus.ACTIVE, SessionStatus.PAUSED)


def is_eligible_for_auto_summarisation(
    session: Session,
    now: datetime,
    timeout: timedelta = DEFAULT_AUTO_SUMMARY_TIMEOUT,
) -> bool:
    if session.status != SessionStatus.PAUSED:
        return False
    return now - session.last_active_at >= timeout
