from dataclasses import dataclass
from typing import FrozenSet

from .models import SessionMode, SessionSubMode
from .parsing.signals import SignalKind


@dataclass(frozen=True)
class ModeConfiguration:
    """What the pipeline does with model replies in a given mode."""

    mode: SessionMode
    sub_mode: SessionSubMode | None
    parse_actions: bool
    expected_signals: FrozenSet[SignalKind]
    supports_artifacts: bool


_ACTION_SUB_MODES = frozenset({SessionSubMode.CHECK_IN, SessionSubMode.PROJECT_REVIEW})


def mode_configuration(mode: SessionMode, sub_mode: SessionSubMode | None = None) -> ModeConfiguration:
    """Build the configuration for ``mode`` / ``sub_mode``.

    Computed on every call. Only execution support looks at ``sub_mode``;
    without one it parses actions, as a check-in would.
    """
    if mode == SessionMode.EXPLORATION:
        return ModeConfiguration(
            mode=mode,
            sub_mode=sub_mode,
            parse_actions=False,
            expected_signals=frozenset(
                {
                    SignalKind.MODE_COMPLETE,
                    SignalKind.PROCESS_RECOMMENDATION,
                    SignalKind.PLANNING_DEPTH,
                    SignalKind.PROJECT_SUMMARY,
                }
            ),
            supports_artifacts=False,
        )
    if mode == SessionMode.DEFINITION:
        return ModeConfiguration(
            mode=mode,
            sub_mode=sub_mode,
            parse_actions=False,
            expected_signals=frozenset(
                {
                    SignalKind.MODE_COMPLETE,
                    SignalKind.DELIVERABLES_PRODUCED,
                    SignalKind.DELIVERABLES_DEFERRED,
                }
            ),
            supports_artifacts=True,
        )
    if mode == SessionMode.PLANNING:
        return ModeConfiguration(
            mode=mode,
            sub_mode=sub_mode,
            parse_actions=True,
            expected_signals=frozenset(
                {
                    SignalKind.MODE_COMPLETE,
                    SignalKind.STRUCTURE_SUMMARY,
                    SignalKind.FIRST_ACTION,
                }
            ),
            supports_artifacts=True,
        )

    parse_actions = sub_mode is None or sub_mode in _ACTION_SUB_MODES
    return ModeConfiguration(
        mode=mode,
        sub_mode=sub_mode,
        parse_actions=parse_actions,
        expected_signals=frozenset({SignalKind.SESSION_END}),
        supports_artifacts=False,
    )
