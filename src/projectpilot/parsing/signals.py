"""Bracketed signals in model replies.

Block signals wrap multi-line artifacts::

    [DOCUMENT_DRAFT: visionStatement] ... [/DOCUMENT_DRAFT]
    [STRUCTURE_PROPOSAL] ... [/STRUCTURE_PROPOSAL]

Line signals carry a single value (``[MODE_COMPLETE: planning]``), and
``[SESSION_END]`` carries none. Anything that does not match stays in the
natural-language text untouched.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .actions import ActionParser, AIAction


class SignalKind(str, Enum):
    MODE_COMPLETE = "MODE_COMPLETE"
    PROCESS_RECOMMENDATION = "PROCESS_RECOMMENDATION"
    PLANNING_DEPTH = "PLANNING_DEPTH"
    PROJECT_SUMMARY = "PROJECT_SUMMARY"
    DELIVERABLES_PRODUCED = "DELIVERABLES_PRODUCED"
    DELIVERABLES_DEFERRED = "DELIVERABLES_DEFERRED"
    STRUCTURE_SUMMARY = "STRUCTURE_SUMMARY"
    FIRST_ACTION = "FIRST_ACTION"
    SESSION_END = "SESSION_END"
    DOCUMENT_DRAFT = "DOCUMENT_DRAFT"
    STRUCTURE_PROPOSAL = "STRUCTURE_PROPOSAL"


@dataclass(frozen=True)
class ResponseSignal:
    """One extracted signal.

    ``value`` is the line value or block content (empty for SESSION_END);
    ``document_type`` is set only for DOCUMENT_DRAFT.
    """

    kind: SignalKind
    value: str = ""
    document_type: Optional[str] = None


@dataclass
class ParsedResponse:
    natural_language: str
    signals: List[ResponseSignal] = field(default_factory=list)
    actions: List[AIAction] = field(default_factory=list)

    def signals_of(self, kind: SignalKind) -> List[ResponseSignal]:
        return [s for s in self.signals if s.kind == kind]


BLOCK_SIGNALS = (SignalKind.DOCUMENT_DRAFT, SignalKind.STRUCTURE_PROPOSAL)
LINE_SIGNALS = (
    SignalKind.MODE_COMPLETE,
    SignalKind.PROCESS_RECOMMENDATION,
    SignalKind.PLANNING_DEPTH,
    SignalKind.PROJECT_SUMMARY,
    SignalKind.DELIVERABLES_PRODUCED,
    SignalKind.DELIVERABLES_DEFERRED,
    SignalKind.STRUCTURE_SUMMARY,
    SignalKind.FIRST_ACTION,
)

_BLOCK_PATTERNS = {
    kind: re.compile(
        r"\[" + kind.value + r"(?::\s*([^\]]*))?\](.*?)\[/" + kind.value + r"\]", re.DOTALL
    )
    for kind in BLOCK_SIGNALS
}
_LINE_PATTERNS = {kind: re.compile(r"\[" + kind.value + r":\s*([^\]]+)\]") for kind in LINE_SIGNALS}
_SESSION_END_RE = re.compile(r"\[SESSION_END\]")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


class ResponseSignalParser:
    """Splits a model reply into natural language, signals and (optionally) actions."""

    def __init__(self, action_parser: ActionParser | None = None) -> None:
        self._action_parser = action_parser or ActionParser()

    def parse(self, text: str, parse_actions: bool = False) -> ParsedResponse:
        signals: List[ResponseSignal] = []

        text = self._extract_blocks(text, signals)
        text = self._extract_lines(text, signals)

        actions: List[AIAction] = []
        if parse_actions:
            text, actions = self._action_parser.parse(text)

        text = _EXCESS_NEWLINES_RE.sub("\n\n", text).strip()
        return ParsedResponse(natural_language=text, signals=signals, actions=actions)

    @staticmethod
    def _extract_blocks(text: str, signals: List[ResponseSignal]) -> str:
        for kind, pattern in _BLOCK_PATTERNS.items():
            for match in pattern.finditer(text):
                content = match.group(2).strip()
                if kind == SignalKind.DOCUMENT_DRAFT:
                    param = (match.group(1) or "").strip()
                    signals.append(
                        ResponseSignal(kind=kind, value=content, document_type=param or "unknown")
                    )
                else:
                    signals.append(ResponseSignal(kind=kind, value=content))
            text = pattern.sub("", text)
        return text

    @staticmethod
    def _extract_lines(text: str, signals: List[ResponseSignal]) -> str:
        for kind, pattern in _LINE_PATTERNS.items():
            for match in pattern.finditer(text):
                signals.append(ResponseSignal(kind=kind, value=match.group(1).strip()))
            text = pattern.sub("", text)

        for _ in _SESSION_END_RE.finditer(text):
            signals.append(ResponseSignal(kind=SignalKind.SESSION_END))
        return _SESSION_END_RE.sub("", text)
