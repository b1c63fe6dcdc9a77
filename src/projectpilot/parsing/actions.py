"""Action directives embedded in model replies.

Grammar::

    [ACTION: CREATE_TASK] milestoneId: <uuid>, name: Draft outline, priority: high [/ACTION]

Blocks with an unknown type or invalid parameters are removed from the text
without producing an action.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

ACTION_BLOCK_RE = re.compile(r"\[ACTION:\s*(\w+)\](.*?)\[/ACTION\]", re.DOTALL)
PARAM_RE = re.compile(r"(\w+):\s*((?:(?!\w+:).)*)", re.DOTALL)
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


class ActionKind(str, Enum):
    COMPLETE_TASK = "COMPLETE_TASK"
    UPDATE_NOTES = "UPDATE_NOTES"
    FLAG_BLOCKED = "FLAG_BLOCKED"
    SET_WAITING = "SET_WAITING"
    CREATE_SUBTASK = "CREATE_SUBTASK"
    UPDATE_DOCUMENT = "UPDATE_DOCUMENT"
    INCREMENT_DEFERRED = "INCREMENT_DEFERRED"
    SUGGEST_SCOPE_REDUCTION = "SUGGEST_SCOPE_REDUCTION"
    CREATE_MILESTONE = "CREATE_MILESTONE"
    CREATE_TASK = "CREATE_TASK"
    CREATE_DOCUMENT = "CREATE_DOCUMENT"


BLOCKED_TYPES = frozenset(
    {"poorlyDefined", "tooLarge", "missingInfo", "missingResource", "decisionRequired"}
)
PRIORITIES = frozenset({"high", "normal", "low"})
EFFORT_TYPES = frozenset(
    {"deepFocus", "creative", "administrative", "communication", "physical", "quickWin"}
)

# kind -> (required params, optional params)
ACTION_SCHEMAS: Dict[ActionKind, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    ActionKind.COMPLETE_TASK: (("taskId",), ()),
    ActionKind.UPDATE_NOTES: (("projectId", "notes"), ()),
    ActionKind.FLAG_BLOCKED: (("taskId", "blockedType", "reason"), ()),
    ActionKind.SET_WAITING: (("taskId", "reason"), ("checkBackDate",)),
    ActionKind.CREATE_SUBTASK: (("taskId", "name"), ()),
    ActionKind.UPDATE_DOCUMENT: (("documentId", "content"), ()),
    ActionKind.INCREMENT_DEFERRED: (("taskId",), ()),
    ActionKind.SUGGEST_SCOPE_REDUCTION: (("projectId", "suggestion"), ()),
    ActionKind.CREATE_MILESTONE: (("phaseId", "name"), ()),
    ActionKind.CREATE_TASK: (("milestoneId", "name"), ("priority", "effortType")),
    ActionKind.CREATE_DOCUMENT: (("projectId", "title", "content"), ()),
}

_MINOR_ACTIONS = frozenset(
    {
        ActionKind.COMPLETE_TASK,
        ActionKind.CREATE_SUBTASK,
        ActionKind.INCREMENT_DEFERRED,
        ActionKind.SUGGEST_SCOPE_REDUCTION,
    }
)


@dataclass(frozen=True)
class AIAction:
    kind: ActionKind
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def is_major(self) -> bool:
        """Major actions need user confirmation before they are executed."""
        return self.kind not in _MINOR_ACTIONS


def _clean_value(value: str) -> str:
    value = value.strip().rstrip(",").strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def parse_params(body: str) -> Dict[str, str]:
    """Split an action body into ``key: value`` pairs; a value runs until the next ``key:``."""
    params: Dict[str, str] = {}
    for match in PARAM_RE.finditer(body):
        params[match.group(1)] = _clean_value(match.group(2))
    return params


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return len(value) == 10


def build_action(type_name: str, body: str) -> AIAction | None:
    """Validate one block and return its action, or None when it is rejected."""
    try:
        kind = ActionKind(type_name)
    except ValueError:
        logger.debug("Ignoring unknown action type %s", type_name)
        return None

    raw = parse_params(body)
    required, optional = ACTION_SCHEMAS[kind]

    params: Dict[str, str] = {}
    for name in required:
        value = raw.get(name)
        if not value:
            logger.debug("Action %s missing %s", kind.value, name)
            return None
        params[name] = value
    for name in optional:
        if raw.get(name):
            params[name] = raw[name]

    for name, value in params.items():
        if name.endswith("Id") and not _is_uuid(value):
            logger.debug("Action %s has invalid %s: %s", kind.value, name, value)
            return None

    if kind == ActionKind.FLAG_BLOCKED and params["blockedType"] not in BLOCKED_TYPES:
        return None
    if kind == ActionKind.SET_WAITING and "checkBackDate" in params:
        if not _is_iso_date(params["checkBackDate"]):
            del params["checkBackDate"]
    if kind == ActionKind.CREATE_TASK:
        if params.get("priority") not in PRIORITIES:
            params["priority"] = "normal"
        if "effortType" in params and params["effortType"] not in EFFORT_TYPES:
            del params["effortType"]

    return AIAction(kind=kind, params=params)


class ActionParser:
    """Extracts action blocks and returns the remaining natural language."""

    def parse(self, text: str) -> Tuple[str, List[AIAction]]:
        actions: List[AIAction] = []
        for match in ACTION_BLOCK_RE.finditer(text):
            action = build_action(match.group(1), match.group(2).strip())
            if action is not None:
                actions.append(action)

        natural = ACTION_BLOCK_RE.sub("", text)
        natural = _EXCESS_NEWLINES_RE.sub("\n\n", natural.strip())
        return natural, actions
