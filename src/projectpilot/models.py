from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import NAMESPACE_URL, uuid4, uuid5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def derived_id(parent_id: str, kind: str) -> str:
    """Stable id for a record that exists once per parent, e.g. a session's summary."""
    return str(uuid5(NAMESPACE_URL, f"projectpilot:{kind}:{parent_id}"))


class SessionMode(str, Enum):
    EXPLORATION = "exploration"
    DEFINITION = "definition"
    PLANNING = "planning"
    EXECUTION_SUPPORT = "executionSupport"


class SessionSubMode(str, Enum):
    """Finer-grained purpose of an execution-support session."""

    CHECK_IN = "checkIn"
    RETURN_BRIEFING = "returnBriefing"
    PROJECT_REVIEW = "projectReview"
    RETROSPECTIVE = "retrospective"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    AUTO_SUMMARISED = "autoSummarised"
    PENDING_AUTO_SUMMARY = "pendingAutoSummary"


class SessionCompletionStatus(str, Enum):
    """How a session ended, as recorded on its summary."""

    COMPLETED = "completed"
    INCOMPLETE_AUTO_SUMMARISED = "incompleteAutoSummarised"
    INCOMPLETE_USER_ENDED = "incompleteUserEnded"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Session:
    """One continuous conversation bound to a single project."""

    project_id: str
    mode: SessionMode
    sub_mode: Optional[SessionSubMode] = None
    status: SessionStatus = SessionStatus.ACTIVE
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    summary_id: Optional[str] = None


@dataclass
class SessionMessage:
    """A single turn of a session transcript. Never mutated after creation."""

    session_id: str
    role: ChatRole
    content: str
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    raw_voice_transcript: Optional[str] = None


@dataclass
class ContentEstablished:
    decisions: List[str] = field(default_factory=list)
    facts_learned: List[str] = field(default_factory=list)
    progress_made: List[str] = field(default_factory=list)


@dataclass
class ContentObserved:
    patterns: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)


@dataclass
class WhatComesNext:
    next_actions: List[str] = field(default_factory=list)
    open_questions: List[str] = field(default_factory=list)
    suggested_mode: Optional[str] = None


@dataclass
class SessionSummary:
    """Structured digest produced once when a session is completed or auto-summarised."""

    session_id: str
    mode: SessionMode
    completion_status: SessionCompletionStatus
    sub_mode: Optional[SessionSubMode] = None
    content_established: ContentEstablished = field(default_factory=ContentEstablished)
    content_observed: ContentObserved = field(default_factory=ContentObserved)
    what_comes_next: WhatComesNext = field(default_factory=WhatComesNext)
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime = field(default_factory=utcnow)
    duration: int = 0
    message_count: int = 0
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = derived_id(self.session_id, "summary")


class DeliverableType(str, Enum):
    VISION_STATEMENT = "visionStatement"
    TECHNICAL_BRIEF = "technicalBrief"
    SETUP_SPECIFICATION = "setupSpecification"
    RESEARCH_PLAN = "researchPlan"
    CREATIVE_BRIEF = "creativeBrief"


class DeliverableStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    REVISED = "revised"


@dataclass
class Project:
    """Read-only view of a project, owned by the entity store."""

    name: str
    lifecycle_state: str = "focus"
    notes: Optional[str] = None
    definition_of_done: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Deliverable:
    project_id: str
    type: DeliverableType
    status: DeliverableStatus = DeliverableStatus.PENDING
    title: str = ""
    content: str = ""
    id: str = field(default_factory=new_id)
