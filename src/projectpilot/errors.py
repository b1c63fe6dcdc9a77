"""Error types raised by the session pipeline."""


class PipelineError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class SessionNotFoundError(PipelineError, LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidStateError(PipelineError):
    """An operation was attempted against a session whose status forbids it."""


class InvalidTransitionError(InvalidStateError):
    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition session from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


class SessionNotActiveError(InvalidStateError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Session {session_id} is {status}, not active")
        self.session_id = session_id
        self.status = status


class NoMessagesError(PipelineError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} has no messages to summarise")
        self.session_id = session_id


class LLMError(PipelineError):
    """The model backend failed or returned unusable content."""


class SessionStoreError(PipelineError):
    """The session store backend could not complete an operation."""
