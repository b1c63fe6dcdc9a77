import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from .context import DeferredTask, ProjectData
from .errors import InvalidStateError, LLMError, NoMessagesError, PipelineError, SessionNotFoundError
from .models import Deliverable, DeliverableStatus, DeliverableType, Project, SessionMode, SessionSubMode
from .pipeline import Pipeline, close_pipeline, get_pipeline_async
from .settings import get_settings


def setup_server_logging() -> logging.Logger:
    """Configure the package logger once and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("projectpilot")
    logger = logging.getLogger("projectpilot.server")
    if root.handlers:
        return logger

    root.setLevel(get_settings().log_level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    root.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


LOGGER = setup_server_logging()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline and start the auto-summariser; stop both on shutdown."""
    pipeline = await get_pipeline_async()
    if settings.auto_summary_enabled:
        pipeline.auto_summary.start()
    else:
        LOGGER.info("Auto-summarisation disabled")

    yield

    LOGGER.info("Shutting down...")
    await close_pipeline()


app = FastAPI(
    title="ProjectPilot Session Service",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class StartSessionRequest(BaseModel):
    project_id: str
    mode: SessionMode
    sub_mode: Optional[SessionSubMode] = None


class DeliverableIn(BaseModel):
    type: DeliverableType
    status: DeliverableStatus = DeliverableStatus.PENDING
    title: str = ""
    content: str = ""


class DeferredTaskIn(BaseModel):
    name: str
    times_deferred: int = Field(ge=0)


class ProjectIn(BaseModel):
    id: str
    name: str
    lifecycle_state: str = "focus"
    notes: Optional[str] = None
    definition_of_done: Optional[str] = None
    deliverables: List[DeliverableIn] = Field(default_factory=list)
    structure_outline: Optional[str] = None
    relevant_context: Optional[str] = None
    frequently_deferred: List[DeferredTaskIn] = Field(default_factory=list)

    def to_project_data(self) -> ProjectData:
        project = Project(
            id=self.id,
            name=self.name,
            lifecycle_state=self.lifecycle_state,
            notes=self.notes,
            definition_of_done=self.definition_of_done,
        )
        deliverables = [
            Deliverable(project_id=self.id, type=d.type, status=d.status, title=d.title, content=d.content)
            for d in self.deliverables
        ]
        return ProjectData(
            project=project,
            deliverables=deliverables,
            structure_outline=self.structure_outline,
            relevant_context=self.relevant_context,
            frequently_deferred=[DeferredTask(t.name, t.times_deferred) for t in self.frequently_deferred],
        )


class SendMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    project: ProjectIn
    raw_voice_transcript: Optional[str] = None


def _jsonable(value: Any) -> Any:
    """Dataclass records to JSON-ready dicts (enums by value, datetimes as ISO strings)."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _record(obj: Any) -> Dict[str, Any]:
    return _jsonable(asdict(obj))


def _http_error(e: PipelineError) -> HTTPException:
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidStateError, NoMessagesError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, LLMError):
        return HTTPException(status_code=502, detail=str(e))
    LOGGER.error("Pipeline error: %s", e)
    return HTTPException(status_code=503, detail=str(e))


def _turn_payload(result) -> Dict[str, Any]:
    return {
        "natural_language": result.natural_language,
        "actions": [
            {"kind": a.kind.value, "params": a.params, "is_major": a.is_major} for a in result.actions
        ],
        "signals": [_record(s) for s in result.signals],
        "input_tokens": result.input_tokens,
        "output_tokens": result.output_tokens,
    }


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring.

    Returns:
        dict[str, Any]: JSON response with status field.
    """
    return {"status": "ok"}


@app.post("/sessions", status_code=201)
async def start_session(
    body: StartSessionRequest, pipeline: Pipeline = Depends(get_pipeline_async)
) -> dict[str, Any]:
    try:
        session = await pipeline.conversation.start_session(body.project_id, body.mode, body.sub_mode)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except PipelineError as e:
        raise _http_error(e) from e
    return _record(session)


@app.get("/projects/{project_id}/paused-session")
async def paused_session(
    project_id: str, pipeline: Pipeline = Depends(get_pipeline_async)
) -> dict[str, Any]:
    try:
        session = await pipeline.conversation.paused_session(project_id)
    except PipelineError as e:
        raise _http_error(e) from e
    if session is None:
        raise HTTPException(status_code=404, detail=f"No paused session for project {project_id}")
    return _record(session)


@app.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str, body: SendMessageRequest, pipeline: Pipeline = Depends(get_pipeline_async)
) -> dict[str, Any]:
    try:
        result = await pipeline.conversation.send_message(
            body.message,
            session_id,
            body.project.to_project_data(),
            raw_voice_transcript=body.raw_voice_transcript,
        )
    except PipelineError as e:
        raise _http_error(e) from e
    return _turn_payload(result)


@app.get("/sessions/{session_id}/messages")
async def list_messages(
    session_id: str, pipeline: Pipeline = Depends(get_pipeline_async)
) -> list[dict[str, Any]]:
    try:
        messages = await pipeline.conversation.get_messages(session_id)
    except PipelineError as e:
        raise _http_error(e) from e
    return [_record(m) for m in messages]


@app.post("/sessions/{session_id}/pause")
async def pause_session(session_id: str, pipeline: Pipeline = Depends(get_pipeline_async)) -> dict[str, Any]:
    try:
        return _record(await pipeline.conversation.pause_session(session_id))
    except PipelineError as e:
        raise _http_error(e) from e


@app.post("/sessions/{session_id}/resume")
async def resume_session(session_id: str, pipeline: Pipeline = Depends(get_pipeline_async)) -> dict[str, Any]:
    try:
        return _record(await pipeline.conversation.resume_session(session_id))
    except PipelineError as e:
        raise _http_error(e) from e


@app.post("/sessions/{session_id}/complete")
async def complete_session(session_id: str, pipeline: Pipeline = Depends(get_pipeline_async)) -> dict[str, Any]:
    try:
        return _record(await pipeline.conversation.complete_session(session_id))
    except PipelineError as e:
        raise _http_error(e) from e


@app.post("/sessions/{session_id}/end")
async def end_session(session_id: str, pipeline: Pipeline = Depends(get_pipeline_async)) -> dict[str, Any]:
    try:
        return _record(await pipeline.conversation.end_session(session_id))
    except PipelineError as e:
        raise _http_error(e) from e


@app.websocket("/ws/chat")
async def chat_ws(websocket: WebSocket, pipeline: Pipeline = Depends(get_pipeline_async)) -> None:
    """WebSocket chat endpoint: one turn per client frame.

    Expected Input (JSON):
        {
            "session_id": str - active session identifier,
            "message": str - user message text,
            "project": object - same shape as the REST ``project`` field
        }

    Response Format:
        - {"type": "reply", "data": {...}} - parsed reply, signals and actions
        - {"type": "error", "status": int, "data": str} - error for that frame
    """
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as e:
                LOGGER.error("Invalid WS payload (not JSON): %s", e)
                await websocket.send_json({"type": "error", "status": 400, "data": "Invalid JSON payload"})
                continue

            if not isinstance(payload, dict):
                await websocket.send_json({"type": "error", "status": 400, "data": "Payload must be a JSON object"})
                continue

            session_id = str(payload.get("session_id") or "")
            try:
                body = SendMessageRequest.model_validate(payload)
            except ValidationError as e:
                await websocket.send_json({"type": "error", "status": 422, "data": str(e)})
                continue

            LOGGER.info("WS chat turn session_id=%s", session_id)
            try:
                result = await pipeline.conversation.send_message(
                    body.message,
                    session_id,
                    body.project.to_project_data(),
                    raw_voice_transcript=body.raw_voice_transcript,
                )
            except PipelineError as e:
                err = _http_error(e)
                await websocket.send_json({"type": "error", "status": err.status_code, "data": err.detail})
                continue

            await websocket.send_json({"type": "reply", "data": _turn_payload(result)})
    except WebSocketDisconnect:
        LOGGER.info("WS disconnect")
