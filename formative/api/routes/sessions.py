"""Session API routes: workflow state, stage outputs and stage generation.

Endpoints:
    GET  /v1/sessions                          List session ids
    POST /v1/sessions                          Create a session (stage 1 active)
    GET  /v1/sessions/{session_id}             State + completed outputs
    GET  /v1/sessions/{session_id}/stages/{stage}       Stored stage output
    POST /v1/sessions/{session_id}/stages/{stage}/run   Generate a stage
    POST /v1/sessions/{session_id}/reset       Back to the initial state

`{stage}` accepts a kind value (`risk_analysis`) or an ordinal id (`2`).
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from formative.config import get_settings
from formative.errors import ErrorKind, StageNotActive, UnknownStage
from formative.executor.orchestrator import WorkflowOrchestrator
from formative.executor.schemas import GenerationRequest
from formative.executor.session_store import create_session_store
from formative.llm.client import LLMClient
from formative.stages.engine import resolve_kind
from formative.stages.schemas import StageKind, StageRef, WorkflowState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

_orchestrator: Optional[WorkflowOrchestrator] = None

# One in-flight generation or reset per session; a second request gets 409
_busy_sessions: set[str] = set()
_busy_sessions_lock = threading.Lock()

_FAILURE_STATUS = {
    ErrorKind.STAGE_NOT_ACTIVE: 409,
    ErrorKind.UNKNOWN_STAGE: 404,
}


def get_orchestrator() -> WorkflowOrchestrator:
    """Process-wide orchestrator, built from environment settings on first use."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = WorkflowOrchestrator(
            LLMClient.from_settings(settings),
            create_session_store(settings),
            timeout_ms=settings.timeout_ms,
        )
    return _orchestrator


class RunStageRequest(BaseModel):
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Stage inputs, e.g. {'message': ..., 'history': [...]} for requirement collection",
    )


def _parse_stage(stage: str) -> StageKind:
    ref: StageRef = int(stage) if stage.isdigit() else stage
    try:
        return resolve_kind(ref)
    except UnknownStage as e:
        raise HTTPException(status_code=404, detail=e.message)


def _require_session(orchestrator: WorkflowOrchestrator, session_id: str) -> WorkflowState:
    state = orchestrator.store.load(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return state


@contextmanager
def _session_guard(session_id: str, action: str):
    """Hold the per-session busy flag for the duration of a run or reset."""
    with _busy_sessions_lock:
        if session_id in _busy_sessions:
            raise HTTPException(
                status_code=409,
                detail=f"Session {session_id} is busy; cannot {action} until the current request finishes",
            )
        _busy_sessions.add(session_id)
    try:
        yield
    finally:
        with _busy_sessions_lock:
            _busy_sessions.discard(session_id)


def _state_payload(orchestrator: WorkflowOrchestrator, state: WorkflowState) -> dict[str, Any]:
    current = orchestrator.engine.current_stage(state)
    return {
        "stages": [
            {"id": s.id, "kind": s.kind.value, "name": s.name, "status": s.status.value}
            for s in state.stages
        ],
        "active_stage_id": state.active_stage_id,
        "current_stage": current.kind.value,
        "finished": orchestrator.engine.is_finished(state),
    }


@router.get("")
def list_sessions(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """List known session ids."""
    sessions = orchestrator.store.list_sessions()
    return {"sessions": sessions, "count": len(sessions)}


@router.post("")
def create_session(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """Create a session with stage 1 active and the rest locked."""
    session_id, state = orchestrator.create_session()
    return {"session_id": session_id, "state": _state_payload(orchestrator, state)}


@router.get("/{session_id}")
def get_session(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """Workflow state plus every stored stage output."""
    state = _require_session(orchestrator, session_id)
    outputs = orchestrator.get_outputs(session_id)
    return {
        "session_id": session_id,
        "state": _state_payload(orchestrator, state),
        "outputs": {kind.value: data for kind, data in outputs.items()},
    }


@router.get("/{session_id}/stages/{stage}")
def get_stage_output(
    session_id: str,
    stage: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Stored output of one stage. Locked stages are not viewable."""
    kind = _parse_stage(stage)
    state = _require_session(orchestrator, session_id)
    try:
        data = orchestrator.get_output(session_id, kind)
    except StageNotActive as e:
        raise HTTPException(status_code=403, detail=e.message)
    return {
        "stage": kind.value,
        "status": state.by_kind(kind).status.value,
        "data": data,
    }


@router.post("/{session_id}/stages/{stage}/run")
def run_stage(
    session_id: str,
    stage: str,
    request: Optional[RunStageRequest] = None,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Generate a stage's result with the LLM.

    Blocks for the duration of the model call (including retries); FastAPI
    runs it in the threadpool.
    """
    kind = _parse_stage(stage)
    _require_session(orchestrator, session_id)

    with _session_guard(session_id, "run a stage"):
        result = orchestrator.run(
            session_id,
            GenerationRequest(stage=kind, payload=request.payload if request else {}),
        )

    if result.success:
        status_code = 200
    else:
        status_code = _FAILURE_STATUS.get(result.error_kind, 502)

    body = result.to_response()
    body["state"] = _state_payload(orchestrator, orchestrator.get_state(session_id))
    return JSONResponse(status_code=status_code, content=body)


@router.post("/{session_id}/reset")
def reset_session(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """Discard all outputs and return to stage 1."""
    _require_session(orchestrator, session_id)
    with _session_guard(session_id, "reset"):
        state = orchestrator.reset(session_id)
    logger.info(f"Session {session_id} reset")
    return {"session_id": session_id, "state": _state_payload(orchestrator, state)}
