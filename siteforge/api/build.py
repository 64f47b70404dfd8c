"""POST /api/build and POST /api/build/{sessionId}/cancel endpoints"""

from fastapi import APIRouter, BackgroundTasks
from siteforge.models.schemas import BuildRequest, BuildResponse, PipelineResult
from siteforge.models.errors import ApplicationError, ErrorCode
from siteforge.core.state_machine import BuildState, BuildPhase, TERMINAL_PHASES, phase_for_step
from siteforge.orchestrator.orchestrator_agent import PageOrchestrator
from datetime import datetime, timedelta, timezone
from typing import Dict
import asyncio
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter()

# In-memory session store (in production, use Redis or similar)
session_store: Dict[str, BuildState] = {}


def _progress_callback(state: BuildState):
    """Route orchestrator steps into the session event log.

    Terminal steps are held back until the result is stored, so a client never
    sees READY before /api/result can answer.
    """
    def callback(step: str, detail: str):
        phase = phase_for_step(step)
        if phase in TERMINAL_PHASES:
            state.metadata["final_detail"] = detail
            return
        state.log_event(phase, detail, step=step)
    return callback


def _handle_error(state: BuildState, error: Exception):
    if isinstance(error, ApplicationError):
        error.session_id = state.session_id
        state.error = error.model_dump()
        message = f"✗ {error.message}" + (f" - {error.hint}" if error.hint else "")
    else:
        state.error = {"message": str(error), "type": type(error).__name__, "retryable": True}
        message = "✗ An unexpected error occurred during the build process"
    state.metadata["success"] = False
    state.log_event(BuildPhase.ERROR, message)


def _finish(state: BuildState, result: PipelineResult):
    state.result = result
    state.metadata["success"] = result.success
    detail = state.metadata.pop("final_detail", "")
    if state.cancel_event.is_set() and not result.files:
        state.log_event(BuildPhase.CANCELLED, detail or "Generation cancelled", step="cancelled")
    elif result.files:
        state.log_event(BuildPhase.READY, detail or f"Done -- {len(result.files)} files", step="complete")
    else:
        state.error = {"message": "; ".join(result.errors), "type": "PipelineFailure", "retryable": True}
        state.log_event(BuildPhase.ERROR, f"✗ {'; '.join(result.errors) or 'Generation failed'}")


async def _run_build(session_id: str, prompt: str, site_name: str, scope_id: str) -> None:
    state = session_store.get(session_id)
    if not state:
        logger.error(f"[Build] Session {session_id} not found in store")
        return

    logger.info(f"[Build] Build started | session: {session_id}")
    try:
        orchestrator = PageOrchestrator()
        result = await orchestrator.run(
            prompt,
            site_name=site_name,
            scope_id=scope_id or session_id,
            progress_callback=_progress_callback(state),
            cancel_event=state.cancel_event,
            session_id=session_id,
        )
        _finish(state, result)
        logger.info(
            f"[Build] ✓ Build finished | session: {session_id} | phase: {state.phase.value} | "
            f"success: {result.success}"
        )
    except asyncio.CancelledError:
        state.log_event(BuildPhase.CANCELLED, "Generation cancelled", step="cancelled")
        raise
    except ApplicationError as e:
        logger.error(f"[Build] ✗ {e.code.value}: {e.message}")
        _handle_error(state, e)
    except Exception as e:
        logger.exception("[Build] Unexpected error in build")
        _handle_error(state, e)


# Background task: drops terminal sessions older than an hour.
def cleanup_old_sessions(max_age: timedelta = timedelta(hours=1)) -> int:
    cutoff_time = datetime.now(timezone.utc) - max_age
    sessions_to_remove = [
        session_id for session_id, state in session_store.items()
        if state.is_terminal() and state.last_updated and state.last_updated < cutoff_time
    ]
    for session_id in sessions_to_remove:
        del session_store[session_id]
        logger.info(f"Cleaned up old session: {session_id}")
    return len(sessions_to_remove)


async def cleanup_loop() -> None:
    """Periodically clean up terminal sessions"""
    while True:
        await asyncio.sleep(300)
        try:
            cleanup_old_sessions()
        except Exception as e:
            logger.error(f"Error in cleanup_old_sessions: {e}", exc_info=True)


def get_session(session_id: str) -> BuildState:
    state = session_store.get(session_id)
    if not state:
        raise ApplicationError(
            code=ErrorCode.NOT_FOUND,
            message="Session not found",
            hint="Start a build with POST /api/build",
            session_id=session_id,
        )
    return state


# ============================================================================
# API Endpoints
# ============================================================================

# POST /api/build: creates the session and starts generation in the background.
# Returns 202 with session_id for SSE polling.
@router.post("/build", response_model=BuildResponse, status_code=202)
async def start_build(
    request: BuildRequest,
    background_tasks: BackgroundTasks
) -> BuildResponse:
    """Start a new multi-page build for a prompt."""
    session_id = str(uuid.uuid4())
    logger.info(f"POST /api/build received | session: {session_id} | prompt: {len(request.prompt)} chars")

    state = BuildState(session_id)
    state.metadata["site_name"] = request.site_name
    session_store[session_id] = state

    background_tasks.add_task(_run_build, session_id, request.prompt, request.site_name, request.scope_id)
    return BuildResponse(session_id=session_id)


@router.post("/build/{session_id}/cancel")
async def cancel_build(session_id: str):
    """Request cooperative cancellation; the orchestrator stops at its next step boundary."""
    state = get_session(session_id)
    if state.is_terminal():
        return {"session_id": session_id, "cancelled": False, "phase": state.phase.value}

    state.cancel_event.set()
    logger.info(f"[Build] Cancellation requested | session: {session_id}")
    return {"session_id": session_id, "cancelled": True, "phase": state.phase.value}
