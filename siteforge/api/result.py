"""GET /api/result/{sessionId} endpoint"""

from fastapi import APIRouter
from siteforge.core.state_machine import BuildPhase
from siteforge.api.build import get_session
from siteforge.models.errors import ApplicationError, ErrorCode
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/result/{session_id}")
async def get_result(session_id: str):
    """
    Get the generated file map with warnings, errors and quality score.

    409 while the build is still running or after cancellation; the pipeline
    error payload once it failed outright.
    """
    state = get_session(session_id)

    if state.phase == BuildPhase.CANCELLED:
        raise ApplicationError(
            code=ErrorCode.CANCELLED,
            message="Build was cancelled",
            hint="Start a new build",
            session_id=session_id,
        )
    if state.phase == BuildPhase.ERROR:
        raise ApplicationError(
            code=ErrorCode.GENERATION_FAILED,
            message=(state.error or {}).get("message") or "Generation failed",
            retryable=True,
            hint="Try again or simplify the prompt",
            session_id=session_id,
        )
    if state.phase != BuildPhase.READY or state.result is None:
        raise ApplicationError(
            code=ErrorCode.NOT_READY,
            message=f"Build not ready. Current phase: {state.phase.value}",
            retryable=True,
            session_id=session_id,
        )

    logger.info(f"GET /api/result | session: {session_id} | files: {len(state.result.files)}")
    return {"session_id": session_id, **state.result.model_dump(mode="json")}
