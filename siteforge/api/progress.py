"""GET /sse/progress/{sessionId} endpoint"""

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from siteforge.models.schemas import ProgressEvent
from siteforge.api.build import get_session, session_store
import asyncio
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

POLL_INTERVAL_SECONDS = 0.5
MAX_STREAM_SECONDS = 1200


def _to_sse(session_id: str, event: dict) -> str:
    e = ProgressEvent(
        ts=event["ts"],
        session_id=session_id,
        phase=event["phase"],
        step=event.get("step", ""),
        detail=event.get("detail", ""),
    )
    return f"data: {e.model_dump_json()}\n\n"


@router.get("/progress/{session_id}")
async def stream_progress(session_id: str):
    """
    Stream build progress as Server-Sent Events.

    Event format:
    {
      "ts": "2026-01-01T10:00:00Z",
      "session_id": "abc123",
      "phase": "DETECTING|GENERATING|VALIDATING|FIXING|READY|CANCELLED|ERROR",
      "step": "generating-page-2",
      "detail": "Generating About page (2/4)..."
    }

    Replays the session's log first, then streams new entries until a terminal phase.
    """
    state = get_session(session_id)
    logger.info(f"SSE: stream opened | session: {session_id} | phase: {state.phase.value}")

    async def generate():
        sent = 0
        waited = 0.0
        while waited < MAX_STREAM_SECONDS:
            current = session_store.get(session_id)
            if current is None:
                logger.warning(f"SSE: Session {session_id} removed during streaming")
                return

            events = current.event_log[sent:]
            for event in events:
                yield _to_sse(session_id, event)
            sent += len(events)

            if current.is_terminal():
                logger.info(f"SSE: Stream closing | session: {session_id} | phase: {current.phase.value}")
                return

            await asyncio.sleep(POLL_INTERVAL_SECONDS)
            waited += POLL_INTERVAL_SECONDS

        logger.warning(f"SSE: Timeout after {MAX_STREAM_SECONDS}s for session {session_id}")

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )
