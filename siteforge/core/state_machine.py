"""Build and page state machines"""

from enum import Enum
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import asyncio
import logging

logger = logging.getLogger(__name__)


class BuildPhase(str, Enum):
    """Build phases

    IDLE → DETECTING → GENERATING → VALIDATING → FIXING → READY
                  ↘──────────────ERROR / CANCELLED─────────↗
    """
    IDLE = "IDLE"
    DETECTING = "DETECTING"
    GENERATING = "GENERATING"
    VALIDATING = "VALIDATING"
    FIXING = "FIXING"
    READY = "READY"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


TERMINAL_PHASES = (BuildPhase.READY, BuildPhase.CANCELLED, BuildPhase.ERROR)

# Progress step -> session phase
STEP_PHASES: Dict[str, BuildPhase] = {
    "detecting": BuildPhase.DETECTING,
    "detected": BuildPhase.DETECTING,
    "generating-styles": BuildPhase.GENERATING,
    "validating": BuildPhase.VALIDATING,
    "fixing": BuildPhase.FIXING,
    "regenerating": BuildPhase.FIXING,
    "complete": BuildPhase.READY,
    "cancelled": BuildPhase.CANCELLED,
}


def phase_for_step(step: str) -> BuildPhase:
    if step.startswith("generating-page-"):
        return BuildPhase.GENERATING
    return STEP_PHASES.get(step, BuildPhase.GENERATING)


class BuildState:
    """Manages build state transitions"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.phase = BuildPhase.IDLE
        self.started_at: Optional[datetime] = None
        self.metadata: Dict[str, Any] = {}
        self.event_log: list = []  # List of all events for the UI
        self.last_updated: Optional[datetime] = None
        self.result: Optional[Any] = None
        self.error: Optional[Dict[str, Any]] = None
        self.cancel_event = asyncio.Event()

    def log_event(self, phase: BuildPhase, event: str, step: Optional[str] = None):
        """Log a new event - adds to log and updates state"""
        if not isinstance(event, str):
            logger.warning(f"log_event received non-string event: {type(event)}, converting to string")
            event = str(event) if event is not None else ""

        # Terminal states are final; only ERROR may still update the message
        if self.is_terminal() and phase != BuildPhase.ERROR:
            return

        now = datetime.now(timezone.utc)
        entry = {
            "ts": now.isoformat().replace("+00:00", "Z"),
            "phase": phase.value,
            "detail": event
        }
        if step:
            entry["step"] = step
        self.event_log.append(entry)

        self.phase = phase
        self.last_updated = now
        if not self.started_at:
            self.started_at = now

        logger.debug(f"Logged event: {event} (phase: {phase.value})")

    def is_terminal(self) -> bool:
        """Check if build is in terminal state"""
        return self.phase in TERMINAL_PHASES


class PageState(str, Enum):
    """Per-page lifecycle

    PENDING → GENERATED → VALIDATED → ACCEPTED
                              ↘ NEEDS_REGENERATION → REGENERATING → VALIDATED (loop)
                              ↘ EXHAUSTED → FALLBACK
    """
    PENDING = "pending"
    GENERATED = "generated"
    VALIDATED = "validated"
    ACCEPTED = "accepted"
    NEEDS_REGENERATION = "needs_regeneration"
    REGENERATING = "regenerating"
    EXHAUSTED = "exhausted"
    FALLBACK = "fallback"


PAGE_TRANSITIONS: Dict[PageState, tuple] = {
    PageState.PENDING: (PageState.GENERATED,),
    PageState.GENERATED: (PageState.VALIDATED,),
    PageState.VALIDATED: (PageState.ACCEPTED, PageState.NEEDS_REGENERATION, PageState.EXHAUSTED),
    PageState.NEEDS_REGENERATION: (PageState.REGENERATING,),
    PageState.REGENERATING: (PageState.GENERATED,),
    PageState.EXHAUSTED: (PageState.FALLBACK,),
    PageState.ACCEPTED: (),
    PageState.FALLBACK: (),
}


class InvalidTransition(Exception):
    """Raised when a page is moved along an edge the lifecycle does not have"""


class PageLifecycle:
    """Tracks one page through generation, validation and regeneration"""

    def __init__(self, slug: str):
        self.slug = slug
        self.state = PageState.PENDING
        self.history: List[PageState] = [PageState.PENDING]

    def advance(self, target: PageState) -> PageState:
        if target not in PAGE_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.slug}: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)
        return target

    @property
    def is_final(self) -> bool:
        return self.state in (PageState.ACCEPTED, PageState.FALLBACK)
