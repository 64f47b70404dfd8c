"""
Run telemetry for the generation pipeline.

One RequestContext is created per orchestrator run. Child contexts (shared
assets, each page, each regeneration) share the run's RunUsage, so token
spend and failed calls add up across the whole site.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RunUsage:
    """Token spend and call counts for one run"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    calls: int = 0
    failed_calls: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def record(self, prompt_tokens: int, completion_tokens: int, failed: bool):
        self.calls += 1
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens
        if failed:
            self.failed_calls += 1


@dataclass
class RequestContext:
    """Correlation data carried through the orchestrator and generator logs"""
    session_id: Optional[str] = None
    agent: str = "Orchestrator"
    phase: str = "run"
    attempt: int = 1
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    usage: RunUsage = field(default_factory=RunUsage)

    def child(self, agent: str, phase: Optional[str] = None, attempt: int = 1) -> 'RequestContext':
        """Same run and usage, different agent/phase"""
        return RequestContext(
            session_id=self.session_id,
            agent=agent,
            phase=phase or self.phase,
            attempt=attempt,
            run_id=self.run_id,
            usage=self.usage,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "agent": self.agent,
            "phase": self.phase,
            "attempt": self.attempt,
            "run_id": self.run_id,
            "tokens": self.usage.total_tokens,
        }

    def log_prefix(self) -> str:
        session = self.session_id[:8] if self.session_id else "none"
        prefix = f"[{self.agent}] session={session} run={self.run_id} phase={self.phase}"
        return f"{prefix} attempt={self.attempt}" if self.attempt > 1 else prefix


class PhaseTracker:
    """Timing, attempts and errors for one phase; usage is charged to the run"""

    def __init__(self, context: RequestContext):
        self.context = context
        self.started = time.monotonic()
        self.duration_ms: Optional[float] = None
        self.attempts = 0
        self.errors: List[str] = []
        self.success = False

    @property
    def done(self) -> bool:
        return self.duration_ms is not None

    def record_attempt(self, prompt_tokens: int = 0, completion_tokens: int = 0, error: Optional[str] = None):
        self.attempts += 1
        self.context.usage.record(prompt_tokens, completion_tokens, failed=error is not None)
        if error:
            self.errors.append(error)

    def complete(self, success: bool = True):
        if self.done:
            return
        self.success = success
        self.duration_ms = (time.monotonic() - self.started) * 1000
        logger.info(
            f"{self.context.log_prefix()} PHASE_COMPLETE | success={success} | attempts={self.attempts} | "
            f"run_tokens={self.context.usage.total_tokens} | duration={self.duration_ms:.0f}ms | "
            f"errors={len(self.errors)}"
        )


@contextmanager
def track_phase(context: RequestContext):
    """
    Track one phase; an escaping exception completes it as failed.

    Usage:
        with track_phase(context.child("Generator", phase="page:about")) as tracker:
            result = await generator.generate_page(...)
            tracker.record_attempt(result.prompt_tokens, result.completion_tokens)
            tracker.complete(success=True)
    """
    tracker = PhaseTracker(context)
    try:
        yield tracker
    except Exception as e:
        tracker.errors.append(f"{type(e).__name__}: {e}")
        tracker.complete(success=False)
        raise
    finally:
        tracker.complete(success=tracker.success)


def enrich_error_context(
    error: Exception,
    context: RequestContext,
    additional_context: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Log an unexpected pipeline error with its run context and return it as a dict."""
    error_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **context.to_dict(),
    }
    if additional_context:
        error_data["additional_context"] = additional_context

    logger.error(
        f"{context.log_prefix()} ERROR | type={error_data['error_type']} | "
        f"message={error_data['error_message'][:200]}",
        exc_info=error
    )
    return error_data
