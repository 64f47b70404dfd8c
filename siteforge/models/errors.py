"""Error models for the build API and orchestrator construction"""

from enum import Enum
from typing import Any, Dict, Optional
import uuid


class ErrorCode(str, Enum):
    """Stable codes returned in error payloads"""
    NOT_FOUND = "NOT_FOUND"
    NOT_READY = "NOT_READY"
    CANCELLED = "CANCELLED"
    GENERATION_FAILED = "GENERATION_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


HTTP_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NOT_READY: 409,
    ErrorCode.CANCELLED: 409,
    ErrorCode.GENERATION_FAILED: 500,
    ErrorCode.CONFIGURATION_ERROR: 500,
}


class ApplicationError(Exception):
    """
    Error raised at the service boundary and rendered by the app's exception handler.

    Pipeline problems inside a run never surface as this; they become
    warnings/errors on the PipelineResult instead.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        retryable: bool = False,
        hint: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_id = uuid.uuid4().hex
        self.code = code
        self.message = message
        self.retryable = retryable
        self.hint = hint
        self.session_id = session_id

    @property
    def http_status(self) -> int:
        return HTTP_STATUS.get(self.code, 500)

    def model_dump(self) -> Dict[str, Any]:
        """Payload for API responses"""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "message": self.message,
            "hint": self.hint,
            "retryable": self.retryable,
            "session_id": self.session_id,
        }
