"""Typed errors raised by the workflow engine and the test case synthesizer.

Routes never build these by hand; services raise them and the global
handlers in ``app.api.error_handlers`` turn them into HTTP responses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Diagnostic context attached to an error (never includes secrets)."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    analysis_id: Optional[str] = None
    operation: Optional[str] = None
    phase: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class TestForgeError(Exception):
    """Base class for every domain error."""

    __test__ = False  # keep pytest from collecting this as a test class

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 500,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.context = context or ErrorContext()

    def to_response(self) -> dict:
        """Standard REST error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "analysis_id": self.context.analysis_id,
                    "operation": self.context.operation,
                },
            }
        }

    def log_fields(self) -> dict:
        return {
            "error_code": self.code,
            "analysis_id": self.context.analysis_id,
            "operation": self.context.operation,
            "phase": self.context.phase,
        }


class ValidationError(TestForgeError):
    """Malformed or missing input."""
    def __init__(self, message: str, field_name: Optional[str] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, "VALIDATION_ERROR", 400, context)
        self.field_name = field_name


class NotFoundError(TestForgeError):
    """Unknown analysis, summit or project."""
    def __init__(self, resource_type: str, resource_id: str, context: Optional[ErrorContext] = None):
        super().__init__(f"{resource_type} '{resource_id}' not found", "NOT_FOUND", 404, context)
        self.resource_type = resource_type
        self.resource_id = resource_id


class AccessDeniedError(TestForgeError):
    """The caller does not own the resource."""
    def __init__(self, resource_type: str, resource_id: str, context: Optional[ErrorContext] = None):
        super().__init__(
            f"Access to {resource_type} '{resource_id}' denied", "ACCESS_DENIED", 403, context
        )


class InvalidStateError(TestForgeError):
    """Operation not allowed for the current status."""
    def __init__(self, message: str, current_status: Optional[str] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, "INVALID_STATE", 409, context)
        self.current_status = current_status


class UpstreamError(TestForgeError):
    """AI gateway failure or timeout. The caller may retry; the engine does not."""
    def __init__(self, message: str, retryable: bool = False, context: Optional[ErrorContext] = None):
        super().__init__(message, "UPSTREAM_ERROR", 503 if retryable else 502, context)
        self.retryable = retryable

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["retryable"] = self.retryable
        return body
