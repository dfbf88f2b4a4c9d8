"""
Application Exceptions Module.

Centralized exception definitions with:
- Structured error responses
- HTTP status code mapping
- Error codes for client handling

Generation errors never reach the client: the decision engine recovers
from them with fixed fallback content. Ledger write failures do, since
an unlogged decision must be retried by the caller.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import structlog

logger = structlog.get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Application error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    INVALID_STATE_TRANSITION = "E1002"

    # Generation service errors (5xxx)
    GENERATION_ERROR = "E5000"
    GENERATION_TIMEOUT = "E5001"
    GENERATION_PARSE_ERROR = "E5002"
    GENERATION_UNAVAILABLE = "E5003"

    # Ledger errors (6xxx)
    LEDGER_WRITE_FAILED = "E6000"
    LEDGER_READ_FAILED = "E6001"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """
    Standard error response.

    All API errors return this unified format.
    """

    error: ErrorDetail
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class KdsaError(Exception):
    """Base exception for the decision engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                field=self.field,
                details=self.details,
            ),
            request_id=request_id,
            timestamp=datetime.utcnow().isoformat(),
        )


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ValidationError(KdsaError):
    """Invalid caller input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            field=field,
            details=details,
        )


class InvalidStateTransitionError(KdsaError):
    """A decision run tried to skip or repeat a lifecycle state."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Invalid decision state transition: {current} -> {target}",
            code=ErrorCode.INVALID_STATE_TRANSITION,
            status_code=500,
            details={"current": current, "target": target},
        )


class GenerationError(KdsaError):
    """The generative text service failed."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.GENERATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=502,
            details=details,
        )


class GenerationTimeoutError(GenerationError):
    """The generative text service did not answer in time."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"Generation timed out after {timeout_seconds}s",
            code=ErrorCode.GENERATION_TIMEOUT,
            details={"timeout_seconds": timeout_seconds},
        )


class GenerationParseError(GenerationError):
    """Generated output was not JSON or did not match the expected schema."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.GENERATION_PARSE_ERROR,
            details=details,
        )


class GenerationUnavailableError(GenerationError):
    """No generative service is configured."""

    def __init__(self, reason: str = "generation service not configured"):
        super().__init__(
            message=reason,
            code=ErrorCode.GENERATION_UNAVAILABLE,
        )


class LedgerWriteError(KdsaError):
    """
    The ledger backend refused or failed an append.

    The unlogged payload is kept on the exception so the caller can
    retry the append. The chain tail is not advanced.
    """

    def __init__(
        self,
        message: str,
        pending: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.pending = pending
        details = dict(details or {})
        if pending:
            details["pending_id"] = pending.get("decision_id") or pending.get("event_id")
        super().__init__(
            message=message,
            code=ErrorCode.LEDGER_WRITE_FAILED,
            status_code=503,
            details=details,
        )


class LedgerReadError(KdsaError):
    """The ledger backend could not be read."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.LEDGER_READ_FAILED,
            status_code=503,
            details=details,
        )


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def kdsa_exception_handler(
    request: Request,
    exc: KdsaError,
) -> JSONResponse:
    """Handle KdsaError exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "kdsa_error",
        error_code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "unhandled_exception",
        error=str(exc),
        request_id=request_id,
    )

    error = KdsaError(message="An internal error occurred")

    return JSONResponse(
        status_code=500,
        content=error.to_response(request_id).model_dump(),
    )


def register_exception_handlers(app):
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(KdsaError, kdsa_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
