"""
Error handling for the billing API and the invoice engine.

Two layers live here:

- The invoice engine's own error taxonomy (``BillingEngineError`` and
  subclasses). These are plain exceptions raised by the services; each
  carries a short human-readable ``reason`` suitable for bulk result
  summaries.
- RFC 7807 Problem Details responses for the HTTP surface
  (``BillingAPIException`` and the handlers registered in ``main.py``).

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid
from datetime import datetime

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Invoice engine errors
# ---------------------------------------------------------------------------


class BillingEngineError(Exception):
    """Base class for invoice engine failures."""

    reason = "invoice generation failed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.reason
        super().__init__(self.detail)


class BillingValidationError(BillingEngineError):
    """Caller input rejected before any backend call."""

    reason = "invalid request"


class InvalidRangeError(BillingValidationError):
    """Period selection does not resolve to a valid date range."""

    reason = "invalid date range"


class EmptySelectionError(BillingValidationError):
    """Nothing was selected to reconcile."""

    reason = "nothing selected to invoice"


class NoBillableFactsError(BillingEngineError):
    """Nothing remains to invoice for the client and period."""

    reason = "no billable bookings in period"


class DuplicateInvoiceError(BillingEngineError):
    """An invoice already covers the client and period."""

    reason = "duplicate invoice already exists for period"


class SourceMarkingError(BillingEngineError):
    """Consumed sources could not all be flagged as invoiced."""

    reason = "billable items changed while the invoice was being written"


class InvoiceNotEditableError(BillingEngineError):
    """Invoice status does not allow new line items."""

    reason = "invoice can no longer be edited"


class InvoiceNotDeletableError(BillingEngineError):
    """Invoice status does not allow deletion."""

    reason = "invoice can no longer be deleted"


class InvoiceNotFoundError(BillingEngineError):
    reason = "invoice not found"


class PaymentNotAllowedError(BillingEngineError):
    """Invoice status does not accept payments."""

    reason = "payments cannot be recorded against this invoice"


# ---------------------------------------------------------------------------
# RFC 7807 problem details
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    """Standardized error codes for the billing API."""

    # Validation
    VALIDATION_ERROR = "VAL_001"
    INVALID_FORMAT = "VAL_002"
    MISSING_FIELD = "VAL_003"

    # Resource
    NOT_FOUND = "RES_001"
    ALREADY_EXISTS = "RES_002"
    CONFLICT = "RES_003"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"
    OPERATION_NOT_ALLOWED = "BIZ_003"

    # External Services
    DATABASE_ERROR = "EXT_004"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


def _new_trace_id() -> str:
    return str(uuid.uuid4())[:12]


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs
        errors: List of field-level validation errors (for 422)
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(description="Short, human-readable summary of the problem")
    status: int = Field(description="HTTP status code")
    detail: str = Field(description="Human-readable explanation specific to this occurrence")
    instance: Optional[str] = Field(default=None, description="URI reference for this specific occurrence")
    code: str = Field(description="Machine-readable error code")
    timestamp: str = Field(description="ISO 8601 timestamp")
    trace_id: str = Field(description="Unique trace ID for debugging")
    errors: Optional[List[Dict[str, Any]]] = Field(default=None, description="Field-level validation errors")

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "https://api.care-billing.local/problems/biz-001",
                "title": "Bad Request",
                "status": 400,
                "detail": "no billable bookings in period",
                "instance": "/api/v2/billing/clients/4b1c/invoices",
                "code": "BIZ_001",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456"
            }
        }
    }


def _problem_type(code: ErrorCode) -> str:
    return f"https://api.care-billing.local/problems/{code.value.lower().replace('_', '-')}"


class BillingAPIException(HTTPException):
    """
    Base HTTP exception with RFC 7807 support.

    Usage:
        raise BillingAPIException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Invoice not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _new_trace_id()
        self.timestamp = datetime.utcnow().isoformat() + "Z"

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title based on status code."""
        titles = {
            400: "Bad Request",
            404: "Not Found",
            409: "Conflict",
            422: "Validation Error",
            500: "Internal Server Error",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")

    def to_problem_detail(self) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Convenience exception classes

class NotFoundError(BillingAPIException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str, instance: Optional[str] = None):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            instance=instance,
        )


class ValidationError(BillingAPIException):
    """Validation error (422)."""

    def __init__(self, detail: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class ConflictError(BillingAPIException):
    """Resource conflict (409)."""

    def __init__(self, detail: str):
        super().__init__(status_code=409, code=ErrorCode.CONFLICT, detail=detail)


class BusinessRuleError(BillingAPIException):
    """Business rule violation (400)."""

    def __init__(self, detail: str):
        super().__init__(status_code=400, code=ErrorCode.BUSINESS_RULE_VIOLATION, detail=detail)


def engine_error_to_http(exc: BillingEngineError, resource_id: Optional[str] = None) -> BillingAPIException:
    """Map an engine error onto the matching problem response."""
    if isinstance(exc, BillingValidationError):
        return ValidationError(exc.detail)
    if isinstance(exc, InvoiceNotFoundError):
        return NotFoundError("Invoice", resource_id or "unknown")
    if isinstance(exc, (DuplicateInvoiceError, SourceMarkingError)):
        return ConflictError(exc.detail)
    return BusinessRuleError(exc.detail)


# Exception handlers for FastAPI

def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=BillingAPIException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=datetime.utcnow().isoformat() + "Z",
        trace_id=trace_id or _new_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )
    _add_cors_headers(response, request, allowed_origins)
    return response


def _add_cors_headers(response: JSONResponse, request: Request, allowed_origins: Optional[List[str]]):
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(BillingAPIException, handlers["api"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_api_exception(request: Request, exc: BillingAPIException) -> JSONResponse:
        logger.warning(
            f"BillingAPIException: {exc.code.value} - {exc.detail}",
            extra={"trace_id": exc.trace_id, "status_code": exc.status_code, "path": request.url.path},
        )
        if exc.instance is None:
            exc.instance = str(request.url.path)
        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_problem_detail().model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )
        _add_cors_headers(response, request, allowed_origins)
        return response

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }
        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = _new_trace_id()

        logger.error(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        # Don't expose internal details in production
        from care_billing.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "api": handle_api_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
