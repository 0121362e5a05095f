"""Error taxonomy for the signup gateway and its JSON error payload."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Closed set of error codes returned to callers."""

    VALIDATION = "validation"
    SEQUENCE = "sequence"
    SECURITY = "security"
    RATE_LIMIT = "rate_limit"
    VERIFICATION_MISMATCH = "verification_mismatch"
    INTERNAL = "internal"


class LeadflowError(Exception):
    """Base class for errors that terminate a request with an error payload."""

    error_code: ErrorCode = ErrorCode.INTERNAL
    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: list[dict[str, Any]] | None = None,
        reason: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.default_message
        self.errors = errors
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "errorCode": self.error_code.value,
        }
        if self.errors:
            payload["errors"] = self.errors
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(LeadflowError):
    """Malformed input. Reported, never retried."""

    error_code = ErrorCode.VALIDATION
    status_code = 400
    default_message = "Invalid submission"


class SecurityError(LeadflowError):
    """CAPTCHA or origin failure. Reported and audited, never retried."""

    error_code = ErrorCode.SECURITY
    status_code = 403
    default_message = "Request could not be verified"


class SequenceError(LeadflowError):
    """Step-ordering violation. The caller restarts the flow."""

    error_code = ErrorCode.SEQUENCE
    status_code = 409
    default_message = "Submission is not in a valid state for this step"


class RateLimitError(LeadflowError):
    """Signup denied by historical rate limits or the block list."""

    error_code = ErrorCode.RATE_LIMIT
    status_code = 429
    default_message = "A recent signup already exists for these details"


class VerificationError(LeadflowError):
    """Verification code mismatch, expiry or lockout."""

    error_code = ErrorCode.VERIFICATION_MISMATCH
    status_code = 400
    default_message = "The verification code is incorrect"


class InternalError(LeadflowError):
    """Unexpected failure. Generic message, fully logged."""

    error_code = ErrorCode.INTERNAL
    status_code = 500


class ExternalServiceDegradation(Exception):
    """A downstream collaborator was unreachable or answered with an error.

    Never surfaced to callers; the affected submission is routed to review.
    """

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        self.detail = detail
        super().__init__(f"{service} unavailable: {detail}" if detail else f"{service} unavailable")


async def leadflow_error_handler(request: Request, exc: LeadflowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed: %s %s (%s)",
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError().to_payload())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LeadflowError, leadflow_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
