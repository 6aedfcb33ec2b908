"""Error Handlers — map every exception leaving a route onto the {success: false} envelope.

Invariants:
    - SettlementError → its own http_status and to_response() body
    - RequestValidationError → 400 VALIDATION_ERROR with one detail per bad field
    - Anything else → 500 INTERNAL_ERROR; the exception text stays in the logs
    - 429 responses carry Retry-After (whole seconds, at least 1) and X-RateLimit-*

Design Decisions:
    - Client mistakes (4xx with a public message) log at WARNING, the rest at ERROR
    - Body-level field names come from the pydantic loc path, minus the leading "body"
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from desynth.core.errors import ErrorSeverity, RateLimitError, SettlementError

logger = logging.getLogger(__name__)


def _failure(code: str, message: str, category: str, severity: ErrorSeverity, **extra) -> dict:
    return {
        "success": False,
        "error": {
            "code": code, "message": message,
            "category": category, "severity": severity.value, **extra,
        },
    }


def _field_path(loc: tuple) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] == "body":
        parts = parts[1:]
    return ".".join(parts)


def rate_limit_headers(exc: RateLimitError) -> dict[str, str]:
    retry_after_s = math.ceil((exc.context.retry_after_ms or 0) / 1000)
    return {
        "Retry-After": str(max(1, retry_after_s)),
        "X-RateLimit-Remaining": str(exc.remaining),
        "X-RateLimit-Reset": str(exc.reset_at_ms),
    }


async def handle_settlement_error(request: Request, exc: SettlementError) -> JSONResponse:
    client_fault = exc.http_status < 500 and exc.expose_message
    logger.log(
        logging.WARNING if client_fault else logging.ERROR,
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "booking_id": exc.context.booking_id,
            "tx_hash": exc.context.tx_hash,
        },
    )
    headers = rate_limit_headers(exc) if isinstance(exc, RateLimitError) else None
    return JSONResponse(exc.to_response(), status_code=exc.http_status, headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": _field_path(e["loc"]), "message": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    logger.warning(
        f"Rejected request body: {[d['field'] for d in details]}",
        extra={"path": request.url.path, "error_code": "VALIDATION_ERROR"},
    )
    return JSONResponse(
        _failure(
            "VALIDATION_ERROR", "Invalid request data", "validation",
            ErrorSeverity.ERROR, details=details,
        ),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__}: {exc}",
        exc_info=exc, extra={"path": request.url.path},
    )
    return JSONResponse(
        _failure(
            "INTERNAL_ERROR", "An unexpected error occurred", "internal",
            ErrorSeverity.CRITICAL,
        ),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SettlementError, handle_settlement_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
