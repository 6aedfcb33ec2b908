"""Error Hierarchy — typed, categorized exceptions for all settlement failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (4xx) are deterministic and safe to show; infrastructure errors are
      logged in full and returned generically (expose_message=False)
    - to_response() produces the {success: false, error: {...}} REST envelope

Design Decisions:
    - Single hierarchy with SettlementError base: FastAPI global handler catches all
      (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Verification rejections subclass ExternalServiceError but carry 400 — the caller
      may retry later, which is different from a permanent state rejection
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    FORBIDDEN = "forbidden"
    RATE_LIMIT = "rate_limit"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    booking_id: str | None = None
    tx_hash: str | None = None
    action: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class SettlementError(Exception):
    """Base exception for all settlement errors."""

    expose_message = True
    generic_message = "An unexpected error occurred"

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.details = details

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message if self.expose_message else self.generic_message,
            "category": self.category.value,
            "severity": self.severity.value,
        }
        if self.details and self.expose_message:
            error["details"] = self.details
        return {"success": False, "error": error}


# ─── Domain Errors (4xx) ────────────────────────────────────────

class ValidationError(SettlementError):
    """Malformed id, address, hash or amount."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400, details={"field": field},
        )
        self.field = field


class InvalidActionError(SettlementError):
    """Action-dispatch endpoint received an action it does not route."""
    def __init__(
        self, action: str | None, supported: list[str],
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Invalid action: {action!r}", "INVALID_ACTION",
            ErrorCategory.VALIDATION, ErrorSeverity.WARNING, context, 400,
            details={"action": action, "supportedActions": supported},
        )
        self.action = action


class InvalidStateError(SettlementError):
    """Transition attempted from a disallowed current status."""
    def __init__(
        self,
        message: str,
        current: str | None = None,
        expected: list[str] | None = None,
        code: str = "INVALID_STATE",
        context: ErrorContext | None = None,
    ):
        details: dict[str, Any] = {}
        if current is not None:
            details["currentStatus"] = current
        if expected:
            details["expectedStatus"] = expected
        super().__init__(
            message, code, ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409, details=details or None,
        )
        self.current = current
        self.expected = expected or []


class ResourceNotFoundError(SettlementError):
    """Referenced booking or escrow does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            f"{resource_type.upper()}_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ForbiddenError(SettlementError):
    """Caller lacks the capability for this action."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.FORBIDDEN,
            ErrorSeverity.WARNING, context, 403,
        )


class RateLimitError(SettlementError):
    """Sliding-window budget exhausted."""
    def __init__(
        self, remaining: int, reset_at_ms: int, retry_after_ms: int,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            "Too many requests, please try again later",
            "RATE_LIMIT_EXCEEDED", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
            details={"remaining": remaining, "resetAt": reset_at_ms},
        )
        self.remaining = remaining
        self.reset_at_ms = reset_at_ms


# ─── External / Infrastructure Errors ───────────────────────────

class ExternalServiceError(SettlementError):
    """Blockchain RPC failed or timed out — retry later."""
    expose_message = False
    generic_message = "External service unavailable, please retry later"

    def __init__(
        self,
        message: str,
        code: str = "EXTERNAL_SERVICE_ERROR",
        http_status: int = 502,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, http_status, details=details,
        )


class TransactionNotVerifiedError(ExternalServiceError):
    """On-chain confirmation missing or too shallow; escrow untouched."""
    expose_message = True

    def __init__(
        self, message: str, code: str, confirmations: int | None = None,
        context: ErrorContext | None = None,
    ):
        details: dict[str, Any] = {"retryable": True}
        if confirmations is not None:
            details["confirmations"] = confirmations
        super().__init__(
            message, code=code, http_status=400, context=context, details=details,
        )
        self.confirmations = confirmations


class ConfigError(SettlementError):
    """Required external-service credentials are missing."""
    expose_message = False
    generic_message = "Service configuration error"

    def __init__(self, message: str, setting: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIG_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.setting = setting


class DatabaseError(SettlementError):
    """Database operation failed."""
    expose_message = False
    generic_message = "Database temporarily unavailable"

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
