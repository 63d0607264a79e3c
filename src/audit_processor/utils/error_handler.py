"""Error taxonomy and failure classification for the audit pipeline.

Local, expected failures (not found, validation, parse, shield violations,
chunk failures) are absorbed close to where they happen. Only the
retry-exhausted service error and unexpected exceptions reach the top of
``AuditProcessor.run``, which turns them into a terminal status.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


class AuditPipelineError(Exception):
    """Base class for pipeline errors with a user-facing message."""

    def __init__(self, message: str, details: str = ""):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(AuditPipelineError):
    """The requested audit identifier has no backing record."""

    def __init__(self, audit_record_id: str):
        self.audit_record_id = audit_record_id
        super().__init__(f"Audit record not found: {audit_record_id}")


class InputValidationError(AuditPipelineError):
    """A required input field is missing from the audit record."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Missing required field: {field_name}")


class ConfigurationError(AuditPipelineError):
    """Required settings or secrets are missing."""


class ParseError(AuditPipelineError):
    """The generative response could not be decoded into the report schema."""


class ServiceError(AuditPipelineError):
    """Failure reported by the generative-analysis service."""

    def __init__(
        self,
        message: str,
        details: str = "",
        is_retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        self.is_retryable = is_retryable
        self.status_code = status_code
        super().__init__(message, details)


class RetryExhaustedError(ServiceError):
    """Every attempt failed with a retryable error."""

    def __init__(self, last_error: BaseException, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        description = describe_error(last_error)
        super().__init__(
            message=f"Generative service still failing after {attempts} attempts: {description.message}",
            details=type(last_error).__name__,
            is_retryable=True,
            status_code=description.status_code,
        )


@dataclass(frozen=True)
class ErrorDescription:
    """Normalized view of an exception: message text plus transport status."""

    message: str
    status_code: Optional[int] = None


RATE_LIMIT_STATUS_CODES = frozenset({429, 503, 529})
RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "quota", "overloaded")
_STATUS_CODE_PATTERN = re.compile(r"\b(429|503|529)\b")


def describe_error(error: BaseException) -> ErrorDescription:
    """Reduce an exception to its message and, where available, status code.

    Anthropic ``APIStatusError`` and httpx ``HTTPStatusError`` both expose the
    HTTP status (directly or via ``response``); a ``RetryExhaustedError`` is
    described by the failure that exhausted it.
    """
    if isinstance(error, RetryExhaustedError):
        return describe_error(error.last_error)

    status_code = getattr(error, "status_code", None)
    if status_code is None:
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None

    return ErrorDescription(message=str(error), status_code=status_code)


def is_rate_limit_error(error: BaseException) -> bool:
    """True when a failure signals rate limiting, overload or quota exhaustion.

    Shared by the analyzer's retry loop and the processor's terminal status
    classification (PENDING instead of FAILED).
    """
    if isinstance(error, RetryExhaustedError):
        return True
    if isinstance(error, ServiceError) and error.is_retryable:
        return True

    description = describe_error(error)
    if description.status_code in RATE_LIMIT_STATUS_CODES:
        return True

    text = description.message.lower()
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return True
    return bool(_STATUS_CODE_PATTERN.search(text))
