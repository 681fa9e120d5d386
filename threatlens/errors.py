"""
Error taxonomy shared by the pipeline and the API layer.

Every error carries a stable machine-checkable ``kind`` and a
human-readable message that is safe to show to the caller.
"""

import re
from enum import Enum
from typing import Any, Dict, Optional


class ThreatLensError(Exception):
    """Base class for all errors surfaced to callers."""

    kind: str = "pipeline"
    status_code: int = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "message": self.message}
        body.update(self.extra)
        return body


class ValidationError(ThreatLensError):
    """Malformed request body or query; the user must correct the input."""

    kind = "validation"
    status_code = 400


class UnauthenticatedError(ThreatLensError):
    kind = "unauthenticated"
    status_code = 401


class ForbiddenError(ThreatLensError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(ThreatLensError):
    kind = "not_found"
    status_code = 404


class ConflictError(ThreatLensError):
    """Analysis already running; the client may poll for completion."""

    kind = "conflict"
    status_code = 409


class RateLimitedError(ThreatLensError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after_ms: int):
        super().__init__(message, retryAfterMs=retry_after_ms)
        self.retry_after_ms = retry_after_ms


class PipelineError(ThreatLensError):
    """Unexpected failure during an analysis phase."""

    kind = "pipeline"
    status_code = 500


class MalformedResponseError(ValueError):
    """Provider answered, but not with the JSON the prompt asked for."""


class ProviderFailure(str, Enum):
    """Sanitized classes of upstream provider failures."""

    INVALID_CREDENTIALS = "invalid_credentials"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    UNREACHABLE = "unreachable"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"

    @property
    def message(self) -> str:
        return _PROVIDER_MESSAGES[self]


_PROVIDER_MESSAGES = {
    ProviderFailure.INVALID_CREDENTIALS: "Invalid API key",
    ProviderFailure.TIMEOUT: "Connection timed out - check your endpoint URL",
    ProviderFailure.NOT_FOUND: "Resource not found - check your configuration",
    ProviderFailure.ACCESS_DENIED: "Access denied - check your credentials and permissions",
    ProviderFailure.UNREACHABLE: "Endpoint not reachable - check the URL",
    ProviderFailure.RATE_LIMITED: "Rate limited - try again in a moment",
    ProviderFailure.MALFORMED_RESPONSE: "Provider returned a malformed response",
    ProviderFailure.UNKNOWN: "Provider request failed",
}

# Order matters: the first matching class wins.
_PROVIDER_RULES = [
    (re.compile(r"invalid.*api.?key|unauthorized|authentication|\b401\b", re.I),
     ProviderFailure.INVALID_CREDENTIALS),
    (re.compile(r"timeout|timed out|ETIMEDOUT|ECONNREFUSED|connection refused", re.I),
     ProviderFailure.TIMEOUT),
    (re.compile(r"no.such.bucket|bucket.*not.*found|model.*not.*found|\b404\b", re.I),
     ProviderFailure.NOT_FOUND),
    (re.compile(r"access.denied|forbidden|permission|\b403\b", re.I),
     ProviderFailure.ACCESS_DENIED),
    (re.compile(r"ENOTFOUND|getaddrinfo|name or service not known|nodename nor servname", re.I),
     ProviderFailure.UNREACHABLE),
    (re.compile(r"rate.?limit|too.many.requests|\b429\b", re.I),
     ProviderFailure.RATE_LIMITED),
]


def classify_provider_error(error: BaseException) -> ProviderFailure:
    """
    Classify a raw provider/storage exception.

    Only the class is returned; the raw text may contain hostnames,
    bucket names or key fragments and must not reach the caller.
    """
    if isinstance(error, MalformedResponseError):
        return ProviderFailure.MALFORMED_RESPONSE
    raw = f"{type(error).__name__}: {error}"
    for pattern, failure in _PROVIDER_RULES:
        if pattern.search(raw):
            return failure
    return ProviderFailure.UNKNOWN


class UpstreamProviderError(ThreatLensError):
    """LLM or storage connectivity/credential failure, already sanitized."""

    kind = "upstream_provider"
    status_code = 502

    def __init__(self, failure: ProviderFailure, provider: Optional[str] = None):
        super().__init__(failure.message, reason=failure.value)
        self.failure = failure
        self.provider = provider

    @classmethod
    def from_exception(cls, error: BaseException, provider: Optional[str] = None) -> "UpstreamProviderError":
        return cls(classify_provider_error(error), provider=provider)
