# backend/errors.py
"""
Error taxonomy of the relay.

Every failure carries a machine-checkable ``code``, the HTTP status it maps
to and optional ``extra`` fields (job id, upstream status, ...) that are
merged into the JSON error body by ``backend.app``.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    code: str = "InternalError"
    status_code: int = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


# ---------------------------------------------------------------------------
# Client errors (400). Never reach the network.
# ---------------------------------------------------------------------------


class RequestValidationFailed(RelayError):
    code = "ValidationError"
    status_code = 400


class MissingPrompt(RequestValidationFailed):
    code = "MissingPrompt"


class InvalidDimensionAlignment(RequestValidationFailed):
    code = "InvalidDimensionAlignment"


class DimensionTooSmall(RequestValidationFailed):
    code = "DimensionTooSmall"


class MegapixelExceeded(RequestValidationFailed):
    code = "MegapixelExceeded"


class DimensionTooLarge(RequestValidationFailed):
    code = "DimensionTooLarge"


class InvalidFormat(RequestValidationFailed):
    code = "InvalidFormat"


class InvalidSafetyTolerance(RequestValidationFailed):
    code = "InvalidSafetyTolerance"


# ---------------------------------------------------------------------------
# Server misconfiguration
# ---------------------------------------------------------------------------


class CredentialsNotConfigured(RelayError):
    code = "CredentialsNotConfigured"
    status_code = 500


# ---------------------------------------------------------------------------
# Upstream failures
# ---------------------------------------------------------------------------


class UpstreamRejected(RelayError):
    code = "UpstreamRejected"

    def __init__(self, message: str, upstream_status: int, payload: Any = None, **extra: Any):
        super().__init__(message, upstream_status=upstream_status, details=payload, **extra)
        self.upstream_status = upstream_status
        self.payload = payload
        # 4xx/5xx from the upstream are forwarded 1:1
        self.status_code = upstream_status if 400 <= upstream_status < 600 else 502


class RateLimited(UpstreamRejected):
    code = "RateLimited"

    def __init__(self, message: str, retry_after_seconds: int = 60, payload: Any = None):
        super().__init__(
            message,
            upstream_status=429,
            payload=payload,
            retry_after=retry_after_seconds,
        )
        self.retry_after_seconds = retry_after_seconds


class UpstreamUnavailable(RelayError):
    code = "UpstreamUnavailable"
    status_code = 502


class MissingPollEndpoint(RelayError):
    code = "MissingPollEndpoint"
    status_code = 500


class ReadyWithoutImage(RelayError):
    code = "ReadyWithoutImage"
    status_code = 500


class GenerationFailed(RelayError):
    code = "GenerationFailed"
    status_code = 500


class GenerationTimeout(RelayError):
    code = "GenerationTimeout"
    status_code = 504

    def __init__(self, message: str, job_id: str, polling_url: str, attempts: Optional[int] = None):
        super().__init__(
            message,
            job_id=job_id,
            request_id=job_id,
            polling_url=polling_url,
            attempts=attempts,
        )
        self.job_id = job_id
        self.polling_url = polling_url


class ClientDisconnected(RelayError):
    code = "ClientDisconnected"
    status_code = 499


class EnhancementFailed(RelayError):
    code = "EnhancementFailed"
    status_code = 502
