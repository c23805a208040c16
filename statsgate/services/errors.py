"""
Service layer exceptions.

Hierarchy:
- ServiceError
  - ClientError: bad input, never retried
    - InvalidInputError, NotFoundError, UnauthorizedError
  - UnrecoverableNetworkError: DNS failure, certificate problems, never retried
  - TransientUpstreamError: timeouts, 5xx, connection resets, retried
    - RequestTimeoutError
  - RateLimitedError: upstream 429, retried honouring retry_after
  - BreakerOpenError: circuit breaker denied the call, fails fast
  - StoreError: cache store unavailable, treated as a miss
  - RetryCancelledError: cancellation requested between attempts
  - ConfigurationError: settings that would make the service misbehave
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class ClientError(ServiceError):
    """Request was rejected because of the caller's input."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status: int | None = None,
    ):
        self.status = status
        super().__init__(message, service_id=service_id)


class InvalidInputError(ClientError):
    """Input failed validation before any request was made."""

    pass


class NotFoundError(ClientError):
    """Requested resource does not exist upstream."""

    pass


class UnauthorizedError(ClientError):
    """Credentials were missing, invalid or lack permission."""

    pass


class UnrecoverableNetworkError(ServiceError):
    """Network failure that a retry cannot fix (DNS, TLS certificate)."""

    pass


class TransientUpstreamError(ServiceError):
    """Upstream failed in a way that may succeed on retry."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status: int | None = None,
    ):
        self.status = status
        super().__init__(message, service_id=service_id)


class RequestTimeoutError(TransientUpstreamError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RateLimitedError(ServiceError):
    """Upstream rate limit exceeded."""

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        self.status = 429
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id)


class BreakerOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class StoreError(ServiceError):
    """Cache store operation failed."""

    pass


class RetryCancelledError(ServiceError):
    """Retry loop was cancelled before it could finish."""

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"'{operation}' cancelled after {attempts} attempt(s)")


class ConfigurationError(ServiceError):
    """Settings are inconsistent; the service refuses to start."""

    pass
