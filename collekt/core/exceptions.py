"""
Core Exceptions

Custom exceptions for the collekt API.
"""

from enum import Enum


class CollektError(Exception):
    """Base exception for the collekt API."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidInputError(CollektError):
    """
    Caller input error.

    Rejected immediately and never retried. The HTTP layer answers 400.
    """


class MissingParameterError(InvalidInputError):
    """
    Raised when a required subject identifier is missing from a request.

    The message matches the API error body, e.g. "Address parameter is required".
    """

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"{parameter} parameter is required")


class InvalidSubjectError(InvalidInputError):
    """Raised when a subject identifier is malformed for its subject kind."""

    def __init__(self, parameter: str, value: str):
        self.parameter = parameter
        self.value = value
        super().__init__(f"Invalid {parameter}: {value}")


class InvalidFilterConfigError(CollektError):
    """Raised when a token filter configuration fails validation."""


class CacheError(CollektError):
    """Raised by cache backends; callers treat it as a soft failure."""


class ProviderErrorKind(str, Enum):
    """Failure classes surfaced by upstream providers"""
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    GENERIC = "generic"


class ProviderError(CollektError):
    """
    Failure of an upstream provider operation.

    Errors are matched by ``kind`` rather than by subclass:

        try:
            await provider.get_token_balances(address, pagination)
        except ProviderError as e:
            if e.kind is ProviderErrorKind.RATE_LIMIT:
                ...
    """

    def __init__(
        self,
        message: str,
        provider: str,
        operation: str,
        kind: ProviderErrorKind = ProviderErrorKind.GENERIC,
        status_code: int | None = None,
        retry_after_seconds: float | None = None,
    ):
        self.provider = provider
        self.operation = operation
        self.kind = kind
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Whether a retry may succeed (timeouts, throttling, 5xx, connection errors)."""
        if self.kind in (ProviderErrorKind.TIMEOUT, ProviderErrorKind.RATE_LIMIT):
            return True
        return self.status_code is None or self.status_code >= 500

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "operation": self.operation,
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "retry_after_seconds": self.retry_after_seconds,
        }


class ProviderTimeoutError(ProviderError):
    """Provider operation exceeded its configured timeout."""

    def __init__(self, provider: str, operation: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Provider {provider} timed out after {timeout_seconds:g}s during {operation}",
            provider,
            operation,
            kind=ProviderErrorKind.TIMEOUT,
        )


class ProviderRateLimitError(ProviderError):
    """Upstream throttled the request (HTTP 429)."""

    def __init__(
        self,
        provider: str,
        operation: str,
        retry_after_seconds: float | None = None,
    ):
        suffix = f". Retry after {retry_after_seconds:g}s" if retry_after_seconds else ""
        super().__init__(
            f"Provider {provider} rate limited during {operation}{suffix}",
            provider,
            operation,
            kind=ProviderErrorKind.RATE_LIMIT,
            status_code=429,
            retry_after_seconds=retry_after_seconds,
        )


class OrchestrationError(CollektError):
    """
    Terminal failure of a collection fetch after retries and fallback.

    Identifies the last provider and operation that failed.
    """

    def __init__(self, message: str, provider: str | None = None, operation: str | None = None):
        self.provider = provider
        self.operation = operation
        super().__init__(message)
