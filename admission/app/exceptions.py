"""Custom exceptions for the admission gateway."""

from typing import Optional


class AdmissionError(Exception):
    """Base class for admission exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Admission error"):
        self.message = message
        super().__init__(message)


class UnsupportedAlgorithmError(AdmissionError):
    """Raised when a policy names an algorithm no limiter implements.

    This is a configuration error and should surface when routes are
    declared, not per request.
    """
    status_code = 500

    def __init__(self, algorithm: object):
        self.algorithm = algorithm
        super().__init__(f"Unsupported rate limit algorithm: {algorithm}")


class InvalidPolicyError(AdmissionError):
    """Raised when a rate limit policy has non-positive bounds or an unknown strategy."""
    status_code = 500


class StoreUnavailableError(AdmissionError):
    """Raised when the shared state store cannot be reached.

    Covers connection failures, timeouts and any Redis-level error.
    Maps to HTTP 503 Service Unavailable when surfaced directly.
    """
    status_code = 503

    def __init__(self, message: str = "Rate limit store unavailable", error_type: str = "store_error"):
        self.error_type = error_type
        super().__init__(message)


class ScriptRegistrationError(StoreUnavailableError):
    """Raised when an atomic Lua routine cannot be registered or executed.

    Handled exactly like StoreUnavailableError by the orchestrator.
    """

    def __init__(self, message: str = "Lua script registration failed"):
        super().__init__(message, error_type="script_error")


class RateLimitExceededError(AdmissionError):
    """Raised when a client has used up its quota.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, headers: Optional[dict[str, str]] = None):
        self.headers = headers or {}
        super().__init__("Rate limit exceeded. Please try again later.")


class RateLimitUnavailableError(AdmissionError):
    """Raised when the store is down and the policy fails closed.

    Maps to HTTP 503 Service Unavailable, distinct from a normal 429 denial.
    """
    status_code = 503

    def __init__(self, headers: Optional[dict[str, str]] = None):
        self.headers = headers or {}
        super().__init__("Rate limiting is temporarily unavailable.")
