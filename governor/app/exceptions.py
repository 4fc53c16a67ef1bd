"""Custom exceptions for the governor application."""


class GovernorException(Exception):
    """Base class for governor exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Governor error"):
        self.message = message
        super().__init__(message)


class RateLimitExceededError(GovernorException):
    """Raised when a client has used up its request budget for the window.

    This is a policy outcome, not an internal failure. The code and message
    are fixed so clients can identify the condition.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "rate_limit_exceeded"
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(self, limit: int, reset_at: int, detail: str | None = None):
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(detail or self.default_message)

    def to_response(self) -> dict:
        """Convert to API response format."""
        return {
            "error": self.error_code,
            "message": self.message,
            "limit": self.limit,
            "reset_at": self.reset_at,
        }


class StoreUnavailableError(GovernorException):
    """Raised by a counting store when its transaction cannot complete.

    Covers connection errors, timeouts and protocol errors. The enforcer
    absorbs it and lets the request through, so it never reaches a client.
    """
    status_code = 503

    def __init__(self, error_type: str, detail: str | None = None):
        self.error_type = error_type
        super().__init__(detail or f"Counting store unavailable ({error_type})")
