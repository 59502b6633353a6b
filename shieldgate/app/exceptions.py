"""Custom exceptions for ShieldGate."""


class ShieldGateException(Exception):
    """Base class for ShieldGate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "ShieldGate error"):
        self.message = message
        super().__init__(message)


class ConfigurationError(ShieldGateException):
    """Raised when an explicitly supplied option is out of range.

    Missing options are not errors; they fall back to documented defaults.
    """
    status_code = 500


class StoreError(ShieldGateException):
    """Raised when a state store cannot complete an operation.

    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, message: str = "State store unavailable", key: str | None = None):
        self.key = key
        super().__init__(message)


class StoreContentionError(StoreError):
    """Raised when an optimistic update keeps losing to concurrent writers."""

    def __init__(self, key: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Gave up updating key after {attempts} conflicting attempts",
            key=key,
        )


class AccessDeniedError(ShieldGateException):
    """Raised when the shield denies a request.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403

    def __init__(self, message: str, detected_attacks: list[str] | None = None):
        self.detected_attacks = list(detected_attacks or [])
        super().__init__(message)

    def to_response(self) -> dict:
        body: dict = {"error": self.message}
        if self.detected_attacks:
            body["detected_attacks"] = self.detected_attacks
        return body


class RateLimitExceededError(ShieldGateException):
    """Raised when a client has no capacity left in its bucket.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, retry_after: int, detail: str | None = None):
        self.retry_after = retry_after
        super().__init__(detail or "Rate limit exceeded. Please try again later.")

    def to_response(self) -> dict:
        return {
            "error": "rate_limit_exceeded",
            "message": self.message,
            "retry_after": self.retry_after,
        }
