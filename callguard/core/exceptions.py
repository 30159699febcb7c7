from typing import Optional


class ResilienceError(Exception):
    """Base exception for resilient call failures."""
    pass


class UpstreamError(ResilienceError):
    """Exception wrapping a failure raised by the protected operation."""
    def __init__(self, name: str, cause: BaseException, attempt: int = 1):
        self.name = name
        self.cause = cause
        self.attempt = attempt
        message = f"Call through {name} failed on attempt {attempt}: {cause!r}"
        super().__init__(message)


class CircuitOpenError(ResilienceError):
    """Exception raised when the circuit rejects a call."""
    def __init__(self, name: str, retry_after: Optional[float] = None):
        self.name = name
        self.retry_after = retry_after
        message = f"Circuit breaker is open for {name}"
        if retry_after:
            message += f", retry after {retry_after:.3f}s"
        super().__init__(message)


class RateLimitedError(ResilienceError):
    """Exception raised when no rate limit token is available."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Rate limit exceeded for {name}")


class RetryExhaustedError(ResilienceError):
    """Exception raised when the retry policy gives up."""
    def __init__(self, name: str, attempts: int, last_error: UpstreamError):
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        message = (
            f"Call through {name} failed after {attempts} attempts. "
            f"Last error: {last_error.cause!r}"
        )
        super().__init__(message)


class CacheUnavailableError(ResilienceError):
    """Exception raised when the result cache cannot serve a request."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Result cache unavailable: {reason}")


class ConfigurationError(ResilienceError, ValueError):
    """Exception raised for invalid configuration."""
    pass
