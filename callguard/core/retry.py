import random
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ErrorClassifier = Callable[[BaseException], bool]


class RetryConfig(BaseModel):
    """Retry and backoff configuration. Delays are in seconds."""
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts, including the first call"
    )
    base_delay: float = Field(
        default=0.1,
        ge=0.0,
        description="Delay before the first retry"
    )
    multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Growth factor applied per attempt"
    )
    max_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Upper bound on the pre-jitter delay"
    )
    jitter_factor: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Jitter drawn from [0, delay * jitter_factor)"
    )

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryConfig":
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay cannot be smaller than base_delay")
        return self


def retry_all(error: BaseException) -> bool:
    """Default classifier: every exception is transient."""
    return True


class RetryPolicy:
    """
    Decides whether a failed attempt is retried and how long to wait.

    The policy holds no per-call state, so one instance can serve any number
    of concurrent calls. Which errors are worth retrying is decided by the
    caller-supplied ``is_retryable`` predicate.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        is_retryable: Optional[ErrorClassifier] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or RetryConfig()
        self.is_retryable = is_retryable or retry_all
        self._rng = rng or random.Random()

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def backoff(self, attempt: int) -> float:
        """Exponential delay after ``attempt`` (1-based), before jitter."""
        if attempt < 1:
            raise ValueError("Attempt numbers start at 1")
        delay = self.config.base_delay * self.config.multiplier ** (attempt - 1)
        return min(delay, self.config.max_delay)

    def next_delay(self, attempt: int) -> float:
        delay = self.backoff(attempt)
        if self.config.jitter_factor > 0 and delay > 0:
            delay += self._rng.random() * delay * self.config.jitter_factor
        return delay

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        if attempt >= self.config.max_attempts:
            return False
        return bool(self.is_retryable(error))
