import threading
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .clock import Clock, MonotonicClock


class RateLimitConfig(BaseModel):
    """Token bucket configuration."""
    capacity: int = Field(
        default=20,
        ge=1,
        description="Maximum tokens held, i.e. the burst size"
    )
    refill_rate: float = Field(
        default=10.0,
        gt=0.0,
        description="Tokens added per second"
    )

    model_config = ConfigDict(from_attributes=True, frozen=True)


class TokenBucketRateLimiter:
    """
    Token bucket admission control.

    The bucket starts full. Every acquisition first refills the bucket in
    proportion to the time elapsed since the previous refill, then takes one
    token if a whole token is available. Both steps run under one lock.
    Denial is immediate; nothing is queued.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None, clock: Optional[Clock] = None):
        self.config = config or RateLimitConfig()
        self.clock = clock or MonotonicClock()
        self._tokens = float(self.config.capacity)
        self._last_refill = self.clock.now()
        self._lock = threading.Lock()

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        with self._lock:
            self._tokens = float(self.config.capacity)
            self._last_refill = self.clock.now()

    def _refill(self) -> None:
        now = self.clock.now()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.config.capacity),
                self._tokens + elapsed * self.config.refill_rate
            )
            self._last_refill = now
