import pytest
from typing import List

from callguard.core.cache import CacheConfig, ResultCache
from callguard.core.circuit_breaker.breaker import CircuitBreaker
from callguard.core.circuit_breaker.models import CircuitConfig
from callguard.core.clock import ManualClock
from callguard.core.events import ResilienceEvent
from callguard.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from callguard.core.retry import RetryConfig, RetryPolicy

@pytest.fixture
def clock() -> ManualClock:
    """Create a simulated clock starting at t=1000."""
    return ManualClock(start=1000.0)

@pytest.fixture
def circuit_config() -> CircuitConfig:
    """Create test circuit breaker config."""
    return CircuitConfig(
        window_size=10,
        failure_rate_threshold=50.0,
        min_sample_count=4,
        open_wait_duration=5.0,
        half_open_trial_calls=2
    )

@pytest.fixture
def breaker(circuit_config, clock) -> CircuitBreaker:
    """Create test circuit breaker."""
    return CircuitBreaker("test_service", circuit_config, clock=clock)

@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Create a jitter-free retry policy."""
    return RetryPolicy(RetryConfig(
        max_attempts=3,
        base_delay=0.1,
        multiplier=2.0,
        max_delay=1.0,
        jitter_factor=0.0
    ))

@pytest.fixture
def rate_limiter(clock) -> TokenBucketRateLimiter:
    """Create a small token bucket."""
    return TokenBucketRateLimiter(RateLimitConfig(capacity=5, refill_rate=1.0), clock=clock)

@pytest.fixture
def cache(clock) -> ResultCache:
    """Create a small result cache."""
    return ResultCache(CacheConfig(max_entries=3, default_ttl=10.0), clock=clock)

@pytest.fixture
def events() -> List[ResilienceEvent]:
    """Collect published events."""
    return []

class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.advance(delay)

@pytest.fixture
def sleeper(clock) -> RecordingSleep:
    """Create a sleep double that advances the simulated clock."""
    return RecordingSleep(clock)
