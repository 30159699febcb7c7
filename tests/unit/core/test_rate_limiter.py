import math
import pytest
from concurrent.futures import ThreadPoolExecutor
from hypothesis import given, strategies as st
from pydantic import ValidationError

from callguard.core.clock import ManualClock
from callguard.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter

def test_burst_then_refill(rate_limiter, clock):
    """Capacity 5 at 1 token/s: five pass, the sixth fails, one more after 1s."""
    assert all(rate_limiter.try_acquire() for _ in range(5))
    assert not rate_limiter.try_acquire()

    clock.advance(1.0)

    assert rate_limiter.try_acquire()
    assert not rate_limiter.try_acquire()

def test_refill_never_exceeds_capacity(rate_limiter, clock):
    """Idle time cannot bank more than capacity tokens."""
    clock.advance(3600)

    assert rate_limiter.available_tokens == 5.0
    assert sum(rate_limiter.try_acquire() for _ in range(10)) == 5

def test_partial_tokens_accumulate(rate_limiter, clock):
    """Fractional refills add up to whole tokens."""
    for _ in range(5):
        rate_limiter.try_acquire()

    clock.advance(0.5)
    assert not rate_limiter.try_acquire()
    clock.advance(0.5)
    assert rate_limiter.try_acquire()

def test_reset_refills_bucket(rate_limiter):
    """Reset restores full capacity."""
    for _ in range(5):
        rate_limiter.try_acquire()

    rate_limiter.reset()

    assert rate_limiter.available_tokens == 5.0

def test_concurrent_acquire_never_overdraws(clock):
    """Parallel callers share exactly the tokens in the bucket."""
    limiter = TokenBucketRateLimiter(RateLimitConfig(capacity=25, refill_rate=1.0), clock=clock)

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(lambda _: limiter.try_acquire(), range(500)))

    assert results.count(True) == 25
    assert limiter.available_tokens == 0.0

def test_config_validation():
    """Capacity and refill rate must be positive."""
    with pytest.raises(ValidationError):
        RateLimitConfig(capacity=0)

    with pytest.raises(ValidationError):
        RateLimitConfig(refill_rate=0)

@given(
    capacity=st.integers(min_value=1, max_value=20),
    refill_rate=st.floats(min_value=0.1, max_value=10.0),
    steps=st.lists(
        st.tuples(st.integers(min_value=0, max_value=2000), st.integers(min_value=0, max_value=10)),
        max_size=40
    )
)
def test_acquisitions_bounded_by_capacity_plus_refill(capacity, refill_rate, steps):
    """No call pattern gets more than capacity + floor(elapsed * rate) tokens."""
    clock = ManualClock()
    limiter = TokenBucketRateLimiter(RateLimitConfig(capacity=capacity, refill_rate=refill_rate), clock=clock)
    granted = 0
    elapsed = 0.0
    for advance_ms, calls in steps:
        clock.advance(advance_ms / 1000.0)
        elapsed += advance_ms / 1000.0
        granted += sum(limiter.try_acquire() for _ in range(calls))
        assert granted <= capacity + math.floor(elapsed * refill_rate + 1e-9)
        assert 0.0 <= limiter.available_tokens <= capacity
