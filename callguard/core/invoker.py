import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, List, Optional, TypeVar

from ..config import Settings, validate_settings
from .cache import CacheEntry, ResultCache
from .circuit_breaker.breaker import CircuitBreaker
from .circuit_breaker.models import CallPermit, CircuitState
from .clock import Clock, MonotonicClock
from .events import EventKind, EventSink, ResilienceEvent
from .exceptions import (
    CacheUnavailableError,
    CircuitOpenError,
    RateLimitedError,
    RetryExhaustedError,
    UpstreamError,
)
from .rate_limiter import TokenBucketRateLimiter
from .retry import ErrorClassifier, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar('T')  # Return type of protected operations

Operation = Callable[[], Awaitable[T]]
Sleeper = Callable[[float], Awaitable[Any]]

class ResilientInvoker:
    """
    Runs remote calls through cache, rate limiter, circuit breaker and retry.

    The stages are applied in a fixed order:

    1. a fresh cached result is returned without touching anything else;
    2. the rate limiter must hand out a token;
    3. the circuit breaker must admit the call;
    4. the operation is attempted until it succeeds or the retry policy
       gives up, reporting every attempt to the breaker. Each retry must
       still be admitted by the breaker, so a call stops once its own
       failures have opened the circuit;
    5. a successful result is cached.

    Rejections from stages 2 and 3 are raised straight to the caller and are
    never retried here.
    """

    def __init__(
        self,
        name: str,
        breaker: CircuitBreaker,
        retry_policy: RetryPolicy,
        cache: Optional[ResultCache] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        sinks: Optional[Iterable[EventSink]] = None,
        clock: Optional[Clock] = None,
        sleep: Sleeper = asyncio.sleep
    ):
        self.name = name
        self.breaker = breaker
        self.retry_policy = retry_policy
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.clock = clock or breaker.clock
        self._sinks: List[EventSink] = list(sinks or [])
        self._sleep = sleep
        self.breaker.add_listener(self._on_transition)

    @classmethod
    def from_settings(
        cls,
        name: str,
        settings: Settings,
        is_retryable: Optional[ErrorClassifier] = None,
        sinks: Optional[Iterable[EventSink]] = None,
        clock: Optional[Clock] = None,
        sleep: Sleeper = asyncio.sleep
    ) -> "ResilientInvoker":
        """Build an invoker and all of its components from settings."""
        validate_settings(settings)
        clock = clock or MonotonicClock()
        cache = None
        if settings.CACHE_ENABLED:
            cache = ResultCache(settings.cache_config(), clock=clock)
        rate_limiter = None
        if settings.RATE_LIMITER_ENABLED:
            rate_limiter = TokenBucketRateLimiter(settings.rate_limit_config(), clock=clock)
        return cls(
            name=name,
            breaker=CircuitBreaker(name, settings.circuit_config(), clock=clock),
            retry_policy=RetryPolicy(settings.retry_config(), is_retryable=is_retryable),
            cache=cache,
            rate_limiter=rate_limiter,
            sinks=sinks,
            clock=clock,
            sleep=sleep,
        )

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def invalidate(self, key: Hashable) -> bool:
        """Drop a cached result. Returns True if one was removed."""
        if self.cache is None:
            return False
        return self.cache.invalidate(key)

    async def execute(
        self,
        key: Hashable,
        operation: Operation,
        ttl: Optional[float] = None,
        use_cache: bool = True
    ) -> T:
        """
        Execute operation under the full resilience pipeline.

        Args:
            key: Cache key identifying the result of operation
            operation: Zero-argument callable returning an awaitable
            ttl: Cache TTL override for this result
            use_cache: Skip cache lookup and storage when False

        Returns:
            The cached or freshly computed result

        Raises:
            RateLimitedError: If no rate limit token is available
            CircuitOpenError: If the circuit breaker rejects the call or a retry
            UpstreamError: If operation fails with a non-retryable error
            RetryExhaustedError: If every permitted attempt failed
        """
        caching = use_cache and self.cache is not None

        if caching:
            entry = self._lookup(key)
            if entry is not None:
                self._emit(EventKind.CACHE_HIT, key=key)
                return entry.value
            self._emit(EventKind.CACHE_MISS, key=key)

        if self.rate_limiter is not None and not self.rate_limiter.try_acquire():
            logger.warning(f"Rate limit exceeded for {self.name}, rejecting key {key!r}")
            self._emit(EventKind.RATE_LIMITED, key=key)
            raise RateLimitedError(self.name)

        permit = self.breaker.acquire()
        if permit is None:
            logger.warning(f"Circuit {self.name} is open, rejecting key {key!r}")
            raise self._circuit_open(key)

        result = await self._attempt(key, operation, permit)

        if caching:
            self._store(key, result, ttl)
        return result

    async def _attempt(self, key: Hashable, operation: Operation, permit: CallPermit) -> T:
        attempt = 0
        try:
            while True:
                attempt += 1
                started = self.clock.now()
                try:
                    result = await operation()
                except Exception as e:
                    latency = self.clock.now() - started
                    self.breaker.on_result(False, latency, permit)
                    self._emit(EventKind.CALL_FAILED, key=key, attempt=attempt, latency=latency, error=repr(e))
                    error = UpstreamError(self.name, e, attempt)

                    if not self.retry_policy.is_retryable(e):
                        logger.warning(f"Non-retryable failure through {self.name}: {e!r}")
                        raise error from e

                    if attempt >= self.retry_policy.max_attempts:
                        logger.warning(f"Giving up on {self.name} after {attempt} attempts. Last error: {e!r}")
                        self._emit(EventKind.RETRY_EXHAUSTED, key=key, attempt=attempt, error=repr(e))
                        raise RetryExhaustedError(self.name, attempt, error) from error

                    permit = self._readmit(key, permit, error)
                    delay = self.retry_policy.next_delay(attempt)
                    logger.info(
                        f"Attempt {attempt} through {self.name} failed, "
                        f"retrying in {delay:.3f}s. Error: {e!r}"
                    )
                    self._emit(EventKind.RETRY_SCHEDULED, key=key, attempt=attempt, delay=delay)
                    await self._sleep(delay)
                    permit = self._readmit(key, permit, error)
                    continue

                latency = self.clock.now() - started
                self.breaker.on_result(True, latency, permit)
                self._emit(EventKind.CALL_SUCCEEDED, key=key, attempt=attempt, latency=latency)
                return result
        except asyncio.CancelledError:
            # Abandoned calls report nothing; hand back any trial permit
            self.breaker.release(permit)
            raise

    def _readmit(self, key: Hashable, permit: CallPermit, error: UpstreamError) -> CallPermit:
        current = self.breaker.readmit(permit)
        if current is None:
            logger.warning(f"Circuit {self.name} opened while retrying key {key!r}, giving up")
            raise self._circuit_open(key) from error
        return current

    def _circuit_open(self, key: Hashable) -> CircuitOpenError:
        retry_after = self.breaker.remaining_open_time()
        self._emit(EventKind.CIRCUIT_REJECTED, key=key, delay=retry_after)
        return CircuitOpenError(self.name, retry_after=retry_after)

    def _lookup(self, key: Hashable) -> Optional[CacheEntry]:
        try:
            return self.cache.get_entry(key)
        except CacheUnavailableError as e:
            logger.warning(f"Cache lookup failed for {self.name}, treating as miss: {e}")
            return None

    def _store(self, key: Hashable, value: Any, ttl: Optional[float]) -> None:
        try:
            self.cache.put(key, value, ttl=ttl)
        except CacheUnavailableError as e:
            logger.warning(f"Could not cache result for {self.name}: {e}")

    def _on_transition(self, name: str, old_state: CircuitState, new_state: CircuitState) -> None:
        if new_state == CircuitState.OPEN:
            logger.warning(
                f"Circuit {name} opened from {old_state.value}, "
                f"failure rate {self.breaker.window.failure_rate():.1f}%"
            )
        else:
            logger.info(f"Circuit {name} moved from {old_state.value} to {new_state.value}")
        self._emit(EventKind.STATE_TRANSITION, from_state=old_state, to_state=new_state)

    def _emit(self, kind: EventKind, **fields: Any) -> None:
        if not self._sinks:
            return
        event = ResilienceEvent(kind=kind, name=self.name, timestamp=self.clock.now(), **fields)
        for sink in self._sinks:
            try:
                sink(event)
            except Exception:
                logger.exception(f"Event sink {sink!r} failed on {kind.value} for {self.name}")
