import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.cache import CacheConfig
from .core.circuit_breaker.models import CircuitConfig
from .core.exceptions import ConfigurationError
from .core.rate_limiter import RateLimitConfig
from .core.retry import RetryConfig

class Settings(BaseSettings):
    """
    Resilience settings, read from CALLGUARD_* environment variables.

    Durations are in seconds. Nothing is cached at module level: build a
    Settings instance where it is needed and pass it down explicitly.
    """
    # Circuit breaker
    SLIDING_WINDOW_SIZE: int = 20
    FAILURE_RATE_THRESHOLD: float = 50.0  # percent
    MIN_SAMPLE_COUNT: int = 10
    OPEN_WAIT_DURATION: float = 30.0
    HALF_OPEN_TRIAL_CALLS: int = 3

    # Retry
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.1
    RETRY_MULTIPLIER: float = 2.0
    RETRY_MAX_DELAY: float = 1.0
    RETRY_JITTER_FACTOR: float = 0.1

    # Rate limiting
    RATE_LIMITER_ENABLED: bool = True
    RATE_LIMITER_CAPACITY: int = 20
    RATE_LIMITER_REFILL_RATE: float = 10.0  # tokens per second

    # Cache
    CACHE_ENABLED: bool = True
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_DEFAULT_TTL: float = 60.0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CALLGUARD_",
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def circuit_config(self) -> CircuitConfig:
        return CircuitConfig(
            window_size=self.SLIDING_WINDOW_SIZE,
            failure_rate_threshold=self.FAILURE_RATE_THRESHOLD,
            min_sample_count=self.MIN_SAMPLE_COUNT,
            open_wait_duration=self.OPEN_WAIT_DURATION,
            half_open_trial_calls=self.HALF_OPEN_TRIAL_CALLS
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            base_delay=self.RETRY_BASE_DELAY,
            multiplier=self.RETRY_MULTIPLIER,
            max_delay=self.RETRY_MAX_DELAY,
            jitter_factor=self.RETRY_JITTER_FACTOR
        )

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            capacity=self.RATE_LIMITER_CAPACITY,
            refill_rate=self.RATE_LIMITER_REFILL_RATE
        )

    def cache_config(self) -> CacheConfig:
        return CacheConfig(
            max_entries=self.CACHE_MAX_ENTRIES,
            default_ttl=self.CACHE_DEFAULT_TTL
        )

# Validation function for settings
def validate_settings(settings: Settings) -> None:
    """
    Validate settings and their relationships
    """
    if settings.FAILURE_RATE_THRESHOLD < 0 or settings.FAILURE_RATE_THRESHOLD > 100:
        raise ConfigurationError("FAILURE_RATE_THRESHOLD must be between 0 and 100")

    if settings.SLIDING_WINDOW_SIZE < 1:
        raise ConfigurationError("SLIDING_WINDOW_SIZE must be positive")

    if settings.MIN_SAMPLE_COUNT < 1 or settings.MIN_SAMPLE_COUNT > settings.SLIDING_WINDOW_SIZE:
        raise ConfigurationError("MIN_SAMPLE_COUNT must be between 1 and SLIDING_WINDOW_SIZE")

    if settings.HALF_OPEN_TRIAL_CALLS < 1:
        raise ConfigurationError("HALF_OPEN_TRIAL_CALLS must be positive")

    if settings.RETRY_MAX_ATTEMPTS < 1:
        raise ConfigurationError("RETRY_MAX_ATTEMPTS must be positive")

    if settings.RETRY_MAX_DELAY < settings.RETRY_BASE_DELAY:
        raise ConfigurationError("RETRY_MAX_DELAY cannot be smaller than RETRY_BASE_DELAY")

    if settings.RATE_LIMITER_REFILL_RATE <= 0:
        raise ConfigurationError("RATE_LIMITER_REFILL_RATE must be positive")

    if settings.CACHE_DEFAULT_TTL <= 0:
        raise ConfigurationError("CACHE_DEFAULT_TTL must be positive")

def configure_logging(settings: Settings) -> None:
    """Apply LOG_LEVEL to the root logger."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown LOG_LEVEL {settings.LOG_LEVEL!r}")
    logging.basicConfig(level=level)
