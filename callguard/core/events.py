from enum import Enum
import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from .circuit_breaker.models import CircuitState

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of events published by an invoker."""
    CALL_SUCCEEDED = "call_succeeded"
    CALL_FAILED = "call_failed"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_REJECTED = "circuit_rejected"
    RETRY_SCHEDULED = "retry_scheduled"
    RETRY_EXHAUSTED = "retry_exhausted"
    STATE_TRANSITION = "state_transition"


class ResilienceEvent(BaseModel):
    """Observation emitted on call outcomes and breaker transitions."""
    kind: EventKind
    name: str
    timestamp: float
    key: Optional[Any] = None
    attempt: Optional[int] = None
    latency: Optional[float] = None
    delay: Optional[float] = None
    error: Optional[str] = None
    from_state: Optional[CircuitState] = None
    to_state: Optional[CircuitState] = None

    model_config = ConfigDict(frozen=True)


EventSink = Callable[[ResilienceEvent], None]


class LoggingEventSink:
    """Event sink writing every event to a logger."""

    def __init__(self, target: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.logger = target or logger
        self.level = level

    def __call__(self, event: ResilienceEvent) -> None:
        if event.kind == EventKind.STATE_TRANSITION:
            self.logger.log(
                self.level,
                f"[{event.name}] circuit {event.from_state.value} -> {event.to_state.value}"
            )
            return
        details = []
        if event.key is not None:
            details.append(f"key={event.key!r}")
        if event.attempt is not None:
            details.append(f"attempt={event.attempt}")
        if event.latency is not None:
            details.append(f"latency={event.latency:.4f}s")
        if event.delay is not None:
            details.append(f"delay={event.delay:.4f}s")
        if event.error:
            details.append(f"error={event.error}")
        self.logger.log(self.level, f"[{event.name}] {event.kind.value} {' '.join(details)}".rstrip())
