from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, REGISTRY
import logging
from typing import Optional

from .core.circuit_breaker.models import CircuitState
from .core.events import EventKind, ResilienceEvent

logger = logging.getLogger(__name__)

STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}

REJECTION_REASONS = {
    EventKind.RATE_LIMITED: "rate_limited",
    EventKind.CIRCUIT_REJECTED: "circuit_open",
}

class PrometheusEventSink:
    """Event sink exporting invoker events as Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "callguard"):
        registry = registry if registry is not None else REGISTRY

        self.calls = Counter(
            'calls_total',
            'Completed attempts of protected operations',
            ['invoker', 'outcome'],
            namespace=namespace,
            registry=registry
        )
        self.latency = Histogram(
            'call_duration_seconds',
            'Duration of protected operation attempts',
            ['invoker'],
            namespace=namespace,
            registry=registry,
            buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )
        self.rejections = Counter(
            'rejections_total',
            'Calls rejected before reaching the operation',
            ['invoker', 'reason'],
            namespace=namespace,
            registry=registry
        )
        self.cache_lookups = Counter(
            'cache_lookups_total',
            'Result cache lookups',
            ['invoker', 'result'],
            namespace=namespace,
            registry=registry
        )
        self.retries = Counter(
            'retries_total',
            'Retries scheduled after failed attempts',
            ['invoker'],
            namespace=namespace,
            registry=registry
        )
        self.exhausted = Counter(
            'retries_exhausted_total',
            'Calls that failed after every permitted attempt',
            ['invoker'],
            namespace=namespace,
            registry=registry
        )
        self.circuit_state = Gauge(
            'circuit_state',
            'Circuit breaker state (0=closed, 1=half_open, 2=open)',
            ['invoker'],
            namespace=namespace,
            registry=registry
        )
        self.transitions = Counter(
            'circuit_transitions_total',
            'Circuit breaker state transitions',
            ['invoker', 'from_state', 'to_state'],
            namespace=namespace,
            registry=registry
        )

    def __call__(self, event: ResilienceEvent) -> None:
        name = event.name
        if event.kind in (EventKind.CALL_SUCCEEDED, EventKind.CALL_FAILED):
            outcome = "success" if event.kind == EventKind.CALL_SUCCEEDED else "failure"
            self.calls.labels(invoker=name, outcome=outcome).inc()
            if event.latency is not None:
                self.latency.labels(invoker=name).observe(event.latency)
        elif event.kind in REJECTION_REASONS:
            self.rejections.labels(invoker=name, reason=REJECTION_REASONS[event.kind]).inc()
        elif event.kind == EventKind.CACHE_HIT:
            self.cache_lookups.labels(invoker=name, result="hit").inc()
        elif event.kind == EventKind.CACHE_MISS:
            self.cache_lookups.labels(invoker=name, result="miss").inc()
        elif event.kind == EventKind.RETRY_SCHEDULED:
            self.retries.labels(invoker=name).inc()
        elif event.kind == EventKind.RETRY_EXHAUSTED:
            self.exhausted.labels(invoker=name).inc()
        elif event.kind == EventKind.STATE_TRANSITION:
            self.circuit_state.labels(invoker=name).set(STATE_VALUES[event.to_state])
            self.transitions.labels(
                invoker=name,
                from_state=event.from_state.value,
                to_state=event.to_state.value
            ).inc()
        else:
            logger.debug(f"Ignoring unhandled event kind {event.kind}")
