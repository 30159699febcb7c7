from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional

class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation, calls allowed
    OPEN = "open"         # Calls blocked, failing fast
    HALF_OPEN = "half_open"  # Trial calls probing recovery

class CallOutcome(BaseModel):
    """Result of one completed attempt."""
    timestamp: float
    success: bool
    latency: float = 0.0

    model_config = ConfigDict(frozen=True)

class CallPermit(BaseModel):
    """Admission handed out by the breaker for one call.

    ``generation`` names the state period the call was admitted in. Results
    reported with a permit from an earlier period only update statistics.
    """
    id: int
    generation: int
    trial: bool = False

    model_config = ConfigDict(frozen=True)

class CircuitStats(BaseModel):
    """Cumulative circuit breaker statistics."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_transitions: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

class CircuitConfig(BaseModel):
    """Circuit breaker configuration."""
    window_size: int = Field(
        default=20,
        ge=1,
        description="Number of recent call outcomes kept in the sliding window"
    )
    failure_rate_threshold: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Failure rate percentage at which the circuit opens"
    )
    min_sample_count: int = Field(
        default=10,
        ge=1,
        description="Minimum recorded outcomes before the failure rate is evaluated"
    )
    open_wait_duration: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds to stay open before allowing trial calls"
    )
    half_open_trial_calls: int = Field(
        default=3,
        ge=1,
        description="Trial calls permitted while half-open"
    )

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _check_sample_count(self) -> "CircuitConfig":
        if self.min_sample_count > self.window_size:
            raise ValueError("min_sample_count cannot exceed window_size")
        return self
