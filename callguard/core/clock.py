import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source, in seconds."""

    def now(self) -> float:
        ...


class MonotonicClock:
    """Clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when advanced. Used for simulations and tests."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a monotonic clock backwards")
        with self._lock:
            self._now += seconds
