import threading
from typing import List, Optional

from .models import CallOutcome


class SlidingWindowStats:
    """
    Fixed-capacity ring buffer of recent call outcomes.

    Once full, each new outcome overwrites the oldest one. The failure rate
    is computed over populated slots only, so a partially filled window
    reports the rate of what it has seen so far.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("Window capacity must be positive")
        self._capacity = capacity
        self._slots: List[Optional[CallOutcome]] = [None] * capacity
        self._head = 0
        self._size = 0
        self._failures = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        with self._lock:
            return self._size

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._size - self._failures

    def record(self, outcome: CallOutcome) -> None:
        """Append an outcome, evicting the oldest entry when full."""
        with self._lock:
            evicted = self._slots[self._head]
            if evicted is not None and not evicted.success:
                self._failures -= 1
            self._slots[self._head] = outcome
            if not outcome.success:
                self._failures += 1
            self._head = (self._head + 1) % self._capacity
            if self._size < self._capacity:
                self._size += 1

    def failure_rate(self) -> float:
        """Failure percentage (0-100) over populated entries, 0 when empty."""
        with self._lock:
            if self._size == 0:
                return 0.0
            return self._failures * 100.0 / self._size

    def average_latency(self) -> float:
        with self._lock:
            outcomes = self._ordered()
        if not outcomes:
            return 0.0
        return sum(o.latency for o in outcomes) / len(outcomes)

    def outcomes(self) -> List[CallOutcome]:
        """Snapshot of recorded outcomes, oldest first."""
        with self._lock:
            return self._ordered()

    def reset(self) -> None:
        with self._lock:
            self._slots = [None] * self._capacity
            self._head = 0
            self._size = 0
            self._failures = 0

    def _ordered(self) -> List[CallOutcome]:
        start = (self._head - self._size) % self._capacity
        return [
            self._slots[(start + i) % self._capacity]
            for i in range(self._size)
        ]
