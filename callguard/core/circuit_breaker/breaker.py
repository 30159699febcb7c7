import itertools
import threading
from typing import Callable, List, Optional, Set, Tuple

from ..clock import Clock, MonotonicClock
from .models import CallOutcome, CallPermit, CircuitConfig, CircuitState, CircuitStats
from .window import SlidingWindowStats

TransitionListener = Callable[[str, CircuitState, CircuitState], None]
Transition = Tuple[CircuitState, CircuitState]

class CircuitBreaker:
    """
    Count-based circuit breaker.

    The breaker never calls anything itself: callers ask ``allow()`` (or
    ``acquire()`` for a permit) before a call and report the result with
    ``on_result()``. State transitions are published to registered listeners
    after the internal lock is released.

    Every transition starts a new generation. Permits remember the generation
    they were issued in, so results and releases from calls admitted in an
    earlier period never touch the current period's trial accounting.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.name = name
        self.config = config or CircuitConfig()
        self.clock = clock or MonotonicClock()
        self.stats = CircuitStats()
        self.window = SlidingWindowStats(self.config.window_size)
        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._generation = 0
        self._permit_ids = itertools.count(1)
        self._trial_permits = 0
        self._trial_successes = 0
        self._open_trials: Set[int] = set()
        self._lock = threading.Lock()
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback invoked as listener(name, old_state, new_state)."""
        self._listeners.append(listener)

    @property
    def state(self) -> CircuitState:
        """Current state, applying a due OPEN -> HALF_OPEN transition first."""
        transitions: List[Transition] = []
        with self._lock:
            self._check_open_timeout(transitions)
            state = self._state
        self._notify(transitions)
        return state

    def allow(self) -> bool:
        """Decide whether a call may proceed."""
        return self.acquire() is not None

    def acquire(self) -> Optional[CallPermit]:
        """
        Admit a call and return its permit, or None when it must fail fast.

        In HALF_OPEN the permit count is checked and taken under the same lock,
        so concurrent callers can never exceed the trial quota.
        """
        transitions: List[Transition] = []
        with self._lock:
            self._check_open_timeout(transitions)
            permit = self._admit()
        self._notify(transitions)
        return permit

    def readmit(self, permit: CallPermit) -> Optional[CallPermit]:
        """
        Check a held permit before another attempt of the same call.

        The permit is returned unchanged while its generation is current.
        Otherwise the call is admitted afresh, which fails while OPEN or when
        the HALF_OPEN quota is taken.
        """
        transitions: List[Transition] = []
        with self._lock:
            self._check_open_timeout(transitions)
            if self._is_current(permit):
                current: Optional[CallPermit] = permit
            else:
                current = self._admit()
        self._notify(transitions)
        return current

    def on_result(
        self,
        success: bool,
        latency: float = 0.0,
        permit: Optional[CallPermit] = None
    ) -> None:
        """
        Record the outcome of a permitted call and apply transitions.

        With a permit, only results from the current generation move the state
        machine. Without one, a HALF_OPEN result is matched against any
        outstanding trial permit.
        """
        transitions: List[Transition] = []
        with self._lock:
            now = self.clock.now()
            self.stats.total_calls += 1
            if success:
                self.stats.successful_calls += 1
                self.stats.last_success_time = now
            else:
                self.stats.failed_calls += 1
                self.stats.last_failure_time = now

            if permit is not None and permit.generation != self._generation:
                pass
            elif self._state == CircuitState.CLOSED:
                self.window.record(CallOutcome(timestamp=now, success=success, latency=latency))
                if self._should_open():
                    self._open(now, transitions)
            elif self._state == CircuitState.HALF_OPEN and self._take_trial(permit):
                self.window.record(CallOutcome(timestamp=now, success=success, latency=latency))
                if not success:
                    self._open(now, transitions)
                else:
                    self._trial_successes += 1
                    if self._trial_successes >= self.config.half_open_trial_calls:
                        self._close(transitions)
        self._notify(transitions)

    def release(self, permit: CallPermit) -> None:
        """Give back a HALF_OPEN trial permit whose call never completed."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._is_current(permit) and permit.trial:
                self._open_trials.discard(permit.id)
                self._trial_permits -= 1

    def remaining_open_time(self) -> float:
        """Seconds until an open circuit admits trial calls, 0 otherwise."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            deadline = self._opened_at + self.config.open_wait_duration
            return max(0.0, deadline - self.clock.now())

    def reset(self) -> None:
        """Force the breaker back to CLOSED with empty statistics."""
        transitions: List[Transition] = []
        with self._lock:
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED, transitions)
            else:
                self._new_generation()
            self.window.reset()
            self.stats = CircuitStats()
            self._opened_at = None
            self._trial_permits = 0
            self._trial_successes = 0
        self._notify(transitions)

    def _admit(self) -> Optional[CallPermit]:
        if self._state == CircuitState.CLOSED:
            return self._issue(trial=False)
        if self._state == CircuitState.HALF_OPEN:
            if self._trial_permits < self.config.half_open_trial_calls:
                self._trial_permits += 1
                permit = self._issue(trial=True)
                self._open_trials.add(permit.id)
                return permit
        self.stats.rejected_calls += 1
        return None

    def _issue(self, trial: bool) -> CallPermit:
        return CallPermit(id=next(self._permit_ids), generation=self._generation, trial=trial)

    def _is_current(self, permit: CallPermit) -> bool:
        if permit.generation != self._generation:
            return False
        return not permit.trial or permit.id in self._open_trials

    def _take_trial(self, permit: Optional[CallPermit]) -> bool:
        if permit is None:
            if not self._open_trials:
                return False
            self._open_trials.pop()
            return True
        if permit.id not in self._open_trials:
            return False
        self._open_trials.discard(permit.id)
        return True

    def _should_open(self) -> bool:
        if self.window.size < self.config.min_sample_count:
            return False
        return self.window.failure_rate() >= self.config.failure_rate_threshold

    def _check_open_timeout(self, transitions: List[Transition]) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self.clock.now() - self._opened_at >= self.config.open_wait_duration:
            self._trial_permits = 0
            self._trial_successes = 0
            self.window.reset()
            self._transition(CircuitState.HALF_OPEN, transitions)

    def _open(self, now: float, transitions: List[Transition]) -> None:
        self._opened_at = now
        self._trial_permits = 0
        self._trial_successes = 0
        self._transition(CircuitState.OPEN, transitions)

    def _close(self, transitions: List[Transition]) -> None:
        self._opened_at = None
        self._trial_permits = 0
        self._trial_successes = 0
        self.window.reset()
        self._transition(CircuitState.CLOSED, transitions)

    def _new_generation(self) -> None:
        self._generation += 1
        self._open_trials.clear()

    def _transition(self, new_state: CircuitState, transitions: List[Transition]) -> None:
        old_state = self._state
        self._state = new_state
        self._new_generation()
        self.stats.state_transitions += 1
        transitions.append((old_state, new_state))

    def _notify(self, transitions: List[Transition]) -> None:
        for old_state, new_state in transitions:
            for listener in self._listeners:
                listener(self.name, old_state, new_state)
