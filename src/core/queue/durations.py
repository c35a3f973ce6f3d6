"""
Rolling window of job durations used for ETA estimation.
"""

from collections import deque
from typing import List, Optional

from src.config import DURATION_HISTORY_SIZE, DEFAULT_JOB_DURATION_MS
from src.persistence.persisted_state import PersistedState

STATE_KEY = 'duration_history'


class DurationEstimator:
    """Bounded FIFO of job durations (milliseconds), persisted across runs."""

    def __init__(self,
                 state: Optional[PersistedState] = None,
                 capacity: int = DURATION_HISTORY_SIZE,
                 fallback_ms: int = DEFAULT_JOB_DURATION_MS):
        self.state = state
        self.capacity = capacity
        self.fallback_ms = fallback_ms

        stored = state.get(STATE_KEY, []) if state else []
        samples = [int(v) for v in stored if isinstance(v, (int, float)) and v >= 0]
        self._samples = deque(samples[-capacity:], maxlen=capacity)

    def record(self, elapsed_ms: float) -> None:
        """Append a sample, evicting the oldest beyond capacity."""
        if elapsed_ms < 0:
            return
        self._samples.append(int(elapsed_ms))
        if self.state:
            self.state.set(STATE_KEY, list(self._samples))

    def average(self) -> float:
        """Mean duration, or the fallback constant when no sample exists."""
        if not self._samples:
            return float(self.fallback_ms)
        return sum(self._samples) / len(self._samples)

    def estimate_remaining_ms(self, remaining_jobs: int) -> int:
        return int(round(self.average() * max(remaining_jobs, 0)))

    @property
    def samples(self) -> List[int]:
        return list(self._samples)
