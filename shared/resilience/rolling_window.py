"""Time-bucketed success/failure counters."""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class HealthCounts:
    """Snapshot of a rolling window."""

    attempts: int = 0
    failures: int = 0

    @property
    def error_percentage(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.failures / self.attempts * 100


@dataclass
class _Bucket:
    start: float
    attempts: int = 0
    failures: int = 0


class RollingWindow:
    """Counts attempts and failures over the last ``window_ms`` milliseconds.

    The window is split into ``buckets`` slices; whole slices expire as time
    moves on, so old outcomes age out gradually instead of all at once.
    """

    def __init__(
        self,
        window_ms: int,
        buckets: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if buckets <= 0:
            raise ValueError("buckets must be positive")
        self.window = window_ms / 1000
        self.bucket_size = self.window / buckets
        self._clock = clock
        self._buckets: deque[_Bucket] = deque()
        self._lock = threading.Lock()

    def record(self, success: bool) -> HealthCounts:
        """Record one outcome and return the counts including it."""
        with self._lock:
            bucket = self._current_bucket()
            bucket.attempts += 1
            if not success:
                bucket.failures += 1
            return self._counts()

    def snapshot(self) -> HealthCounts:
        with self._lock:
            self._expire(self._clock())
            return self._counts()

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _current_bucket(self) -> _Bucket:
        now = self._clock()
        self._expire(now)
        if self._buckets and now < self._buckets[-1].start + self.bucket_size:
            return self._buckets[-1]
        # Align bucket boundaries so buckets never overlap
        if self._buckets:
            last = self._buckets[-1].start
            start = last + ((now - last) // self.bucket_size) * self.bucket_size
        else:
            start = now
        bucket = _Bucket(start=start)
        self._buckets.append(bucket)
        return bucket

    def _expire(self, now: float) -> None:
        while self._buckets and self._buckets[0].start + self.bucket_size <= now - self.window:
            self._buckets.popleft()

    def _counts(self) -> HealthCounts:
        return HealthCounts(
            attempts=sum(b.attempts for b in self._buckets),
            failures=sum(b.failures for b in self._buckets),
        )
