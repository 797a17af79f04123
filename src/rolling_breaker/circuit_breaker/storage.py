"""Rolling bucket storage for circuit breaker statistics.

The window is an ordered sequence of time-sliced counters, oldest first.
The last bucket is the only one receiving new counts. Rotation appends a
fresh bucket and keeps at most ``num_buckets + 1`` slices.
"""

from collections import deque
from dataclasses import dataclass, replace


@dataclass(slots=True)
class Bucket:
    """Outcome counters for one slice of the rolling window."""

    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    ignores: int = 0
    short_circuits: int = 0

    @property
    def error_count(self) -> int:
        return self.failures + self.timeouts

    def copy(self) -> "Bucket":
        return replace(self)


class BucketStore:
    """Owns the rolling sequence of buckets for one breaker."""

    def __init__(self, num_buckets: int) -> None:
        """Create a store holding a single empty active bucket.

        Args:
            num_buckets: Completed buckets retained alongside the active one.
        """
        if num_buckets < 1:
            raise ValueError("num_buckets must be >= 1")
        self._num_buckets = num_buckets
        self._buckets: deque[Bucket] = deque([Bucket()])

    @property
    def num_buckets(self) -> int:
        return self._num_buckets

    @property
    def buckets(self) -> tuple[Bucket, ...]:
        """Retained buckets, oldest first."""
        return tuple(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    def active_bucket(self) -> Bucket:
        """Return the bucket currently receiving counts."""
        return self._buckets[-1]

    def rotate(self) -> Bucket:
        """Append a fresh active bucket and drop slices outside the window."""
        bucket = Bucket()
        self._buckets.append(bucket)
        while len(self._buckets) > self._num_buckets + 1:
            self._buckets.popleft()
        return bucket
