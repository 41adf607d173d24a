"""Concurrency-safe streaming aggregation of request outcomes."""

import random
import threading
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

from rampload.models import (
    GroupSnapshot,
    MetricsSnapshot,
    OVERALL_GROUP,
    RequestOutcome,
)


class _GroupAggregate:
    """Mutable per-group counters; only touched while holding ``lock``."""

    def __init__(self, group: str, capacity: int, rng: random.Random):
        self.group = group
        self.lock = threading.Lock()
        self.success_count = 0
        self.failure_count = 0
        self.sum_ms = 0.0
        self.min_ms: Optional[float] = None
        self.max_ms: Optional[float] = None
        self.status_counts: Dict[int, int] = {}
        self.error_counts: Dict[str, int] = {}
        self._capacity = capacity
        self._rng = rng
        self._samples: List[float] = []
        self._seen = 0

    def add(self, outcome: RequestOutcome, success: bool) -> None:
        duration = outcome.duration_ms
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.sum_ms += duration
        if self.min_ms is None or duration < self.min_ms:
            self.min_ms = duration
        if self.max_ms is None or duration > self.max_ms:
            self.max_ms = duration
        if outcome.status_code is not None:
            self.status_counts[outcome.status_code] = self.status_counts.get(outcome.status_code, 0) + 1
        if outcome.error is not None:
            self.error_counts[outcome.error] = self.error_counts.get(outcome.error, 0) + 1
        self._sample(duration)

    def _sample(self, duration: float) -> None:
        # Algorithm R: every observation ends up retained with probability capacity/seen.
        self._seen += 1
        if len(self._samples) < self._capacity:
            self._samples.append(duration)
            return
        slot = self._rng.randrange(self._seen)
        if slot < self._capacity:
            self._samples[slot] = duration

    def freeze(self) -> GroupSnapshot:
        return GroupSnapshot(
            group=self.group,
            success_count=self.success_count,
            failure_count=self.failure_count,
            sum_ms=self.sum_ms,
            min_ms=self.min_ms,
            max_ms=self.max_ms,
            samples=tuple(self._samples),
            status_counts=tuple(sorted(self.status_counts.items())),
            error_counts=tuple(sorted(self.error_counts.items())),
        )


class MetricsCollector:
    """Sink for RequestOutcomes keeping bounded per-group aggregates.

    Args:
        reservoir_size: Maximum number of durations retained per group for
            percentile estimation.
        success_range: Inclusive (min, max) status range counted as success.
        seed: Optional seed for the reservoir sampling RNG.
    """

    def __init__(
        self,
        reservoir_size: int = 10000,
        success_range: Tuple[int, int] = (200, 299),
        seed: Optional[int] = None,
    ):
        if reservoir_size < 1:
            raise ValueError(f"reservoir_size must be >= 1, got {reservoir_size}")
        self.reservoir_size = reservoir_size
        self.success_range = success_range
        self._rng = random.Random(seed)
        self._registry_lock = threading.Lock()
        self._groups: Dict[str, _GroupAggregate] = {}
        self._overall = self._new_aggregate(OVERALL_GROUP)

    def is_success(self, outcome: RequestOutcome) -> bool:
        if outcome.error is not None or outcome.status_code is None:
            return False
        low, high = self.success_range
        return low <= outcome.status_code <= high

    def ingest(self, outcome: RequestOutcome) -> None:
        """Record one outcome under its group and in the overall rollup."""
        success = self.is_success(outcome)
        aggregate = self._groups.get(outcome.group)
        if aggregate is None:
            with self._registry_lock:
                aggregate = self._groups.get(outcome.group)
                if aggregate is None:
                    aggregate = self._new_aggregate(outcome.group)
                    self._groups[outcome.group] = aggregate
        with aggregate.lock:
            aggregate.add(outcome, success)
        with self._overall.lock:
            self._overall.add(outcome, success)

    def snapshot(self) -> MetricsSnapshot:
        """Return an immutable copy of every aggregate."""
        with self._registry_lock:
            aggregates = list(self._groups.values())
        groups = {}
        for aggregate in aggregates:
            with aggregate.lock:
                groups[aggregate.group] = aggregate.freeze()
        with self._overall.lock:
            overall = self._overall.freeze()
        return MetricsSnapshot(groups=MappingProxyType(groups), overall=overall)

    def total_count(self) -> int:
        with self._overall.lock:
            return self._overall.success_count + self._overall.failure_count

    def _new_aggregate(self, group: str) -> _GroupAggregate:
        # per-aggregate RNG derived from the collector seed; called under _registry_lock
        return _GroupAggregate(group, self.reservoir_size, random.Random(self._rng.random()))
