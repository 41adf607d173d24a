"""Evaluate threshold predicates against a final metrics snapshot."""

import math
import operator
from typing import Callable, Dict, List, Optional, Sequence

from rampload.loader import normalize_stat
from rampload.models import GroupSnapshot, MetricsSnapshot, ThresholdResult, ThresholdSpec

_COMPARATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def percentile(samples: Sequence[float], pct: float) -> Optional[float]:
    """Nearest-rank percentile of *samples*; ``None`` when there are none."""
    if not samples:
        return None
    ordered = sorted(samples)
    rank = math.ceil(pct / 100.0 * len(ordered))
    rank = min(max(rank, 1), len(ordered))
    return ordered[rank - 1]


def compute_stat(group: GroupSnapshot, stat: str) -> Optional[float]:
    """Compute a named statistic for one group.

    Returns ``None`` when the group has no observations.
    """
    if group.total == 0:
        return None
    stat = normalize_stat(stat)
    if stat == "failure_rate":
        return group.failure_rate
    if stat == "success_rate":
        return group.success_count / group.total
    if stat == "count":
        return float(group.total)
    if stat == "avg":
        return group.avg_ms
    if stat == "min":
        return group.min_ms
    if stat == "max":
        return group.max_ms
    # normalize_stat only lets p(N) through otherwise
    return percentile(group.samples, float(stat[2:-1]))


def evaluate(snapshot: MetricsSnapshot, specs: Sequence[ThresholdSpec]) -> List[ThresholdResult]:
    """Produce one ThresholdResult per spec, in order.

    A spec whose group has no observations fails with reason ``"no data"``.
    """
    results = []
    for spec in specs:
        group = snapshot.get(spec.group)
        observed = compute_stat(group, spec.stat) if group is not None else None
        if observed is None:
            results.append(ThresholdResult(spec=spec, observed=None, passed=False, reason="no data"))
            continue
        compare = _COMPARATORS.get(spec.op)
        if compare is None:
            raise ValueError(f"unknown operator: {spec.op!r}")
        passed = compare(observed, spec.limit)
        reason = "" if passed else f"observed {observed:g}, required {spec.op} {spec.limit:g}"
        results.append(ThresholdResult(spec=spec, observed=observed, passed=passed, reason=reason))
    return results


def overall_passed(results: Sequence[ThresholdResult]) -> bool:
    return all(r.passed for r in results)
