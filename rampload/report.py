"""Build the final run report and render it as JSON or text."""

import json
from dataclasses import fields
from types import MappingProxyType
from typing import List, Optional, Sequence

from rampload.evaluator import overall_passed, percentile
from rampload.models import GroupReport, GroupSnapshot, MetricsSnapshot, Report, ThresholdResult


def percentile_label(pct: float) -> str:
    return f"p{pct:g}"


def build_report(
    snapshot: MetricsSnapshot,
    results: Sequence[ThresholdResult],
    started_at: float,
    ended_at: float,
    percentiles: Sequence[float] = (50.0, 90.0, 95.0, 99.0),
) -> Report:
    """Assemble an immutable Report from a snapshot and threshold results.

    Args:
        snapshot: Final metrics snapshot.
        results: Threshold verdicts.
        started_at: Run start (epoch seconds).
        ended_at: Run end (epoch seconds).
        percentiles: Latency percentiles to include per group.
    """
    duration_s = max(ended_at - started_at, 0.0)
    groups = tuple(
        _group_report(snapshot.groups[name], duration_s, percentiles)
        for name in sorted(snapshot.groups)
    )
    overall = _group_report(snapshot.overall, duration_s, percentiles)
    return Report(
        groups=groups,
        overall=overall,
        thresholds=tuple(results),
        started_at=started_at,
        ended_at=ended_at,
        duration_s=duration_s,
        throughput_rps=overall.throughput_rps,
        passed=overall_passed(results),
    )


def _group_report(group: GroupSnapshot, duration_s: float, percentiles: Sequence[float]) -> GroupReport:
    return GroupReport(
        group=group.group,
        success_count=group.success_count,
        failure_count=group.failure_count,
        total=group.total,
        failure_rate=group.failure_rate,
        avg_ms=group.avg_ms,
        min_ms=group.min_ms,
        max_ms=group.max_ms,
        percentiles=MappingProxyType({percentile_label(p): percentile(group.samples, p) for p in percentiles}),
        throughput_rps=group.total / duration_s if duration_s > 0 else 0.0,
        status_counts=MappingProxyType({str(code): n for code, n in group.status_counts}),
        error_counts=MappingProxyType(dict(group.error_counts)),
    )


def _group_to_dict(group: GroupReport) -> dict:
    data = {}
    for f in fields(group):
        value = getattr(group, f.name)
        data[f.name] = dict(value) if isinstance(value, (dict, MappingProxyType)) else value
    return data


def report_to_dict(report: Report) -> dict:
    data = {f.name: getattr(report, f.name) for f in fields(report)}
    data["groups"] = [_group_to_dict(g) for g in report.groups]
    data["overall"] = _group_to_dict(report.overall)
    data["thresholds"] = [
        {
            "threshold": r.spec.describe(),
            "group": r.spec.group,
            "stat": r.spec.stat,
            "op": r.spec.op,
            "limit": r.spec.limit,
            "observed": r.observed,
            "passed": r.passed,
            "reason": r.reason,
        }
        for r in report.thresholds
    ]
    return data


def report_to_json(report: Report, indent: int = 2) -> str:
    return json.dumps(report_to_dict(report), indent=indent)


def render_summary(report: Report) -> str:
    """Human-readable summary of a report."""
    lines = [f"Run duration: {report.duration_s:.1f} s"]
    for group in list(report.groups) + [report.overall]:
        label = "overall" if group is report.overall else group.group
        lines.append(f"[{label}]")
        lines.append(
            f"  requests: {group.total} "
            f"(ok {group.success_count}, failed {group.failure_count}, "
            f"{group.failure_rate * 100:.2f}% failed)"
        )
        lines.append(
            f"  latency ms: avg {_ms(group.avg_ms)}, min {_ms(group.min_ms)}, max {_ms(group.max_ms)}"
        )
        if group.percentiles:
            lines.append(
                "  " + ", ".join(f"{name} {_ms(value)}" for name, value in group.percentiles.items())
            )
        lines.append(f"  throughput: {group.throughput_rps:.2f} req/s")
        if group.error_counts:
            lines.append(
                "  errors: " + ", ".join(f"{k} x{v}" for k, v in sorted(group.error_counts.items()))
            )

    if report.thresholds:
        lines.append("Thresholds:")
        for r in report.thresholds:
            mark = "PASS" if r.passed else "FAIL"
            detail = r.reason if not r.passed else f"observed {r.observed:g}"
            lines.append(f"  {mark} {r.spec.describe()} ({detail})")
    lines.append(f"Result: {'PASSED' if report.passed else 'FAILED'}")
    return "\n".join(lines)


def failed_thresholds(report: Report) -> List[ThresholdResult]:
    return [r for r in report.thresholds if not r.passed]


def _ms(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1f}"
