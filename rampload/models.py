"""Data models for run configuration, request outcomes, aggregates, and reports."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_GROUP = "default"
OVERALL_GROUP = "*"


@dataclass(frozen=True)
class RampStage:
    duration_s: float
    target: int


@dataclass(frozen=True)
class RequestStep:
    method: str
    url: str
    group: str = DEFAULT_GROUP
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None  # str template, or mapping/list sent as JSON
    think_time_s: float = 0.0


@dataclass(frozen=True)
class Scenario:
    steps: Tuple[RequestStep, ...]

    @property
    def groups(self) -> List[str]:
        seen = []
        for step in self.steps:
            if step.group not in seen:
                seen.append(step.group)
        return seen


@dataclass(frozen=True)
class ExecutionResult:
    status_code: Optional[int]
    duration_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class RequestOutcome:
    group: str
    status_code: Optional[int]
    duration_ms: float
    timestamp: float
    error: Optional[str] = None


@dataclass(frozen=True)
class GroupSnapshot:
    group: str
    success_count: int = 0
    failure_count: int = 0
    sum_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: Optional[float] = None
    samples: Tuple[float, ...] = ()
    status_counts: Tuple[Tuple[int, int], ...] = ()
    error_counts: Tuple[Tuple[str, int], ...] = ()

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def avg_ms(self) -> Optional[float]:
        if not self.total:
            return None
        return self.sum_ms / self.total

    @property
    def failure_rate(self) -> float:
        if not self.total:
            return 0.0
        return self.failure_count / self.total


@dataclass(frozen=True)
class MetricsSnapshot:
    groups: Mapping[str, GroupSnapshot]
    overall: GroupSnapshot

    def get(self, group: str) -> Optional[GroupSnapshot]:
        if group == OVERALL_GROUP:
            return self.overall
        return self.groups.get(group)


@dataclass(frozen=True)
class ThresholdSpec:
    group: str
    stat: str  # "failure_rate", "success_rate", "p(95)", "avg", "min", "max", "count"
    op: str  # "<", "<=", ">", ">="
    limit: float

    def describe(self) -> str:
        return f"{self.group}: {self.stat} {self.op} {self.limit:g}"


@dataclass(frozen=True)
class ThresholdResult:
    spec: ThresholdSpec
    observed: Optional[float]
    passed: bool
    reason: str = ""


@dataclass(frozen=True)
class GroupReport:
    group: str
    success_count: int
    failure_count: int
    total: int
    failure_rate: float
    avg_ms: Optional[float]
    min_ms: Optional[float]
    max_ms: Optional[float]
    percentiles: Mapping[str, Optional[float]]
    throughput_rps: float
    status_counts: Mapping[str, int] = field(default_factory=dict)
    error_counts: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Report:
    groups: Tuple[GroupReport, ...]
    overall: GroupReport
    thresholds: Tuple[ThresholdResult, ...]
    started_at: float
    ended_at: float
    duration_s: float
    throughput_rps: float
    passed: bool


@dataclass(frozen=True)
class RunConfig:
    base_url: str
    stages: Tuple[RampStage, ...]
    scenario: Scenario
    thresholds: Tuple[ThresholdSpec, ...] = ()
    timeout_s: float = 30.0
    success_range: Tuple[int, int] = (200, 299)
    reservoir_size: int = 10000
    grace_period_s: float = 30.0
    transition: str = "step"  # "step" or "linear"
    percentiles: Tuple[float, ...] = (50.0, 90.0, 95.0, 99.0)
    seed: Optional[int] = None

    @property
    def total_duration_s(self) -> float:
        return sum(stage.duration_s for stage in self.stages)


@dataclass
class EvidenceEvent:
    ts: str
    config: str
    base_url: str
    groups: List[str] = field(default_factory=list)
    total_requests: int = 0
    failed_requests: int = 0
    throughput_rps: float = 0.0
    outcome: str = "passed"
