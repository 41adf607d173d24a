"""Load and validate run configuration files (YAML or JSON)."""

import json
import math
import os
import re
from typing import Any, List, Optional, Tuple

import yaml

from rampload.models import (
    DEFAULT_GROUP,
    OVERALL_GROUP,
    RampStage,
    RequestStep,
    RunConfig,
    Scenario,
    ThresholdSpec,
)


class ConfigurationError(Exception):
    """Raised when a run configuration fails validation."""


OPERATORS = ("<=", ">=", "<", ">")
TRANSITIONS = ("step", "linear")

_SIMPLE_STATS = ("failure_rate", "success_rate", "avg", "min", "max", "count")
_STAT_ALIASES = {
    "rate": "failure_rate",
    "error_rate": "failure_rate",
    "failed": "failure_rate",
    "mean": "avg",
}
_PERCENTILE_RE = re.compile(r"^p\(?\s*(\d+(?:\.\d+)?)\s*\)?$")
_EXPR_RE = re.compile(r"^\s*([A-Za-z_]+(?:\(\s*[\d.]+\s*\))?|p\d+(?:\.\d+)?)\s*(<=|>=|<|>)\s*([-+]?\d+(?:\.\d+)?)\s*$")
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}

# camelCase spellings accepted for the top-level keys
_KEY_ALIASES = {
    "baseURL": "base_url",
    "baseUrl": "base_url",
    "successRange": "success_range",
    "timeoutMs": "timeout_ms",
    "reservoirSize": "reservoir_size",
    "gracePeriod": "grace_period",
}


def load_config(path: str, base_url: Optional[str] = None) -> RunConfig:
    """Load a run configuration from a YAML or JSON file.

    Args:
        path: Path to the configuration file.
        base_url: Replaces the file's base_url before validation when given.

    Returns:
        A validated RunConfig instance.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"config file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError("config must be a mapping/object at the top level")

    return build_config(raw, base_url=base_url)


def build_config(raw: dict, base_url: Optional[str] = None) -> RunConfig:
    """Construct and validate a RunConfig from a raw dict.

    A non-empty *base_url* overrides the one in *raw*. All problems are
    collected and reported together.
    """
    raw = {_KEY_ALIASES.get(k, k): v for k, v in raw.items()}
    if base_url:
        raw["base_url"] = base_url
    errors: List[str] = []

    base_url = raw.get("base_url", "")
    if not isinstance(base_url, str):
        errors.append("'base_url' must be a string")
        base_url = ""

    stages = _parse_stages(raw.get("stages"), errors)
    scenario = _parse_scenario(raw.get("scenario"), errors)
    if scenario is not None and not base_url:
        relative = [s.url for s in scenario.steps if not _is_absolute(s.url)]
        if relative:
            errors.append(f"'base_url' is required for relative step url {relative[0]!r}")

    known_groups = scenario.groups if scenario is not None else None
    thresholds = _parse_thresholds(raw.get("thresholds", []), known_groups, errors)

    timeout_s = _parse_timeout(raw, errors)
    success_range = _parse_success_range(raw.get("success_range", [200, 299]), errors)

    reservoir_size = raw.get("reservoir_size", 10000)
    if isinstance(reservoir_size, bool) or not isinstance(reservoir_size, int) or reservoir_size < 1:
        errors.append("'reservoir_size' must be a positive integer")
        reservoir_size = 10000

    grace_period_s = _duration(raw.get("grace_period", 30), "grace_period", errors, allow_zero=True)

    transition = raw.get("transition", "step")
    if transition not in TRANSITIONS:
        errors.append(f"'transition' must be one of {', '.join(TRANSITIONS)}")
        transition = "step"

    percentiles = _parse_percentiles(raw.get("percentiles", [50, 90, 95, 99]), errors)

    seed = raw.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        errors.append("'seed' must be an integer")
        seed = None

    if errors:
        raise ConfigurationError(
            "config validation failed:\n  - " + "\n  - ".join(errors)
        )

    return RunConfig(
        base_url=base_url.rstrip("/"),
        stages=tuple(stages),
        scenario=scenario,
        thresholds=tuple(thresholds),
        timeout_s=timeout_s,
        success_range=success_range,
        reservoir_size=reservoir_size,
        grace_period_s=grace_period_s,
        transition=transition,
        percentiles=tuple(percentiles),
        seed=seed,
    )


def parse_duration(value: Any) -> float:
    """Parse a duration such as ``30``, ``"500ms"``, ``"10s"`` or ``"1m"`` to seconds.

    Raises:
        ValueError: If the value is not a recognised duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if match:
            return float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    raise ValueError(f"invalid duration: {value!r}")


def normalize_stat(stat: str) -> str:
    """Return the canonical statistic name, e.g. ``"p95"`` -> ``"p(95)"``.

    Raises:
        ValueError: If the statistic is not supported.
    """
    if not isinstance(stat, str):
        raise ValueError(f"unknown statistic: {stat!r}")
    name = stat.strip().lower()
    name = _STAT_ALIASES.get(name, name)
    if name in _SIMPLE_STATS:
        return name
    match = _PERCENTILE_RE.match(name)
    if match:
        pct = float(match.group(1))
        if 0 < pct <= 100:
            return f"p({pct:g})"
    raise ValueError(f"unknown statistic: {stat!r}")


def parse_expression(expr: str) -> Tuple[str, str, float]:
    """Split a threshold expression like ``"p(95)<500"`` into (stat, op, limit)."""
    match = _EXPR_RE.match(expr or "")
    if not match:
        raise ValueError(f"malformed threshold expression: {expr!r}")
    return normalize_stat(match.group(1)), match.group(2), float(match.group(3))


# -- internal helpers ---------------------------------------------------------


def _is_absolute(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def _duration(value, name: str, errors: List[str], allow_zero: bool = False) -> float:
    try:
        seconds = parse_duration(value)
    except ValueError:
        errors.append(f"'{name}' is not a valid duration: {value!r}")
        return 0.0
    if not math.isfinite(seconds):
        errors.append(f"'{name}' must be a finite duration")
    elif seconds < 0 or (seconds == 0 and not allow_zero):
        errors.append(f"'{name}' must be {'non-negative' if allow_zero else 'positive'}")
    return seconds


def _parse_stages(raw, errors: List[str]) -> List[RampStage]:
    if not isinstance(raw, list) or not raw:
        errors.append("'stages' is required and must be a non-empty list")
        return []
    stages = []
    for i, st in enumerate(raw):
        if not isinstance(st, dict):
            errors.append(f"stages[{i}] must be a mapping")
            continue
        duration = _duration(st.get("duration"), f"stages[{i}].duration", errors)
        target = st.get("target", st.get("targetConcurrency"))
        if isinstance(target, bool) or not isinstance(target, int) or target < 0:
            errors.append(f"stages[{i}].target is required and must be a non-negative integer")
            target = 0
        stages.append(RampStage(duration_s=duration, target=target))
    return stages


def _parse_scenario(raw, errors: List[str]) -> Optional[Scenario]:
    if isinstance(raw, dict):
        raw = raw.get("steps")
    if not isinstance(raw, list) or not raw:
        errors.append("'scenario' is required and must be a non-empty list of steps")
        return None
    steps = []
    for i, st in enumerate(raw):
        if not isinstance(st, dict):
            errors.append(f"scenario[{i}] must be a mapping")
            continue
        url = st.get("url")
        if not url or not isinstance(url, str):
            errors.append(f"scenario[{i}].url is required")
            url = ""
        method = st.get("method", "GET")
        if not isinstance(method, str) or not method.strip():
            errors.append(f"scenario[{i}].method must be a non-empty string")
            method = "GET"
        group = st.get("group", DEFAULT_GROUP)
        if not isinstance(group, str) or not group or group == OVERALL_GROUP:
            errors.append(f"scenario[{i}].group must be a non-empty label other than '*'")
            group = DEFAULT_GROUP
        headers = st.get("headers", {}) or {}
        if not isinstance(headers, dict):
            errors.append(f"scenario[{i}].headers must be a mapping")
            headers = {}
        think = _duration(st.get("think_time", 0), f"scenario[{i}].think_time", errors, allow_zero=True)
        body = st.get("body")
        if isinstance(body, (dict, list)):
            try:
                json.dumps(body)
            except (TypeError, ValueError) as exc:
                errors.append(f"scenario[{i}].body must be JSON-serialisable: {exc}")
        steps.append(RequestStep(
            method=method.strip().upper(),
            url=url,
            group=group,
            headers={str(k): str(v) for k, v in headers.items()},
            body=body,
            think_time_s=think,
        ))
    return Scenario(steps=tuple(steps))


def _parse_thresholds(raw, known_groups, errors: List[str]) -> List[ThresholdSpec]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.append("'thresholds' must be a list")
        return []
    specs = []
    for i, th in enumerate(raw):
        if isinstance(th, str):
            th = {"expr": th}
        if not isinstance(th, dict):
            errors.append(f"thresholds[{i}] must be a mapping or expression string")
            continue
        group = th.get("group", OVERALL_GROUP)
        if not isinstance(group, str) or not group:
            errors.append(f"thresholds[{i}].group must be a non-empty string")
            continue
        if known_groups is not None and group != OVERALL_GROUP and group not in known_groups:
            errors.append(f"thresholds[{i}] references unknown group {group!r}")
            continue
        try:
            if "expr" in th:
                stat, op, limit = parse_expression(th["expr"])
            else:
                stat = normalize_stat(th.get("stat", th.get("metric")))
                op = th.get("op", th.get("operator"))
                if op not in OPERATORS:
                    raise ValueError(f"operator must be one of {', '.join(OPERATORS)}")
                limit = th.get("limit")
                if isinstance(limit, bool) or not isinstance(limit, (int, float)) or not math.isfinite(limit):
                    raise ValueError("limit is required and must be a finite number")
        except ValueError as exc:
            errors.append(f"thresholds[{i}]: {exc}")
            continue
        specs.append(ThresholdSpec(group=group, stat=stat, op=op, limit=float(limit)))
    return specs


def _parse_timeout(raw: dict, errors: List[str]) -> float:
    if "timeout_ms" in raw:
        ms = raw["timeout_ms"]
        if isinstance(ms, bool) or not isinstance(ms, (int, float)) or not math.isfinite(ms) or ms <= 0:
            errors.append("'timeout_ms' must be a positive finite number")
            return 30.0
        return ms / 1000.0
    timeout = _duration(raw.get("timeout", 30), "timeout", errors)
    return timeout or 30.0


def _parse_success_range(raw, errors: List[str]) -> Tuple[int, int]:
    if (
        not isinstance(raw, (list, tuple))
        or len(raw) != 2
        or not all(isinstance(v, int) and not isinstance(v, bool) for v in raw)
        or raw[0] > raw[1]
    ):
        errors.append("'success_range' must be a [min, max] pair of integers with min <= max")
        return (200, 299)
    return (raw[0], raw[1])


def _parse_percentiles(raw, errors: List[str]) -> List[float]:
    if not isinstance(raw, list) or not raw:
        errors.append("'percentiles' must be a non-empty list of numbers")
        return [50.0, 90.0, 95.0, 99.0]
    values = []
    for p in raw:
        if isinstance(p, bool) or not isinstance(p, (int, float)) or not 0 < p <= 100:
            errors.append(f"percentile {p!r} must be a number in (0, 100]")
            continue
        values.append(float(p))
    return values
