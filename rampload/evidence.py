"""Append-only run evidence logging in JSONL format."""

import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List

from rampload.models import EvidenceEvent, Report


def create_event(report: Report, config_path: str, base_url: str) -> EvidenceEvent:
    """Build an EvidenceEvent summarising a finished run.

    Args:
        report: The final run report.
        config_path: Path of the configuration that was run.
        base_url: Target the load was sent to.

    Returns:
        A populated EvidenceEvent stamped with the current UTC time.
    """
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return EvidenceEvent(
        ts=ts,
        config=config_path,
        base_url=base_url,
        groups=[g.group for g in report.groups],
        total_requests=report.overall.total,
        failed_requests=report.overall.failure_count,
        throughput_rps=round(report.throughput_rps, 3),
        outcome="passed" if report.passed else "thresholds-failed",
    )


def append_event(event: EvidenceEvent, log_path: str) -> None:
    """Append a single evidence event as a JSONL line.

    Creates the file (and parent directories) if it does not exist.
    Never overwrites existing entries.
    """
    parent = os.path.dirname(log_path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    with open(log_path, "a") as f:
        f.write(json.dumps(asdict(event)) + "\n")


def read_events(log_path: str) -> List[EvidenceEvent]:
    """Read all events from a JSONL evidence log. Malformed lines are skipped."""
    if not os.path.isfile(log_path):
        return []

    events = []
    with open(log_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(raw, dict):
                continue
            events.append(EvidenceEvent(
                ts=raw.get("ts", ""),
                config=raw.get("config", ""),
                base_url=raw.get("base_url", ""),
                groups=raw.get("groups", []),
                total_requests=raw.get("total_requests", 0),
                failed_requests=raw.get("failed_requests", 0),
                throughput_rps=raw.get("throughput_rps", 0.0),
                outcome=raw.get("outcome", ""),
            ))
    return events
