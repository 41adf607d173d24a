"""Run a configured load test end to end and return its report."""

import asyncio
import logging
import time
from typing import Optional

from rampload.collector import MetricsCollector
from rampload.evaluator import evaluate
from rampload.executor import HttpxExecutor, RequestExecutor
from rampload.models import Report, RunConfig
from rampload.report import build_report
from rampload.scheduler import VirtualUserScheduler

logger = logging.getLogger(__name__)


async def arun(config: RunConfig, executor: Optional[RequestExecutor] = None) -> Report:
    """Async variant of :func:`run_load_test`.

    When *executor* is omitted an :class:`HttpxExecutor` is created and
    closed around the run; a caller-supplied executor is left open.
    """
    collector = MetricsCollector(
        reservoir_size=config.reservoir_size,
        success_range=config.success_range,
        seed=config.seed,
    )
    owned = executor is None
    if owned:
        executor = HttpxExecutor()

    scheduler = VirtualUserScheduler(
        stages=config.stages,
        scenario=config.scenario,
        executor=executor,
        collector=collector,
        base_url=config.base_url,
        timeout_s=config.timeout_s,
        grace_period_s=config.grace_period_s,
        transition=config.transition,
    )

    logger.info(
        "starting load test against %s: %d stages over %.1fs, %d steps per iteration",
        config.base_url or "(absolute urls)", len(config.stages),
        config.total_duration_s, len(config.scenario.steps),
    )
    started_at = time.time()
    try:
        await scheduler.run()
    finally:
        if owned:
            await executor.aclose()
    ended_at = time.time()

    snapshot = collector.snapshot()
    results = evaluate(snapshot, config.thresholds)
    report = build_report(snapshot, results, started_at, ended_at, config.percentiles)
    logger.info(
        "load test %s: %d requests, %.2f req/s",
        "passed" if report.passed else "failed",
        report.overall.total, report.throughput_rps,
    )
    return report


def run_load_test(config: RunConfig, executor: Optional[RequestExecutor] = None) -> Report:
    """Run *config* to completion on a fresh event loop.

    Args:
        config: Validated run configuration.
        executor: Optional request executor; defaults to httpx.

    Returns:
        The final Report. Threshold failures are reported, not raised.
    """
    return asyncio.run(arun(config, executor))
