"""End-to-end runs through the runner with fake and in-process targets."""

import asyncio

import httpx

from mock_service.app import app
from rampload.executor import HttpxExecutor
from rampload.loader import build_config
from rampload.models import RampStage, RequestStep, RunConfig, Scenario, ThresholdSpec
from rampload.runner import arun, run_load_test


def _config(stages, thresholds=(), steps=None, **kwargs):
    return RunConfig(
        base_url="http://svc",
        stages=tuple(RampStage(d, t) for d, t in stages),
        scenario=Scenario(steps=tuple(steps or [RequestStep(method="GET", url="/health")])),
        thresholds=tuple(thresholds),
        **kwargs
    )


class TestRunScenarios:
    def test_healthy_target_passes(self, fake_executor_cls):
        config = _config(
            [(0.1, 10), (0.2, 10)],
            thresholds=[ThresholdSpec("default", "failure_rate", "<", 0.1)],
        )
        report = run_load_test(config, fake_executor_cls(status=200, delay_s=0.005, duration_ms=50.0))
        assert report.passed
        group = report.groups[0]
        assert group.group == "default"
        assert group.failure_count == 0
        assert group.success_count > 0
        assert group.avg_ms == 50.0
        assert group.percentiles["p95"] == 50.0
        assert report.thresholds[0].observed == 0.0

    def test_unreachable_target_fails(self, fake_executor_cls):
        config = _config(
            [(0.15, 3)],
            thresholds=[ThresholdSpec("default", "failure_rate", "<", 1.0)],
        )
        report = run_load_test(config, fake_executor_cls(error="ConnectError"))
        assert not report.passed
        assert report.overall.success_count == 0
        assert report.overall.failure_rate == 1.0
        assert report.thresholds[0].observed == 1.0
        assert report.overall.error_counts == {"ConnectError": report.overall.total}

    def test_threshold_on_group_without_data(self, fake_executor_cls):
        config = _config(
            [(0.1, 2)],
            thresholds=[
                ThresholdSpec("default", "failure_rate", "<", 0.1),
                ThresholdSpec("nonexistent", "p(95)", "<", 500.0),
            ],
        )
        report = run_load_test(config, fake_executor_cls())
        ok, missing = report.thresholds
        assert ok.passed
        assert not missing.passed
        assert missing.reason == "no data"
        assert not report.passed

    def test_overall_totals_match_groups(self, fake_executor_cls):
        steps = [
            RequestStep(method="POST", url="/orders", group="Create Orders"),
            RequestStep(method="GET", url="/health", group="Health Check"),
        ]
        executor = fake_executor_cls()
        report = run_load_test(_config([(0.2, 4)], steps=steps), executor)
        assert sum(g.total for g in report.groups) == report.overall.total
        assert report.overall.total == len(executor.calls)
        assert report.duration_s >= 0.2
        assert report.throughput_rps > 0

    def test_run_without_thresholds_passes(self, fake_executor_cls):
        report = run_load_test(_config([(0.05, 1)]), fake_executor_cls(status=500))
        assert report.passed
        assert report.overall.failure_rate == 1.0


class TestRunAgainstMockService:
    def test_order_flow(self):
        config = build_config({
            "base_url": "http://mock",
            "stages": [{"duration": "300ms", "target": 3}],
            "scenario": [
                {
                    "group": "Create Orders",
                    "method": "POST",
                    "url": "/api/v1/fulfillment-orders",
                    "body": {
                        "order_id": "ORDER-${vu}-${iter}",
                        "customer": "CUSTOMER-${vu}",
                        "items": [{"sku": "PROD-001", "quantity": 1}],
                        "idempotency_key": "KEY-${vu}-${iter}",
                    },
                },
                {"group": "Get Orders", "url": "/api/v1/fulfillment-orders/ORDER-${vu}-0"},
                {"group": "Health Check", "url": "/health"},
            ],
            "thresholds": [
                {"group": "Create Orders", "expr": "failure_rate<0.01"},
                {"group": "Get Orders", "expr": "failure_rate<0.01"},
                {"group": "*", "expr": "count>0"},
            ],
        })

        async def main():
            async with HttpxExecutor(transport=httpx.ASGITransport(app=app)) as executor:
                return await arun(config, executor)

        report = asyncio.run(main())
        assert [g.group for g in report.groups] == ["Create Orders", "Get Orders", "Health Check"]
        create = report.groups[0]
        assert create.status_counts.get("201", 0) == create.total
        assert report.passed, [r.reason for r in report.thresholds]
