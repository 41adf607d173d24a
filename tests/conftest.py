import asyncio

import pytest

from rampload.executor import RequestExecutor
from rampload.models import ExecutionResult


class FakeExecutor(RequestExecutor):
    """In-memory executor returning a fixed status (or error) after a short delay."""

    def __init__(self, status=200, error=None, delay_s=0.002, duration_ms=None):
        self.status = status
        self.error = error
        self.delay_s = delay_s
        self.duration_ms = duration_ms
        self.calls = []
        self.started = 0
        self.finished = 0

    async def execute(self, method, url, headers, body, timeout_s):
        self.calls.append((method, url, headers, body))
        self.started += 1
        await asyncio.sleep(self.delay_s)
        self.finished += 1
        duration = self.duration_ms if self.duration_ms is not None else self.delay_s * 1000.0
        if self.error is not None:
            return ExecutionResult(None, duration, error=self.error)
        return ExecutionResult(self.status, duration)


@pytest.fixture
def fake_executor_cls():
    return FakeExecutor
