"""Tests for the httpx-backed request executor."""

import asyncio
import json

import httpx

from mock_service.app import app
from rampload.executor import HttpxExecutor


def _run(coro):
    return asyncio.run(coro)


class TestHttpxExecutorAgainstMockService:
    def test_create_order_returns_201(self):
        async def main():
            async with HttpxExecutor(transport=httpx.ASGITransport(app=app)) as executor:
                body = json.dumps({
                    "order_id": "ORDER-1-0",
                    "customer": "CUSTOMER-1",
                    "items": [{"sku": "PROD-001", "quantity": 1}],
                    "idempotency_key": "KEY-1-0",
                })
                return await executor.execute(
                    "POST",
                    "http://mock/api/v1/fulfillment-orders",
                    {"Content-Type": "application/json"},
                    body,
                    5.0,
                )

        result = _run(main())
        assert result.status_code == 201
        assert result.error is None
        assert result.duration_ms >= 0.0

    def test_missing_order_returns_404(self):
        async def main():
            async with HttpxExecutor(transport=httpx.ASGITransport(app=app)) as executor:
                return await executor.execute(
                    "GET", "http://mock/api/v1/fulfillment-orders/ORDER-404", {}, None, 5.0,
                )

        result = _run(main())
        assert result.status_code == 404
        assert result.error is None

    def test_health(self):
        async def main():
            async with HttpxExecutor(transport=httpx.ASGITransport(app=app)) as executor:
                return await executor.execute("GET", "http://mock/health", {}, None, 5.0)

        assert _run(main()).status_code == 200


class TestHttpxExecutorTransportErrors:
    def test_connect_error_is_reported_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def main():
            async with HttpxExecutor(transport=httpx.MockTransport(handler)) as executor:
                return await executor.execute("GET", "http://down/health", {}, None, 1.0)

        result = _run(main())
        assert result.status_code is None
        assert result.error == "ConnectError"

    def test_timeout_is_reported_as_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async def main():
            async with HttpxExecutor(transport=httpx.MockTransport(handler)) as executor:
                return await executor.execute("GET", "http://slow/health", {}, None, 0.1)

        result = _run(main())
        assert result.status_code is None
        assert result.error == "timeout"

    def test_request_carries_method_headers_and_body(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["key"] = request.headers.get("Idempotency-Key")
            seen["body"] = request.content
            return httpx.Response(202)

        async def main():
            async with HttpxExecutor(transport=httpx.MockTransport(handler)) as executor:
                return await executor.execute(
                    "PUT", "http://svc/orders", {"Idempotency-Key": "KEY-2-3"}, "payload", 1.0,
                )

        result = _run(main())
        assert result.status_code == 202
        assert seen == {"method": "PUT", "key": "KEY-2-3", "body": b"payload"}
