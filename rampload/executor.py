"""Request executors: issue one logical HTTP request and time it."""

import logging
import time
from typing import Dict, Optional

import httpx

from rampload.models import ExecutionResult

logger = logging.getLogger(__name__)


class RequestExecutor:
    """Contract for anything that can perform a single request.

    Implementations must not raise for transport problems; they report them
    through ``ExecutionResult.error`` instead.
    """

    async def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[str],
        timeout_s: float,
    ) -> ExecutionResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


class HttpxExecutor(RequestExecutor):
    """Executor backed by a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_connections: Optional[int] = None,
    ):
        limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=None)
        self._client = httpx.AsyncClient(transport=transport, limits=limits)

    async def execute(self, method, url, headers, body, timeout_s):
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                content=body.encode("utf-8") if body is not None else None,
                timeout=timeout_s,
            )
        except httpx.TimeoutException:
            return ExecutionResult(None, _elapsed_ms(started), error="timeout")
        except httpx.HTTPError as exc:
            logger.debug("transport error for %s %s: %s", method, url, exc)
            return ExecutionResult(None, _elapsed_ms(started), error=type(exc).__name__)
        return ExecutionResult(response.status_code, _elapsed_ms(started))

    async def aclose(self) -> None:
        await self._client.aclose()


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
