"""Virtual-user scheduler driving a scenario through a staged ramp profile.

Each virtual user is an ``asyncio.Task`` that loops over the scenario until it
is told to stop or the run deadline passes. A single control coroutine walks
the ramp stages and resizes the population:

* ``step`` transition: at the start of a stage the population jumps to the
  stage target and is held for the stage duration.
* ``linear`` transition: the population moves linearly from the previous
  stage's target to this stage's target, re-evaluated every control tick.

Shrinking never cancels an in-flight request. Retired users are signalled
through their stop event and exit after the step they are running. Users still
busy when the grace period runs out are cancelled, and the interrupted request
is recorded as a failure with error ``cancelled``.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence, Set

from rampload.collector import MetricsCollector
from rampload.executor import RequestExecutor
from rampload.models import ExecutionResult, RampStage, RequestOutcome, RequestStep, Scenario
from rampload.scenario import render_step

logger = logging.getLogger(__name__)


class VirtualUser:
    def __init__(self, vu_id: int):
        self.id = vu_id
        self.iterations = 0
        self.stop_event = asyncio.Event()
        self.task: Optional[asyncio.Task] = None


class VirtualUserScheduler:
    """Run *scenario* with a population that follows *stages*.

    Args:
        stages: Ordered ramp stages.
        scenario: Steps each virtual user performs per iteration.
        executor: Performs the individual requests.
        collector: Receives one RequestOutcome per completed request.
        base_url: Prefix for relative step URLs.
        timeout_s: Upper bound for a single request.
        grace_period_s: How long to wait for users to finish at run end.
        transition: ``"step"`` or ``"linear"``.
    """

    control_tick_s = 0.1

    def __init__(
        self,
        stages: Sequence[RampStage],
        scenario: Scenario,
        executor: RequestExecutor,
        collector: MetricsCollector,
        base_url: str = "",
        timeout_s: float = 30.0,
        grace_period_s: float = 30.0,
        transition: str = "step",
    ):
        if transition not in ("step", "linear"):
            raise ValueError(f"unknown transition: {transition!r}")
        self.stages = tuple(stages)
        self.scenario = scenario
        self.executor = executor
        self.collector = collector
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.grace_period_s = grace_period_s
        self.transition = transition

        self.spawned_users = 0
        self.peak_users = 0
        self.requests_completed = 0
        self._active: List[VirtualUser] = []
        self._retiring: Set[VirtualUser] = set()
        self._deadline = 0.0

    @property
    def active_users(self) -> int:
        return len(self._active)

    @property
    def total_duration_s(self) -> float:
        return sum(stage.duration_s for stage in self.stages)

    async def run(self) -> None:
        """Drive all stages, then stop every user and wait for them."""
        started = time.monotonic()
        self._deadline = started + self.total_duration_s
        previous_target = 0
        stage_start = started
        try:
            for index, stage in enumerate(self.stages):
                stage_end = stage_start + stage.duration_s
                logger.info(
                    "stage %d/%d: target %d users for %.1fs",
                    index + 1, len(self.stages), stage.target, stage.duration_s,
                )
                if self.transition == "linear":
                    await self._ramp_linear(previous_target, stage.target, stage_start, stage_end)
                else:
                    self._resize(stage.target)
                    await self._sleep_until(stage_end)
                previous_target = stage.target
                stage_start = stage_end
        finally:
            await self._shutdown()
        logger.info(
            "run finished: %d requests from %d virtual users (peak %d)",
            self.requests_completed, self.spawned_users, self.peak_users,
        )

    # -- population control ---------------------------------------------------

    async def _ramp_linear(self, start_target: int, end_target: int, start: float, end: float) -> None:
        span = end - start
        while True:
            now = time.monotonic()
            if now >= end:
                return
            fraction = (now - start) / span
            self._resize(round(start_target + (end_target - start_target) * fraction))
            await asyncio.sleep(min(self.control_tick_s, end - now))

    async def _sleep_until(self, moment: float) -> None:
        remaining = moment - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)

    def _resize(self, target: int) -> None:
        current = len(self._active)
        if target > current:
            for _ in range(target - current):
                self._spawn()
        elif target < current:
            for _ in range(current - target):
                self._retire(self._active.pop())
        self.peak_users = max(self.peak_users, len(self._active))

    def _spawn(self) -> None:
        self.spawned_users += 1
        user = VirtualUser(self.spawned_users)
        user.task = asyncio.ensure_future(self._user_loop(user))
        user.task.add_done_callback(lambda task, u=user: self._on_user_done(u, task))
        self._active.append(user)
        logger.debug("spawned virtual user %d", user.id)

    def _retire(self, user: VirtualUser) -> None:
        user.stop_event.set()
        if not user.task.done():
            self._retiring.add(user)
        logger.debug("retiring virtual user %d", user.id)

    def _on_user_done(self, user: VirtualUser, task: asyncio.Task) -> None:
        self._retiring.discard(user)
        if user in self._active:
            self._active.remove(user)
        if not task.cancelled() and task.exception() is not None:
            logger.error("virtual user %d crashed", user.id, exc_info=task.exception())

    async def _shutdown(self) -> None:
        users = self._active + list(self._retiring)
        for user in users:
            user.stop_event.set()
        pending_tasks = [u.task for u in users if not u.task.done()]
        self._active = []
        if not pending_tasks:
            return
        _, pending = await asyncio.wait(pending_tasks, timeout=self.grace_period_s)
        if pending:
            logger.warning(
                "cancelling %d virtual users still running after %.1fs grace period",
                len(pending), self.grace_period_s,
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    # -- virtual user ---------------------------------------------------------

    def _should_stop(self, user: VirtualUser) -> bool:
        return user.stop_event.is_set() or time.monotonic() >= self._deadline

    async def _user_loop(self, user: VirtualUser) -> None:
        while not self._should_stop(user):
            for step in self.scenario.steps:
                if self._should_stop(user):
                    return
                await self._run_step(user, step)
                if step.think_time_s > 0:
                    await self._think(user, step.think_time_s)
            user.iterations += 1
            # an executor that never suspends must not starve the control loop
            await asyncio.sleep(0)

    async def _think(self, user: VirtualUser, seconds: float) -> None:
        seconds = min(seconds, self._deadline - time.monotonic())
        if seconds <= 0 or user.stop_event.is_set():
            return
        try:
            await asyncio.wait_for(user.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_step(self, user: VirtualUser, step: RequestStep) -> None:
        timestamp = time.time()
        try:
            url, headers, body = render_step(step, self.base_url, user.id, user.iterations)
        except (TypeError, ValueError) as exc:
            logger.warning("could not render %s %s: %s", step.method, step.url, exc)
            self._record(step, timestamp, ExecutionResult(None, 0.0, error=type(exc).__name__))
            return
        try:
            result = await asyncio.wait_for(
                self.executor.execute(step.method, url, headers, body, self.timeout_s),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            result = ExecutionResult(None, self.timeout_s * 1000.0, error="timeout")
        except asyncio.CancelledError:
            self._record(step, timestamp, ExecutionResult(
                None, (time.time() - timestamp) * 1000.0, error="cancelled",
            ))
            raise
        except Exception as exc:
            logger.warning("executor raised for %s %s: %r", step.method, url, exc)
            result = ExecutionResult(None, (time.time() - timestamp) * 1000.0, error=type(exc).__name__)
        self._record(step, timestamp, result)

    def _record(self, step: RequestStep, timestamp: float, result: ExecutionResult) -> None:
        self.collector.ingest(RequestOutcome(
            group=step.group,
            status_code=result.status_code,
            duration_ms=result.duration_ms,
            timestamp=timestamp,
            error=result.error,
        ))
        self.requests_completed += 1
