"""
Invocation driver.

Background task that keeps calling the service under test with a fixed
delay between the end of one call and the start of the next, and feeds
every outcome into the consistency monitor.
"""

import asyncio
from enum import Enum

from failover_harness.interfaces import ServiceHandle
from failover_harness.logging import get_logger
from failover_harness.monitor import ConsistencyMonitor

logger = get_logger(__name__)


class DriverState(str, Enum):
    """Driver lifecycle: IDLE -> RUNNING -> CANCELLED (terminal)."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    CANCELLED = "CANCELLED"


class InvocationDriver:
    """
    Fixed-delay invocation loop.

    A failing invocation never stops the loop. Only ``cancel`` does, and it
    does not wait for an in-flight call to finish.
    """

    def __init__(
        self,
        service: ServiceHandle,
        monitor: ConsistencyMonitor,
        period_s: float,
        invocation_timeout_s: float | None = None,
    ) -> None:
        """
        Initialize driver.

        Args:
            service: Handle to invoke on every tick
            monitor: Receives every outcome
            period_s: Delay between the end of one invocation and the next
            invocation_timeout_s: Optional bound on a single call; a call
                exceeding it is recorded as a failure
        """
        if period_s <= 0:
            raise ValueError(f"period_s must be positive, got {period_s}")
        self._service = service
        self._monitor = monitor
        self._period_s = period_s
        self._invocation_timeout_s = invocation_timeout_s

        self._state = DriverState.IDLE
        self._cancelled = False
        self._task: asyncio.Task | None = None
        self._tick_count = 0

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def tick_count(self) -> int:
        """Number of invocations dispatched so far."""
        return self._tick_count

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self._state != DriverState.IDLE:
            raise RuntimeError(f"Driver cannot start from state {self._state.value}")
        self._state = DriverState.RUNNING
        self._task = asyncio.create_task(self._loop(), name="invocation-driver")
        logger.info("Invocation driver started (period %.3fs)", self._period_s)

    def cancel(self) -> None:
        """
        Stop scheduling invocations.

        Idempotent. Safe to call before ``start``. An in-flight invocation is
        abandoned and its outcome is never recorded.
        """
        if self._state == DriverState.CANCELLED:
            return
        self._cancelled = True
        self._state = DriverState.CANCELLED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("Invocation driver cancelled after %d invocations", self._tick_count)

    async def wait_closed(self) -> None:
        """Wait for the background task to finish unwinding after ``cancel``."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def aclose(self) -> None:
        self.cancel()
        await self.wait_closed()

    async def _loop(self) -> None:
        while not self._cancelled:
            await self._tick()
            if self._cancelled:
                break
            await asyncio.sleep(self._period_s)

    async def _tick(self) -> None:
        self._tick_count += 1
        sequence = self._tick_count
        try:
            if self._invocation_timeout_s is not None:
                value = await asyncio.wait_for(
                    self._service.fetch_and_increment(), self._invocation_timeout_s
                )
            else:
                value = await self._service.fetch_and_increment()
        except Exception as e:
            self._monitor.record_failure(sequence, e)
            return
        self._monitor.record_value(sequence, value)
