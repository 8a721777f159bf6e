"""
Failover test orchestrator.

Runs the scripted phase: acquire the service, let the topology settle, seed
the monitor, start the invocation driver, then stop and restart every node
in turn while checking the monitor at each checkpoint. The driver is
cancelled and the service released on every exit path.
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from failover_harness.config import HarnessSettings, get_settings
from failover_harness.driver import InvocationDriver
from failover_harness.errors import (
    CorrectnessViolation,
    ServiceAcquisitionError,
    TopologyControlError,
)
from failover_harness.interfaces import ServiceFactory, ServiceHandle, TopologyController
from failover_harness.logging import clear_run_id, get_logger, set_run_id, setup_logging
from failover_harness.monitor import ConsistencyMonitor
from failover_harness.script import (
    BASELINE_LABEL,
    Checkpoint,
    ScriptStep,
    StartNode,
    StopNode,
    Wait,
    build_toggle_script,
    validate_script,
)
from failover_harness.topology import ClusterTopology

logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class HarnessReport(BaseModel):
    """Summary of a completed (passing) harness run."""

    run_id: str
    implementation: str
    started_at: datetime
    finished_at: datetime | None = None
    invocation_count: int = 0
    failure_count: int = 0
    resync_count: int = 0
    checkpoints_passed: list[str] = Field(default_factory=list)
    nodes_toggled: list[str] = Field(default_factory=list)


class FailoverOrchestrator:
    """
    Drives one two-cluster failover run against a single implementation.

    The service factory and the implementation identifier are plain
    constructor arguments, so one orchestrator class covers every variant
    of the service under test.
    """

    def __init__(
        self,
        service_factory: ServiceFactory,
        implementation: str,
        controller: TopologyController,
        topology: ClusterTopology | None = None,
        settings: HarnessSettings | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._service_factory = service_factory
        self._implementation = implementation
        self._controller = controller
        self._topology = topology or ClusterTopology.two_by_two()
        self._settings = settings or get_settings()
        self._sleep = sleep
        self.monitor = ConsistencyMonitor()
        self._live_topology = self._topology.copy_fresh()

    @property
    def topology(self) -> ClusterTopology:
        """Node states as tracked by the current (or last) run."""
        return self._live_topology

    def build_script(self) -> list[ScriptStep]:
        """Generate and validate the toggle script for this topology."""
        steps = build_toggle_script(self._topology, self._settings)
        validate_script(self._topology, steps)
        return steps

    async def run(self) -> HarnessReport:
        """
        Execute the full scripted phase.

        Raises:
            ServiceAcquisitionError: The service could not be acquired.
            CorrectnessViolation: A checkpoint found a latched failure.
            TopologyControlError: A node stop/start was not honored.
            ScriptError: The generated script breaks the topology invariants.
        """
        run_id = uuid4().hex[:8]
        set_run_id(run_id)
        # State from an earlier run never carries over
        self.monitor = ConsistencyMonitor()
        self._live_topology = self._topology.copy_fresh()
        report = HarnessReport(
            run_id=run_id,
            implementation=self._implementation,
            started_at=datetime.now(UTC),
        )
        logger.info(
            "Starting failover run for %s with %s",
            self._implementation,
            self._settings.get_redacted_config(),
        )

        try:
            steps = self.build_script()
            async with AsyncExitStack() as stack:
                service = await self._acquire_service()
                stack.push_async_callback(self._release_service, service)

                logger.info("Waiting for clusters to form.")
                await self._sleep(self._settings.topology_convergence_s)

                await self._warm_up(service)

                driver = InvocationDriver(
                    service,
                    self.monitor,
                    period_s=self._settings.invocation_period_s,
                    invocation_timeout_s=self._settings.invocation_timeout_s,
                )
                stack.push_async_callback(driver.aclose)
                driver.start()

                await self._sleep(self._settings.stability_window_s)
                self._checkpoint(BASELINE_LABEL, report)

                for step in steps:
                    await self._execute(step, report)
        finally:
            clear_run_id()

        state = self.monitor.snapshot()
        report.finished_at = datetime.now(UTC)
        report.invocation_count = state.invocation_count
        report.failure_count = state.failure_count
        report.resync_count = state.resync_count
        logger.info(
            "Failover run %s passed: %d invocations, %d resynchronizations",
            run_id,
            state.invocation_count,
            state.resync_count,
        )
        return report

    async def _acquire_service(self) -> ServiceHandle:
        try:
            return await self._service_factory(self._implementation)
        except ServiceAcquisitionError:
            raise
        except Exception as e:
            raise ServiceAcquisitionError(
                f"Could not acquire service for {self._implementation}: {e}"
            ) from e

    async def _release_service(self, service: ServiceHandle) -> None:
        try:
            await service.close()
        except Exception as e:
            logger.warning("Error releasing service handle: %s", e)

    async def _warm_up(self, service: ServiceHandle) -> None:
        try:
            value = await service.fetch_and_increment()
        except Exception as e:
            logger.error("First invocation failed: %s", e)
            raise CorrectnessViolation("on the first invocation", e, 0) from e
        self.monitor.seed(value)

    async def _execute(self, step: ScriptStep, report: HarnessReport) -> None:
        if isinstance(step, StopNode):
            await self._stop(step.node_id)
            report.nodes_toggled.append(step.node_id)
        elif isinstance(step, StartNode):
            await self._start(step.node_id)
        elif isinstance(step, Wait):
            logger.debug("Waiting %.3fs (%s)", step.seconds, step.kind.value)
            await self._sleep(step.seconds)
        elif isinstance(step, Checkpoint):
            self._checkpoint(step.label, report)

    def _checkpoint(self, label: str, report: HarnessReport) -> None:
        self.monitor.assert_no_failure(label)
        report.checkpoints_passed.append(label)

    async def _stop(self, node_id: str) -> None:
        label = self._topology.label(node_id)
        grace_period_ms = int(self._settings.graceful_shutdown_s * 1000)
        logger.info("------ Shutdown %s (%s) -----", label, node_id)
        try:
            await self._controller.stop(node_id, grace_period_ms)
        except TopologyControlError:
            raise
        except Exception as e:
            raise TopologyControlError(
                f"Stopping {node_id} failed: {e}", node_id=node_id, operation="stop"
            ) from e
        self._live_topology.mark_stopped(node_id)

    async def _start(self, node_id: str) -> None:
        label = self._topology.label(node_id)
        logger.info("------ Startup %s (%s) -----", label, node_id)
        try:
            await self._controller.start(node_id)
        except TopologyControlError:
            raise
        except Exception as e:
            raise TopologyControlError(
                f"Starting {node_id} failed: {e}", node_id=node_id, operation="start"
            ) from e
        self._live_topology.mark_running(node_id)


def run_failover_test(
    service_factory: ServiceFactory,
    implementation: str,
    controller: TopologyController,
    topology: ClusterTopology | None = None,
    settings: HarnessSettings | None = None,
) -> HarnessReport:
    """Synchronous entrypoint for external test runners."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_output=settings.json_logs)
    orchestrator = FailoverOrchestrator(
        service_factory,
        implementation,
        controller,
        topology=topology,
        settings=settings,
    )
    return asyncio.run(orchestrator.run())
