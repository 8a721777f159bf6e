"""
End-to-end tests for the failover orchestrator against the fake cluster.
"""

import asyncio
import logging

import pytest

from failover_harness.config import HarnessSettings
from failover_harness.errors import (
    CorrectnessViolation,
    ScriptError,
    ServiceAcquisitionError,
    TopologyControlError,
)
from failover_harness.logging import HarnessFormatter
from failover_harness.orchestrator import FailoverOrchestrator, run_failover_test
from failover_harness.script import BASELINE_LABEL
from failover_harness.topology import ClusterTopology
from tests.fixtures.fake_cluster import FakeCluster

pytestmark = pytest.mark.chaos


def _orchestrator(cluster: FakeCluster, settings: HarnessSettings, **kwargs) -> FailoverOrchestrator:
    return FailoverOrchestrator(
        cluster.factory,
        "ForwardingStatefulSBImpl",
        cluster,
        topology=ClusterTopology.two_by_two(),
        settings=settings,
        **kwargs,
    )


async def _assert_driver_stopped(cluster: FakeCluster) -> None:
    calls = cluster.call_count
    await asyncio.sleep(0.03)
    assert cluster.call_count == calls


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_full_toggle_sequence_passes(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        orchestrator = _orchestrator(fake_cluster, fast_settings)

        report = await orchestrator.run()

        assert report.implementation == "ForwardingStatefulSBImpl"
        assert report.checkpoints_passed[0] == BASELINE_LABEL
        assert len(report.checkpoints_passed) == 9
        assert report.checkpoints_passed[-1] == "after clusterB-node1 was brought back up"
        assert report.nodes_toggled == ["node-1", "node-2", "node-3", "node-4"]
        assert report.failure_count == 0
        assert report.resync_count == 0
        assert report.invocation_count > 20
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_never_stops_both_members_of_a_sub_cluster(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        await _orchestrator(fake_cluster, fast_settings).run()

        assert fake_cluster.max_stopped_per_sub_cluster == 1
        assert fake_cluster.control_log == [
            ("stop", "node-1"), ("start", "node-1"),
            ("stop", "node-2"), ("start", "node-2"),
            ("stop", "node-3"), ("start", "node-3"),
            ("stop", "node-4"), ("start", "node-4"),
        ]
        assert fake_cluster.topology.stopped_nodes() == []

    @pytest.mark.asyncio
    async def test_releases_service_and_stops_driver(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        await _orchestrator(fake_cluster, fast_settings).run()

        assert len(fake_cluster.services) == 1
        assert fake_cluster.services[0].close_count == 1
        assert fake_cluster.services[0].implementation == "ForwardingStatefulSBImpl"
        await _assert_driver_stopped(fake_cluster)

    @pytest.mark.asyncio
    async def test_grace_period_is_scaled(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        settings = fast_settings.model_copy(update={"timeout_factor": 2.0})

        await _orchestrator(fake_cluster, settings).run()

        assert fake_cluster.grace_periods == [2000] * 4

    @pytest.mark.asyncio
    async def test_counter_jump_is_a_resync_not_a_failure(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.jump_on_call(5, 10)

        report = await _orchestrator(fake_cluster, fast_settings).run()

        assert report.resync_count == 1
        assert report.failure_count == 0

    def test_synchronous_entrypoint(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings, restore_root_logger
    ) -> None:
        report = run_failover_test(
            fake_cluster.factory,
            "StatefulSBImpl",
            fake_cluster,
            settings=fast_settings,
        )

        assert report.implementation == "StatefulSBImpl"
        assert len(report.checkpoints_passed) == 9

    def test_synchronous_entrypoint_configures_logging(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings, restore_root_logger
    ) -> None:
        settings = fast_settings.model_copy(update={"log_level": "DEBUG", "json_logs": True})

        run_failover_test(fake_cluster.factory, "StatefulSBImpl", fake_cluster, settings=settings)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, HarnessFormatter)
        assert root.handlers[0].formatter._fmt.startswith("{")


class TestRepeatedRuns:
    @pytest.mark.asyncio
    async def test_second_run_starts_from_clean_state(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_call(3)
        orchestrator = _orchestrator(fake_cluster, fast_settings)

        with pytest.raises(CorrectnessViolation):
            await orchestrator.run()
        first_monitor = orchestrator.monitor
        calls_before = fake_cluster.call_count

        report = await orchestrator.run()

        assert orchestrator.monitor is not first_monitor
        assert report.failure_count == 0
        assert len(report.checkpoints_passed) == 9
        # only this run's driver invocations, warm-up excluded
        assert report.invocation_count == fake_cluster.call_count - calls_before - 1

    @pytest.mark.asyncio
    async def test_counts_are_not_cumulative(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        orchestrator = _orchestrator(fake_cluster, fast_settings)

        await orchestrator.run()
        calls_before = fake_cluster.call_count
        second = await orchestrator.run()

        assert second.invocation_count == fake_cluster.call_count - calls_before - 1

    @pytest.mark.asyncio
    async def test_aborted_run_does_not_leave_nodes_stopped(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_start("node-2")
        orchestrator = _orchestrator(fake_cluster, fast_settings)

        with pytest.raises(TopologyControlError):
            await orchestrator.run()
        assert orchestrator.topology.stopped_nodes() == ["node-2"]

        # node brought back by the outer test driver
        fake_cluster.allow_start("node-2")
        fake_cluster.topology.mark_running("node-2")
        report = await orchestrator.run()

        assert len(report.checkpoints_passed) == 9
        assert orchestrator.topology.stopped_nodes() == []


class TestCorrectnessViolations:
    @pytest.mark.asyncio
    async def test_failure_in_stable_window_fails_baseline(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_call(3)

        with pytest.raises(CorrectnessViolation) as exc_info:
            await _orchestrator(fake_cluster, fast_settings).run()

        assert exc_info.value.label == BASELINE_LABEL
        assert "call #3" in str(exc_info.value)
        assert fake_cluster.control_log == []
        assert fake_cluster.services[0].close_count == 1
        await _assert_driver_stopped(fake_cluster)

    @pytest.mark.asyncio
    async def test_failure_during_outage_names_stopped_node(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.make_critical("node-1")

        with pytest.raises(CorrectnessViolation) as exc_info:
            await _orchestrator(fake_cluster, fast_settings).run()

        assert exc_info.value.label == "after clusterA-node0 was shut down"
        assert "node-1" in str(exc_info.value.first_failure)
        # aborted before the restart
        assert fake_cluster.control_log == [("stop", "node-1")]
        assert fake_cluster.services[0].close_count == 1
        await _assert_driver_stopped(fake_cluster)

    @pytest.mark.asyncio
    async def test_unchecked_outage_is_caught_after_restart(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.make_critical("node-2")
        settings = fast_settings.model_copy(update={"strict_outage_checks": False})

        with pytest.raises(CorrectnessViolation) as exc_info:
            await _orchestrator(fake_cluster, settings).run()

        assert exc_info.value.label == "after clusterA-node1 was brought back up"

    @pytest.mark.asyncio
    async def test_warm_up_failure(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_call(1)

        with pytest.raises(CorrectnessViolation) as exc_info:
            await _orchestrator(fake_cluster, fast_settings).run()

        assert exc_info.value.label == "on the first invocation"
        assert fake_cluster.call_count == 1
        assert fake_cluster.services[0].close_count == 1


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_stop_not_honored_is_topology_error(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_stop("node-3")

        with pytest.raises(TopologyControlError) as exc_info:
            await _orchestrator(fake_cluster, fast_settings).run()

        error = exc_info.value
        assert not isinstance(error, CorrectnessViolation)
        assert error.node_id == "node-3"
        assert error.operation == "stop"
        assert isinstance(error.__cause__, RuntimeError)
        assert fake_cluster.services[0].close_count == 1
        await _assert_driver_stopped(fake_cluster)

    @pytest.mark.asyncio
    async def test_start_not_honored_is_topology_error(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        fake_cluster.fail_start("node-2")

        with pytest.raises(TopologyControlError) as exc_info:
            await _orchestrator(fake_cluster, fast_settings).run()

        assert exc_info.value.node_id == "node-2"
        assert exc_info.value.operation == "start"
        assert fake_cluster.services[0].close_count == 1

    @pytest.mark.asyncio
    async def test_acquisition_failure_happens_before_any_phase(
        self, fake_cluster: FakeCluster, fast_settings: HarnessSettings
    ) -> None:
        async def broken_factory(implementation: str):
            raise ConnectionError(f"no route to {implementation}")

        orchestrator = FailoverOrchestrator(
            broken_factory, "StatefulSBImpl", fake_cluster, settings=fast_settings
        )

        with pytest.raises(ServiceAcquisitionError) as exc_info:
            await orchestrator.run()

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert fake_cluster.control_log == []
        assert orchestrator.monitor.invocation_count == 0

    @pytest.mark.asyncio
    async def test_untoggleable_topology_is_rejected_up_front(
        self, fast_settings: HarnessSettings
    ) -> None:
        topology = ClusterTopology(sub_clusters={"clusterA": ["a"], "clusterB": ["b"]})
        cluster = FakeCluster(topology=topology.copy_fresh())
        orchestrator = FailoverOrchestrator(
            cluster.factory, "StatefulSBImpl", cluster, topology=topology, settings=fast_settings
        )

        with pytest.raises(ScriptError):
            await orchestrator.run()

        assert cluster.services == []


class TestScenario:
    @pytest.mark.asyncio
    async def test_single_node_outage_scenario(self, fake_cluster: FakeCluster) -> None:
        """100ms period, 5s windows, scaled down tenfold."""
        settings = HarnessSettings(
            stability_window_ms=5000,
            outage_window_ms=5000,
            invocation_period_ms=100,
            topology_convergence_ms=1000,
            timeout_factor=0.1,
            _env_file=None,
        )
        counts: list[int] = []

        async def recording_sleep(seconds: float) -> None:
            await asyncio.sleep(seconds)
            counts.append(orchestrator.monitor.invocation_count)

        orchestrator = _orchestrator(fake_cluster, settings, sleep=recording_sleep)
        report = await orchestrator.run()

        # counts[0]: topology convergence (driver not started), counts[1]: stable window
        assert counts[0] == 0
        assert 40 <= counts[1] <= 51
        assert report.checkpoints_passed[1] == "after clusterA-node0 was shut down"
        assert report.checkpoints_passed[2] == "after clusterA-node0 was brought back up"
        assert report.failure_count == 0
