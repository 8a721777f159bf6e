"""
Toggle script generation and validation.

The scripted phase is a flat list of steps. Generating it up front lets the
orchestrator check the whole sequence against the topology before any node
is touched: no step may leave a sub-cluster without a running member.
"""

from dataclasses import dataclass
from enum import Enum

from failover_harness.config import HarnessSettings
from failover_harness.errors import ScriptError
from failover_harness.topology import ClusterTopology, NodeState


class WaitKind(str, Enum):
    """What a wait step is waiting for."""

    STABILITY = "stability"
    OUTAGE = "outage"
    CONVERGENCE = "convergence"


@dataclass(frozen=True)
class StopNode:
    node_id: str


@dataclass(frozen=True)
class StartNode:
    node_id: str


@dataclass(frozen=True)
class Wait:
    kind: WaitKind
    seconds: float


@dataclass(frozen=True)
class Checkpoint:
    label: str


ScriptStep = StopNode | StartNode | Wait | Checkpoint

BASELINE_LABEL = "at the beginning of the test"


def build_toggle_script(
    topology: ClusterTopology, settings: HarnessSettings
) -> list[ScriptStep]:
    """
    Build the stop/restart sequence for every node, one node at a time.

    For each node of each sub-cluster, in declaration order: stop, outage
    wait, checkpoint, start, convergence wait, checkpoint. With
    ``strict_outage_checks`` disabled only the first member of a
    sub-cluster gets a checkpoint while it is down; a failure in the other
    outage windows is still latched and reported after the restart.
    """
    steps: list[ScriptStep] = []
    for members in topology.sub_clusters.values():
        for index, node_id in enumerate(members):
            label = topology.label(node_id)
            steps.append(StopNode(node_id))
            steps.append(Wait(WaitKind.OUTAGE, settings.outage_window_s))
            if settings.strict_outage_checks or index == 0:
                steps.append(Checkpoint(f"after {label} was shut down"))
            steps.append(StartNode(node_id))
            steps.append(Wait(WaitKind.CONVERGENCE, settings.restart_convergence_s))
            steps.append(Checkpoint(f"after {label} was brought back up"))
    return steps


def validate_script(topology: ClusterTopology, steps: list[ScriptStep]) -> None:
    """
    Replay the script against a copy of the topology.

    Raises:
        ScriptError: A step addresses an unknown node, stops a stopped node,
            starts a running node, leaves a sub-cluster with no running
            member, or the script ends with a node still down.
    """
    replay = topology.copy_fresh()
    for position, step in enumerate(steps):
        if isinstance(step, StopNode):
            node = _lookup(replay, step.node_id, position)
            if node.state == NodeState.STOPPED:
                raise ScriptError(f"Step {position}: {step.node_id} is already stopped")
            siblings_up = [
                s for s in replay.siblings(step.node_id)
                if replay.node(s).state == NodeState.RUNNING
            ]
            if not siblings_up:
                raise ScriptError(
                    f"Step {position}: stopping {step.node_id} leaves "
                    f"{node.sub_cluster} with no running member"
                )
            replay.mark_stopped(step.node_id)
        elif isinstance(step, StartNode):
            node = _lookup(replay, step.node_id, position)
            if node.state == NodeState.RUNNING:
                raise ScriptError(f"Step {position}: {step.node_id} is already running")
            replay.mark_running(step.node_id)
        elif isinstance(step, Wait) and step.seconds < 0:
            raise ScriptError(f"Step {position}: negative {step.kind.value} wait")

    still_down = replay.stopped_nodes()
    if still_down:
        raise ScriptError(f"Script ends with nodes still stopped: {', '.join(still_down)}")


def _lookup(topology: ClusterTopology, node_id: str, position: int):
    try:
        return topology.node(node_id)
    except KeyError:
        raise ScriptError(f"Step {position}: unknown node {node_id}") from None
