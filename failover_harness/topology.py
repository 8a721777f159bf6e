"""
Cluster topology model.

Two named sub-clusters of equal size. Node state is only mutated through
the orchestrator after a successful stop/start call on the controller.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, field_validator


class NodeState(str, Enum):
    """Run state of a cluster member."""

    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class ClusterNode(BaseModel):
    """A single addressable cluster member."""

    node_id: str
    sub_cluster: str
    state: NodeState = NodeState.RUNNING


class ClusterTopology(BaseModel):
    """
    Fixed set of nodes grouped into exactly two sub-clusters.

    Sub-cluster order and member order are preserved; the toggle script
    walks them in that order.
    """

    sub_clusters: dict[str, list[str]] = Field(
        description="Sub-cluster name -> ordered node ids",
    )

    _nodes: dict[str, ClusterNode] = PrivateAttr(default_factory=dict)

    @field_validator("sub_clusters")
    @classmethod
    def validate_shape(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        if len(v) != 2:
            raise ValueError(f"Topology needs exactly 2 sub-clusters, got {len(v)}")
        sizes = {len(members) for members in v.values()}
        if len(sizes) != 1 or 0 in sizes:
            raise ValueError("Sub-clusters must be non-empty and of equal size")

        seen: set[str] = set()
        for members in v.values():
            for node_id in members:
                if node_id in seen:
                    raise ValueError(f"Node {node_id} appears more than once")
                seen.add(node_id)
        return v

    def model_post_init(self, __context: Any) -> None:
        for name, members in self.sub_clusters.items():
            for node_id in members:
                self._nodes[node_id] = ClusterNode(node_id=node_id, sub_cluster=name)

    @classmethod
    def two_by_two(cls) -> "ClusterTopology":
        """Default four-node topology: cluster A = {node-1, node-2}, cluster B = {node-3, node-4}."""
        return cls(
            sub_clusters={
                "clusterA": ["node-1", "node-2"],
                "clusterB": ["node-3", "node-4"],
            }
        )

    def nodes(self) -> list[ClusterNode]:
        """All nodes, sub-cluster by sub-cluster."""
        return [self._nodes[n] for members in self.sub_clusters.values() for n in members]

    def node(self, node_id: str) -> ClusterNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown node: {node_id}") from None

    def sub_cluster_of(self, node_id: str) -> str:
        return self.node(node_id).sub_cluster

    def siblings(self, node_id: str) -> list[str]:
        """Other members of the node's sub-cluster."""
        name = self.sub_cluster_of(node_id)
        return [n for n in self.sub_clusters[name] if n != node_id]

    def label(self, node_id: str) -> str:
        """Human label such as ``clusterA-node0`` (zero-based member index)."""
        name = self.sub_cluster_of(node_id)
        return f"{name}-node{self.sub_clusters[name].index(node_id)}"

    def running_nodes(self, sub_cluster: str) -> list[str]:
        return [
            n for n in self.sub_clusters[sub_cluster]
            if self._nodes[n].state == NodeState.RUNNING
        ]

    def stopped_nodes(self) -> list[str]:
        return [n.node_id for n in self.nodes() if n.state == NodeState.STOPPED]

    def mark_stopped(self, node_id: str) -> None:
        self.node(node_id).state = NodeState.STOPPED

    def mark_running(self, node_id: str) -> None:
        self.node(node_id).state = NodeState.RUNNING

    def is_reachable(self) -> bool:
        """True while every sub-cluster still has at least one running member."""
        return all(self.running_nodes(name) for name in self.sub_clusters)

    def copy_fresh(self) -> "ClusterTopology":
        """Same shape and node states, independent instance."""
        clone = ClusterTopology(sub_clusters={k: list(v) for k, v in self.sub_clusters.items()})
        for node in self.nodes():
            clone.node(node.node_id).state = node.state
        return clone
