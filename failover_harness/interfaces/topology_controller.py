"""
TopologyController interface.

Defines the stop/start primitives the orchestrator uses to toggle
cluster members.
"""

from abc import ABC, abstractmethod


class TopologyController(ABC):
    """
    Abstract base class for cluster node control.

    Both operations raise ``TopologyControlError`` when the request is
    not honored. ``start`` returns once the node was asked to rejoin; it
    does not wait for cluster membership to converge.
    """

    @abstractmethod
    async def stop(self, node_id: str, grace_period_ms: int) -> None:
        """
        Request an orderly shutdown of one node.

        Args:
            node_id: Node identifier from the topology
            grace_period_ms: Time the node may spend draining in-flight work
        """
        pass

    @abstractmethod
    async def start(self, node_id: str) -> None:
        """Request that a stopped node rejoins the topology."""
        pass
