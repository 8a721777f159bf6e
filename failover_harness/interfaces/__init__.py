"""
Interfaces (abstract base classes) for the failover harness.

These define the contracts that must be implemented by:
- ServiceHandle: the remote stateful counter under test
- TopologyController: stop/start primitives over the cluster members
"""

from failover_harness.interfaces.service_handle import ServiceFactory, ServiceHandle
from failover_harness.interfaces.topology_controller import TopologyController

__all__ = [
    "ServiceFactory",
    "ServiceHandle",
    "TopologyController",
]
