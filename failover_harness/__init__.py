"""
Failover Harness

Continuous-invocation consistency harness for two-cluster failover tests:
- Background invocation driver against a stateful clustered service
- Latched consistency monitor with counter resynchronization
- Scripted node stop/start sequence with per-phase checkpoints
"""

__version__ = "0.1.0"

from failover_harness.config import HarnessSettings, get_settings
from failover_harness.errors import (
    CorrectnessViolation,
    HarnessError,
    ScriptError,
    ServiceAcquisitionError,
    ServiceInvocationError,
    TopologyControlError,
)
from failover_harness.orchestrator import FailoverOrchestrator, HarnessReport, run_failover_test
from failover_harness.topology import ClusterTopology

__all__ = [
    "__version__",
    "ClusterTopology",
    "CorrectnessViolation",
    "FailoverOrchestrator",
    "HarnessError",
    "HarnessReport",
    "HarnessSettings",
    "ScriptError",
    "ServiceAcquisitionError",
    "ServiceInvocationError",
    "TopologyControlError",
    "get_settings",
    "run_failover_test",
]
