"""
Error taxonomy for the failover harness.

Transient invocation failures are recorded by the consistency monitor and
only surface at the next checkpoint. Everything else is fatal and aborts
the scripted run.
"""


class HarnessError(Exception):
    """Base class for all harness errors."""

    pass


class ServiceInvocationError(HarnessError):
    """Raised by a service handle when a single remote call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CorrectnessViolation(HarnessError, AssertionError):
    """
    A checkpoint found a latched invocation failure.

    Carries the checkpoint label and the first failure, since later failures
    are suppressed by the latch and would otherwise hide the root cause.
    """

    def __init__(self, label: str, first_failure: BaseException, invocation_count: int):
        super().__init__(
            f"Client threw an exception {label}: "
            f"{type(first_failure).__name__}: {first_failure} "
            f"(after {invocation_count} invocations)"
        )
        self.label = label
        self.first_failure = first_failure
        self.invocation_count = invocation_count


class TopologyControlError(HarnessError):
    """A node stop/start request was not honored. Infrastructure fault."""

    def __init__(self, message: str, node_id: str, operation: str):
        super().__init__(message)
        self.node_id = node_id
        self.operation = operation


class ServiceAcquisitionError(HarnessError):
    """The service handle could not be acquired before the run started."""

    pass


class ScriptError(HarnessError):
    """A toggle script would break the topology invariants."""

    pass
