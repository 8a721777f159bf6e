"""
Consistency monitor.

Tracks the expected next counter value, the number of invocations and the
first failure seen by the invocation driver. Written by the driver, read by
the orchestrator at every checkpoint.
"""

import threading
from dataclasses import dataclass

from failover_harness.errors import CorrectnessViolation
from failover_harness.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvocationOutcome:
    """Result of one request: either a counter value or the failure it raised."""

    sequence: int
    value: int | None = None
    error: BaseException | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError("Outcome needs exactly one of value or error")

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ConsistencyState:
    """Point-in-time copy of the monitor state."""

    expected: int | None
    invocation_count: int
    failure_count: int
    resync_count: int
    first_failure: BaseException | None


class ConsistencyMonitor:
    """
    Running verdict of the harness.

    A mismatched counter value is a resynchronization, not a failure: the
    expected value is reset to what the server returned. Failures are
    latched, only the earliest one is kept.

    All state is guarded by a single lock so the driver and the orchestrator
    always observe each other's writes.
    """

    def __init__(self, expected: int | None = None):
        self._lock = threading.Lock()
        self._expected = expected
        self._invocation_count = 0
        self._failure_count = 0
        self._resync_count = 0
        self._first_failure: BaseException | None = None

    def seed(self, value: int) -> None:
        """Set the baseline from the warm-up invocation."""
        with self._lock:
            self._expected = value
        logger.debug("First invocation: serial = %d", value)

    def record_outcome(self, outcome: InvocationOutcome) -> None:
        """Feed one invocation outcome into the monitor."""
        if outcome.ok:
            self._record_value(outcome.sequence, outcome.value)
        else:
            self._record_failure(outcome.sequence, outcome.error)

    def record_value(self, sequence: int, value: int) -> None:
        self.record_outcome(InvocationOutcome(sequence=sequence, value=value))

    def record_failure(self, sequence: int, error: BaseException) -> None:
        self.record_outcome(InvocationOutcome(sequence=sequence, error=error))

    def _record_value(self, sequence: int, value: int) -> None:
        logger.debug("Client invocation #%d on service, received serial #%d.", sequence, value)
        with self._lock:
            self._invocation_count += 1
            if self._expected is None:
                self._expected = value
                return
            expected = self._expected + 1
            self._expected = value
            if value == expected:
                return
            self._resync_count += 1

        logger.warning(
            "Expected (%d) and received serial (%d) numbers do not match! Resetting.",
            expected,
            value,
        )

    def _record_failure(self, sequence: int, error: BaseException) -> None:
        with self._lock:
            self._invocation_count += 1
            self._failure_count += 1
            latched = self._first_failure is None
            if latched:
                self._first_failure = error

        if latched:
            logger.error(
                "Client invocation #%d failed, latching first failure: %s",
                sequence,
                error,
                exc_info=error,
            )
        else:
            logger.debug("Client invocation #%d failed: %s", sequence, error)

    def assert_no_failure(self, label: str) -> None:
        """
        Checkpoint verdict.

        Raises:
            CorrectnessViolation: A failure was latched since the run started.
        """
        with self._lock:
            first_failure = self._first_failure
            count = self._invocation_count

        if first_failure is not None:
            logger.error("Checkpoint failed %s: %s", label, first_failure)
            raise CorrectnessViolation(label, first_failure, count)
        logger.info("Checkpoint passed %s (%d invocations)", label, count)

    def snapshot(self) -> ConsistencyState:
        with self._lock:
            return ConsistencyState(
                expected=self._expected,
                invocation_count=self._invocation_count,
                failure_count=self._failure_count,
                resync_count=self._resync_count,
                first_failure=self._first_failure,
            )

    @property
    def invocation_count(self) -> int:
        with self._lock:
            return self._invocation_count

    @property
    def first_failure(self) -> BaseException | None:
        with self._lock:
            return self._first_failure

    @property
    def expected(self) -> int | None:
        with self._lock:
            return self._expected

    @property
    def resync_count(self) -> int:
        with self._lock:
            return self._resync_count

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count
