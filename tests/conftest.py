"""
Pytest configuration and shared fixtures.
"""

import logging
import os

import pytest

from failover_harness.config import HarnessSettings, get_settings
from tests.fixtures.fake_cluster import FakeCluster


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure no harness tuning from the local shell leaks into tests."""
    for var in list(os.environ):
        if var.upper().startswith("HARNESS_") or var.upper() == "TIMEOUT_FACTOR":
            monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()


@pytest.fixture
def fast_settings() -> HarnessSettings:
    """Millisecond-scale windows so a full failover run finishes quickly."""
    return HarnessSettings(
        stability_window_ms=60,
        outage_window_ms=40,
        invocation_period_ms=5,
        topology_convergence_ms=10,
        restart_convergence_ms=40,
        graceful_shutdown_timeout_ms=1000,
        _env_file=None,
    )


@pytest.fixture
def fake_cluster() -> FakeCluster:
    """Healthy four-node cluster."""
    return FakeCluster()


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging's handler replacement on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
