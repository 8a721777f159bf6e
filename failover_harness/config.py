"""
Configuration management for the failover harness.

Uses pydantic-settings for type-safe environment variable handling.
All windows are expressed in milliseconds and scaled by ``timeout_factor``
so that slow or loaded CI environments can stretch the whole run.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessSettings(BaseSettings):
    """
    Harness settings loaded from environment variables.

    Every duration is a raw millisecond value; use the ``*_s`` properties
    (or ``adjust``) to get the scaled value in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Timing windows
    stability_window_ms: int = Field(
        default=5000,
        gt=0,
        description="Failure-free window before the first checkpoint and after each restart",
    )
    outage_window_ms: int = Field(
        default=5000,
        gt=0,
        description="How long a targeted node is kept stopped",
    )
    invocation_period_ms: int = Field(
        default=100,
        gt=0,
        description="Delay between the end of one invocation and the start of the next",
    )
    topology_convergence_ms: int = Field(
        default=5000,
        gt=0,
        description="Wait after acquiring the service so the client sees the full topology",
    )
    restart_convergence_ms: int | None = Field(
        default=None,
        gt=0,
        description="Wait after a node restart before checking; defaults to the stability window",
    )
    graceful_shutdown_timeout_ms: int = Field(
        default=30000,
        gt=0,
        description="Grace period granted to a node to drain in-flight work on stop",
    )
    invocation_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Optional upper bound for a single remote call",
    )

    timeout_factor: float = Field(
        default=1.0,
        gt=0,
        validation_alias=AliasChoices("HARNESS_TIMEOUT_FACTOR", "TIMEOUT_FACTOR", "timeout_factor"),
        description="Multiplier applied to every window (e.g. 2.0 on slow machines)",
    )

    # Script behaviour
    strict_outage_checks: bool = Field(
        default=True,
        description="Checkpoint after every stop, not only the first member of a sub-cluster",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON formatted log lines")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    def adjust(self, millis: int | float) -> float:
        """Scale a millisecond value by the timeout factor and return seconds."""
        return millis * self.timeout_factor / 1000.0

    @property
    def stability_window_s(self) -> float:
        return self.adjust(self.stability_window_ms)

    @property
    def outage_window_s(self) -> float:
        return self.adjust(self.outage_window_ms)

    @property
    def invocation_period_s(self) -> float:
        return self.adjust(self.invocation_period_ms)

    @property
    def topology_convergence_s(self) -> float:
        return self.adjust(self.topology_convergence_ms)

    @property
    def restart_convergence_s(self) -> float:
        if self.restart_convergence_ms is None:
            return self.stability_window_s
        return self.adjust(self.restart_convergence_ms)

    @property
    def graceful_shutdown_s(self) -> float:
        return self.adjust(self.graceful_shutdown_timeout_ms)

    @property
    def invocation_timeout_s(self) -> float | None:
        if self.invocation_timeout_ms is None:
            return None
        return self.adjust(self.invocation_timeout_ms)

    def get_redacted_config(self) -> dict[str, str | int | float | bool | None]:
        """
        Get a flat view of the configuration.
        Safe for logging at the start of a run.
        """
        return {
            "stability_window_ms": self.stability_window_ms,
            "outage_window_ms": self.outage_window_ms,
            "invocation_period_ms": self.invocation_period_ms,
            "topology_convergence_ms": self.topology_convergence_ms,
            "restart_convergence_ms": self.restart_convergence_ms,
            "graceful_shutdown_timeout_ms": self.graceful_shutdown_timeout_ms,
            "invocation_timeout_ms": self.invocation_timeout_ms,
            "timeout_factor": self.timeout_factor,
            "strict_outage_checks": self.strict_outage_checks,
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> HarnessSettings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout a test session.
    """
    return HarnessSettings()
