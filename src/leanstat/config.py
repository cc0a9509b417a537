"""leanstat configuration, loaded from the environment via pydantic-settings."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class CollectorSettings(BaseSettings):
    """All collector configuration. Reads LEANSTAT_* variables and .env."""

    # --- Memory budget ---
    min_bytes: int = Field(
        default=50 * MIB,
        ge=0,
        description="Lower bound of the memory budget (bytes)",
    )
    max_bytes: int = Field(
        default=200 * MIB,
        ge=0,
        description="Upper bound of the memory budget (bytes)",
    )

    # --- Sampling cadence ---
    update_interval: float = Field(
        default=5.0,
        gt=0,
        description="Minimum seconds between two refresh passes",
    )
    initial_delay: float = Field(default=0.5, ge=0, description="First wake of the worker")
    history_capacity: int = Field(default=15, ge=1, description="Points kept per history buffer")

    # --- Reclamation / locking ---
    reclaim_pause: float = Field(
        default=0.05,
        ge=0,
        description="Pause after reclamation so the OS can take pages back",
    )
    lock_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds the worker waits for the state lock before skipping a cycle",
    )

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console",
        description="Log format: 'console' for dev, 'json' for production",
    )

    model_config = SettingsConfigDict(
        env_prefix="LEANSTAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "CollectorSettings":
        if self.min_bytes > self.max_bytes:
            raise ValueError("min_bytes must not exceed max_bytes")
        return self


# Singleton, import this everywhere
settings = CollectorSettings()
