"""
SDK Configuration

Resolved settings for a Pulse client: where to send traces, how to batch
them and when to flush.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

from pulse.core.config import MAX_BATCH_SIZE
from pulse.core.errors import ConfigurationError
from pulse.core.models import API_KEY_PREFIX


DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_BATCH_SIZE = 10
DEFAULT_FLUSH_INTERVAL_MS = 5000
MIN_FLUSH_INTERVAL_MS = 1000
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class PulseConfig:
    """SDK configuration."""

    api_key: str
    api_url: str = DEFAULT_API_URL
    batch_size: int = DEFAULT_BATCH_SIZE
    flush_interval: int = DEFAULT_FLUSH_INTERVAL_MS  # milliseconds
    enabled: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS  # seconds, per request

    def validate(self) -> "PulseConfig":
        """Check every field. Raises ConfigurationError on the first problem."""
        if not self.api_key:
            raise ConfigurationError("Pulse SDK: apiKey is required")
        if not self.api_key.startswith(API_KEY_PREFIX):
            raise ConfigurationError(
                f"Pulse SDK: apiKey must start with '{API_KEY_PREFIX}'"
            )
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"Pulse SDK: batchSize must be between 1 and {MAX_BATCH_SIZE}"
            )
        if self.flush_interval < MIN_FLUSH_INTERVAL_MS:
            raise ConfigurationError(
                f"Pulse SDK: flushInterval must be at least {MIN_FLUSH_INTERVAL_MS}ms"
            )
        if self.timeout <= 0:
            raise ConfigurationError("Pulse SDK: timeout must be positive")

        self.api_url = self.api_url.rstrip("/")
        return self

    @property
    def batch_endpoint(self) -> str:
        return f"{self.api_url}/v1/traces/batch"

    @classmethod
    def from_env(cls, **overrides) -> "PulseConfig":
        """
        Load configuration from PULSE_* environment variables.

        Keyword overrides win over the environment.
        """
        values = {
            "api_key": os.getenv("PULSE_API_KEY", ""),
            "api_url": os.getenv("PULSE_API_URL", DEFAULT_API_URL),
            "batch_size": _env_int("PULSE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            "flush_interval": _env_int("PULSE_FLUSH_INTERVAL", DEFAULT_FLUSH_INTERVAL_MS),
            "enabled": os.getenv("PULSE_ENABLED", "true").lower() not in ("0", "false", "no", "off"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Pulse SDK: {name} must be an integer, got {raw!r}")


def load_config(
    api_key: Optional[str] = None,
    api_url: Optional[str] = None,
    batch_size: Optional[int] = None,
    flush_interval: Optional[int] = None,
    enabled: Optional[bool] = None,
    timeout: Optional[float] = None,
) -> PulseConfig:
    """
    Resolve explicit arguments over PULSE_* environment variables and validate.

    Raises:
        ConfigurationError: if the resulting configuration is invalid.
    """
    return PulseConfig.from_env(
        api_key=api_key,
        api_url=api_url,
        batch_size=batch_size,
        flush_interval=flush_interval,
        enabled=enabled,
        timeout=timeout,
    ).validate()
