"""Settings handed explicitly to the registry, broker client and value catalog."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from streamtester.errors import ConfigError

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_OFFSET_RESETS = {"earliest", "latest"}


@dataclass(frozen=True)
class StreamSettings:
    """Process-wide settings for one stream tester instance."""

    client_id: str = "kafka-stream-tester"
    default_broker: str = "localhost:9092"
    max_workers: int = 16
    poll_timeout_seconds: float = 1.0
    flush_timeout_seconds: float = 5.0
    consumer_group_prefix: str = "stream-tester"
    auto_offset_reset: str = "latest"
    faker_locale: str | None = None
    faker_seed: int | None = None
    log_level: str = "INFO"

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.poll_timeout_seconds <= 0:
            raise ValueError("poll_timeout_seconds must be positive")
        if self.flush_timeout_seconds <= 0:
            raise ValueError("flush_timeout_seconds must be positive")
        if self.auto_offset_reset not in _OFFSET_RESETS:
            raise ValueError(f"auto_offset_reset must be one of {sorted(_OFFSET_RESETS)}")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level: '{self.log_level}'")

    @classmethod
    def from_dict(cls, data: dict) -> StreamSettings:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid settings: {e}") from e


def load_settings(path: Path | None) -> StreamSettings:
    if path is None or not path.exists():
        return StreamSettings()

    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file must contain a mapping: {path}")

    return StreamSettings.from_dict(data)
