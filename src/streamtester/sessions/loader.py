from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from streamtester.errors import ConfigError
from streamtester.models.parameter import Parameter
from streamtester.models.session import Destination, ProducerConfig, StopAfter


@dataclass
class SessionFile:
    """Producer and consumer sessions declared in one YAML file."""

    name: str
    producers: dict[str, ProducerConfig] = field(default_factory=dict)
    consumers: dict[str, Destination] = field(default_factory=dict)


def _destination(entry: dict, default_broker: str) -> Destination:
    return Destination(
        topic=entry["topic"],
        broker_address=entry.get("broker") or default_broker,
    )


def _producer(entry: dict, default_broker: str) -> ProducerConfig:
    stop_after = entry.get("stop_after") or {}
    if isinstance(stop_after, int):
        stop_after = {"enabled": True, "count": stop_after}

    return ProducerConfig(
        destination=_destination(entry, default_broker),
        template=entry.get("template", ""),
        interval_millis=int(entry.get("interval_ms", 1000)),
        stop_after=StopAfter(
            enabled=bool(stop_after.get("enabled", False)),
            count=int(stop_after.get("count", 1)),
        ),
        parameters=[Parameter.from_dict(p) for p in entry.get("parameters", []) or []],
    )


def _entries(data: dict, key: str, path: Path) -> list[dict]:
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise ConfigError(f"'{key}' must be a list in {path}")

    seen = set()
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ConfigError(f"Every entry in '{key}' needs an id ({path})")
        if entry["id"] in seen:
            raise ConfigError(f"Duplicate session id '{entry['id']}' in {path}")
        seen.add(entry["id"])
    return entries


def parse_sessions(data: dict, path: Path, default_broker: str) -> SessionFile:
    if not isinstance(data, dict):
        raise ConfigError(f"Session file must contain a mapping: {path}")

    result = SessionFile(name=data.get("name") or path.stem)
    try:
        for entry in _entries(data, "producers", path):
            result.producers[str(entry["id"])] = _producer(entry, default_broker)
        for entry in _entries(data, "consumers", path):
            result.consumers[str(entry["id"])] = _destination(entry, default_broker)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid session file {path}: {e}") from e

    overlap = set(result.producers) & set(result.consumers)
    if overlap:
        raise ConfigError(f"Ids used as both producer and consumer: {', '.join(sorted(overlap))}")

    return result


def load_sessions(path: Path, default_broker: str = "localhost:9092") -> SessionFile:
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return parse_sessions(data, path, default_broker)


def discover_session_files(base_dir: Path) -> dict[str, Path]:
    if not base_dir.exists():
        return {}

    found = {}

    for yaml_file in sorted(base_dir.rglob("*.yaml")):
        try:
            with yaml_file.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError:
            continue
        if isinstance(data, dict) and ("producers" in data or "consumers" in data):
            found[data.get("name") or yaml_file.stem] = yaml_file

    return found
