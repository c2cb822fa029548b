"""Session, destination and stream configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from streamtester.models.parameter import Parameter


class SessionKind(Enum):
    """What a session drives."""

    PRODUCER = "producer"
    CONSUMER = "consumer"


class SessionState(Enum):
    """Lifecycle state of a session's background task."""

    IDLE = "idle"
    RUNNING = "running"  # Producer only
    PAUSED = "paused"  # Producer only
    CONNECTED = "connected"  # Consumer only


@dataclass(frozen=True)
class Destination:
    """Topic on a broker."""

    topic: str
    broker_address: str

    def __post_init__(self):
        if not self.topic:
            raise ValueError("topic must not be empty")
        if not self.broker_address:
            raise ValueError("broker_address must not be empty")

    def __str__(self) -> str:
        return f"{self.topic}@{self.broker_address}"


@dataclass(frozen=True)
class StopAfter:
    """Bounded-count auto stop for a producer loop."""

    enabled: bool = False
    count: int = 1

    def __post_init__(self):
        if self.count < 1:
            raise ValueError("stop_after count must be at least 1")


@dataclass
class ProducerConfig:
    """Configuration of one producer session."""

    destination: Destination
    template: str = ""
    interval_millis: int = 1000
    stop_after: StopAfter = field(default_factory=StopAfter)
    parameters: list[Parameter] = field(default_factory=list)

    def __post_init__(self):
        if self.interval_millis < 0:
            raise ValueError("interval_millis must be >= 0")
        names = [p.name for p in self.parameters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate parameter names: {', '.join(duplicates)}")

    @property
    def interval_seconds(self) -> float:
        return self.interval_millis / 1000


@dataclass(frozen=True)
class ConsumedRecord:
    """A record received by a consumer subscription."""

    topic: str
    key: str | None
    value: str | None
    partition: int
    offset: int
    timestamp: int | None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session as reported by the registry."""

    id: str
    kind: SessionKind
    state: SessionState
    destination: Destination | None
    messages_sent: int = 0
    messages_consumed: int = 0
    send_errors: int = 0
    render_errors: int = 0
    parameters: tuple[Parameter, ...] = ()
