"""Observer sinks that receive session activity for display or logging."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

from rich.console import Console
from rich.markup import escape

from streamtester.errors import StreamError
from streamtester.models.session import ConsumedRecord, SessionState

logger = logging.getLogger(__name__)


class Observer(Protocol):
    def on_sent(self, session_id: str, message: str) -> None: ...

    def on_record(self, session_id: str, record: ConsumedRecord) -> None: ...

    def on_error(self, session_id: str, error: StreamError) -> None: ...

    def on_state(self, session_id: str, state: SessionState) -> None: ...


class LoggingObserver:
    """Default observer: everything goes to the module logger."""

    def on_sent(self, session_id: str, message: str) -> None:
        logger.debug(f"[{session_id}] sent {message}")

    def on_record(self, session_id: str, record: ConsumedRecord) -> None:
        logger.debug(
            f"[{session_id}] received {record.topic}[{record.partition}]@{record.offset}: "
            f"{record.value}"
        )

    def on_error(self, session_id: str, error: StreamError) -> None:
        logger.warning(f"[{session_id}] {error.message}")

    def on_state(self, session_id: str, state: SessionState) -> None:
        logger.info(f"[{session_id}] -> {state.value}")


class ConsoleObserver:
    """Prints session activity to a rich console."""

    def __init__(self, console: Console | None = None, show_messages: bool = True):
        self._console = console or Console()
        self.show_messages = show_messages

    def on_sent(self, session_id: str, message: str) -> None:
        if self.show_messages:
            self._console.print(f"[green]{session_id}[/green] [dim]sent[/dim] {escape(message)}")

    def on_record(self, session_id: str, record: ConsumedRecord) -> None:
        if self.show_messages:
            self._console.print(
                f"[yellow]{session_id}[/yellow] [dim]p{record.partition}@{record.offset}"
                f" key={escape(str(record.key))}[/dim] {escape(str(record.value))}"
            )

    def on_error(self, session_id: str, error: StreamError) -> None:
        self._console.print(f"[red]{session_id}: {escape(str(error))}[/red]")

    def on_state(self, session_id: str, state: SessionState) -> None:
        self._console.print(f"[bold blue]{session_id}[/bold blue] [dim]is now {state.value}[/dim]")


@dataclass(frozen=True)
class ObservedEvent:
    session_id: str
    kind: str  # "sent", "record", "error" or "state"
    payload: Any


class CollectingObserver:
    """Keeps the most recent events in memory for a UI layer to drain."""

    def __init__(self, max_events: int = 10_000):
        self.events: deque[ObservedEvent] = deque(maxlen=max_events)

    def on_sent(self, session_id: str, message: str) -> None:
        self.events.append(ObservedEvent(session_id, "sent", message))

    def on_record(self, session_id: str, record: ConsumedRecord) -> None:
        self.events.append(ObservedEvent(session_id, "record", record))

    def on_error(self, session_id: str, error: StreamError) -> None:
        self.events.append(ObservedEvent(session_id, "error", error))

    def on_state(self, session_id: str, state: SessionState) -> None:
        self.events.append(ObservedEvent(session_id, "state", state))

    def of(self, session_id: str, kind: str | None = None) -> list[Any]:
        return [
            e.payload
            for e in list(self.events)
            if e.session_id == session_id and (kind is None or e.kind == kind)
        ]

    def drain(self) -> list[ObservedEvent]:
        drained = list(self.events)
        self.events.clear()
        return drained
