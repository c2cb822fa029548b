"""Command surface presented to the UI or CLI layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from streamtester.errors import StreamError
from streamtester.models.parameter import Parameter
from streamtester.models.session import Destination, ProducerConfig, StopAfter
from streamtester.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class StartProducer:
    session_id: str
    config: ProducerConfig


@dataclass
class StopProducer:
    session_id: str


@dataclass
class PauseProducer:
    session_id: str


@dataclass
class ResumeProducer:
    session_id: str


@dataclass
class ConnectConsumer:
    session_id: str
    destination: Destination


@dataclass
class DisconnectConsumer:
    session_id: str


@dataclass
class AddParameter:
    session_id: str
    parameter: Parameter


@dataclass
class UpdateParameter:
    session_id: str
    name: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass
class RemoveParameter:
    session_id: str
    name: str


@dataclass
class AddConstraint:
    session_id: str
    name: str
    constraint: str


@dataclass
class UpdateTemplate:
    session_id: str
    template: str


@dataclass
class SendOnce:
    session_id: str
    destination: Destination
    template: str


Command = (
    StartProducer
    | StopProducer
    | PauseProducer
    | ResumeProducer
    | ConnectConsumer
    | DisconnectConsumer
    | AddParameter
    | UpdateParameter
    | RemoveParameter
    | AddConstraint
    | UpdateTemplate
    | SendOnce
)


@dataclass
class CommandResult:
    """Outcome of one command. Failures carry the typed error, never raise."""

    ok: bool = True
    value: Any = None
    error: StreamError | None = None

    @classmethod
    def failure(cls, error: StreamError) -> CommandResult:
        return cls(ok=False, error=error)


class CommandDispatcher:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def execute(self, command: Command) -> CommandResult:
        try:
            value = await self._dispatch(command)
        except StreamError as e:
            e.session_id = e.session_id or getattr(command, "session_id", None)
            logger.warning(f"{type(command).__name__} failed: {e}")
            return CommandResult.failure(e)
        except ValueError as e:
            error = StreamError(str(e), session_id=getattr(command, "session_id", None))
            logger.warning(f"{type(command).__name__} rejected: {e}")
            return CommandResult.failure(error)
        return CommandResult(value=value)

    async def _dispatch(self, command: Command) -> Any:
        registry = self.registry

        match command:
            case StartProducer(session_id=sid, config=config):
                return await registry.start_producer(sid, config)

            case StopProducer(session_id=sid):
                return await registry.stop_producer(sid)

            case PauseProducer(session_id=sid):
                return await registry.pause_producer(sid)

            case ResumeProducer(session_id=sid):
                return await registry.resume_producer(sid)

            case ConnectConsumer(session_id=sid, destination=dest):
                return await registry.connect_consumer(sid, dest)

            case DisconnectConsumer(session_id=sid):
                return await registry.disconnect_consumer(sid)

            case AddParameter(session_id=sid, parameter=param):
                return await registry.add_parameter(sid, param)

            case UpdateParameter(session_id=sid, name=name, changes=changes):
                return await registry.update_parameter(sid, name, **changes)

            case RemoveParameter(session_id=sid, name=name):
                return await registry.remove_parameter(sid, name)

            case AddConstraint(session_id=sid, name=name, constraint=constraint):
                return await registry.add_constraint(sid, name, constraint)

            case UpdateTemplate(session_id=sid, template=template):
                return await registry.update_template(sid, template)

            case SendOnce(session_id=sid, destination=dest, template=template):
                return await registry.send_once(sid, dest, template)

        raise ValueError(f"Unsupported command: {type(command).__name__}")


_PARAMETER_FIELDS = {"name", "is_randomized", "type", "constraints", "manual_values"}


def _destination(message: dict) -> Destination:
    return Destination(
        topic=message["topic"],
        broker_address=message.get("broker") or message["broker_address"],
    )


def _producer_config(message: dict) -> ProducerConfig:
    stop_after = message.get("stop_after") or {}
    return ProducerConfig(
        destination=_destination(message),
        template=message.get("template", ""),
        interval_millis=int(message.get("interval_ms", 1000)),
        stop_after=StopAfter(
            enabled=bool(stop_after.get("enabled", False)),
            count=int(stop_after.get("count", 1)),
        ),
        parameters=[Parameter.from_dict(p) for p in message.get("parameters", [])],
    )


def command_from_message(message: dict) -> Command:
    """Build a command from a UI message.

    For example ``{"command": "stop_producer", "session_id": "tab-1"}``.
    """
    name = message.get("command")
    sid = message.get("session_id")
    if not sid:
        raise ValueError("Message has no session_id")

    try:
        match name:
            case "start_producer":
                return StartProducer(sid, _producer_config(message))
            case "stop_producer":
                return StopProducer(sid)
            case "pause_producer":
                return PauseProducer(sid)
            case "resume_producer":
                return ResumeProducer(sid)
            case "connect_consumer":
                return ConnectConsumer(sid, _destination(message))
            case "disconnect_consumer":
                return DisconnectConsumer(sid)
            case "add_parameter":
                return AddParameter(sid, Parameter.from_dict(message["parameter"]))
            case "update_parameter":
                changes = dict(message.get("updates", {}))
                unknown = set(changes) - _PARAMETER_FIELDS
                if unknown:
                    raise ValueError(f"Unknown parameter fields: {', '.join(sorted(unknown))}")
                return UpdateParameter(sid, message["name"], changes)
            case "remove_parameter":
                return RemoveParameter(sid, message["name"])
            case "add_constraint":
                return AddConstraint(sid, message["name"], message["constraint"])
            case "update_template":
                return UpdateTemplate(sid, message["template"])
            case "send":
                return SendOnce(sid, _destination(message), message["template"])
    except KeyError as e:
        raise ValueError(f"Message for '{name}' is missing {e}") from e

    raise ValueError(f"Unknown command: '{name}'")
