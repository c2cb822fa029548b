"""Session registry: the map from session id to its live producer loop or consumer subscription."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial

from streamtester.config import StreamSettings
from streamtester.errors import (
    ParameterError,
    PublishError,
    SessionConflictError,
    StreamError,
    UnknownSessionError,
)
from streamtester.generators.catalog import FakerCatalog, ValueCatalog
from streamtester.generators.template import RenderResult, TemplateRenderer
from streamtester.generators.value import ValueGenerator
from streamtester.kafka.client import Broker, KafkaBroker
from streamtester.kafka.consumer import ConsumerSubscription
from streamtester.kafka.producer import ProducerAccessors, ProducerLoop
from streamtester.models.parameter import Parameter, ParameterSet
from streamtester.models.session import (
    Destination,
    ProducerConfig,
    SessionKind,
    SessionSnapshot,
    SessionState,
    StopAfter,
)
from streamtester.runtime import configure_executor, shutdown_executor
from streamtester.sessions.observer import LoggingObserver, Observer

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Registry-owned state of one session."""

    id: str
    kind: SessionKind
    destination: Destination | None = None
    template: str = ""
    interval_millis: int = 1000
    stop_after: StopAfter = field(default_factory=StopAfter)
    parameters: ParameterSet = field(default_factory=ParameterSet)
    producer: ProducerLoop | None = None
    consumer: ConsumerSubscription | None = None

    @property
    def state(self) -> SessionState:
        task = self.producer if self.kind is SessionKind.PRODUCER else self.consumer
        return task.state if task is not None else SessionState.IDLE


class SessionRegistry:
    """Starts, stops and tracks producer and consumer sessions.

    Mutating operations on one session id are serialized by a lock owned by
    that id. Operations on different ids never wait on each other. Stopping
    or disconnecting a session the registry does not know is a no-op.
    """

    def __init__(
        self,
        settings: StreamSettings | None = None,
        broker: Broker | None = None,
        catalog: ValueCatalog | None = None,
        observer: Observer | None = None,
    ):
        self.settings = settings or StreamSettings()
        configure_executor(self.settings.max_workers)
        self.broker = broker or KafkaBroker(self.settings)
        self.catalog = catalog or FakerCatalog(self.settings.faker_locale, self.settings.faker_seed)
        self.renderer = TemplateRenderer(ValueGenerator(self.catalog))
        self.observer = observer or LoggingObserver()
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _ensure(self, session_id: str, kind: SessionKind) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = Session(id=session_id, kind=kind)
        elif session.kind is not kind:
            raise SessionConflictError(
                f"Session is a {session.kind.value} session, not a {kind.value} session",
                session_id=session_id,
            )
        return session

    def _snapshot(self, session: Session) -> SessionSnapshot:
        sent = send_errors = render_errors = consumed = 0
        if session.producer is not None:
            stats = session.producer.get_stats()
            sent, send_errors, render_errors = (
                stats.messages_sent,
                stats.send_errors,
                stats.render_errors,
            )
        if session.consumer is not None:
            consumed = session.consumer.get_stats().messages_consumed

        return SessionSnapshot(
            id=session.id,
            kind=session.kind,
            state=session.state,
            destination=session.destination,
            messages_sent=sent,
            messages_consumed=consumed,
            send_errors=send_errors,
            render_errors=render_errors,
            parameters=tuple(session.parameters.snapshot()),
        )

    def _session_accessors(self, session: Session) -> ProducerAccessors:
        return ProducerAccessors(
            get_template=lambda: session.template,
            get_parameters=session.parameters.snapshot,
            get_interval_millis=lambda: session.interval_millis,
        )

    def _error_sink(self, session_id: str):
        return partial(self.observer.on_error, session_id)

    # Producers

    async def start_producer(
        self,
        session_id: str,
        config: ProducerConfig,
        accessors: ProducerAccessors | None = None,
    ) -> SessionSnapshot:
        """Start a producer loop, or return the running one unchanged.

        The config is copied into the session. Parameters in the config
        replace the session's parameters when non-empty; otherwise the
        parameters already attached to the session are kept. Pass
        ``accessors`` to have the loop read template and parameters from
        an external store on every tick instead.
        """
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            if session.state in (SessionState.RUNNING, SessionState.PAUSED):
                return self._snapshot(session)

            session.destination = config.destination
            session.template = config.template
            session.interval_millis = config.interval_millis
            session.stop_after = config.stop_after
            if config.parameters:
                session.parameters.replace_all(config.parameters)

            loop = ProducerLoop(
                session_id=session_id,
                destination=config.destination,
                broker=self.broker,
                renderer=self.renderer,
                accessors=accessors or self._session_accessors(session),
                interval_millis=config.interval_millis,
                stop_after=config.stop_after,
                on_sent=partial(self.observer.on_sent, session_id),
                on_error=self._error_sink(session_id),
                on_state=partial(self.observer.on_state, session_id),
            )
            try:
                await loop.start()
            except StreamError as e:
                e.session_id = e.session_id or session_id
                raise
            except Exception as e:
                raise PublishError(
                    f"Cannot start producer on {config.destination}: {e}", session_id=session_id
                ) from e
            session.producer = loop
            return self._snapshot(session)

    async def stop_producer(self, session_id: str) -> None:
        if session_id not in self._sessions:
            return
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None or session.producer is None:
                return
            await session.producer.stop()

    async def pause_producer(self, session_id: str) -> None:
        if session_id not in self._sessions:
            return
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is not None and session.producer is not None:
                session.producer.pause()

    async def resume_producer(self, session_id: str) -> None:
        if session_id not in self._sessions:
            return
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is not None and session.producer is not None:
                session.producer.resume()

    async def send_once(
        self,
        session_id: str,
        destination: Destination,
        template: str,
        parameters: list[Parameter] | None = None,
    ) -> RenderResult:
        """Render one message and publish it on a short-lived publisher."""
        if parameters is None:
            session = self._sessions.get(session_id)
            parameters = session.parameters.snapshot() if session is not None else []

        result = self.renderer.render(template, parameters)
        for error in result.errors:
            error.session_id = session_id
            self.observer.on_error(session_id, error)

        try:
            publisher = await self.broker.open_publisher(destination)
            try:
                await publisher.send(result.message.encode("utf-8"))
            finally:
                await publisher.close()
        except StreamError as e:
            e.session_id = e.session_id or session_id
            raise
        except Exception as e:
            raise PublishError(f"Send to {destination} failed: {e}", session_id=session_id) from e

        self.observer.on_sent(session_id, result.message)
        return result

    # Consumers

    async def connect_consumer(self, session_id: str, destination: Destination) -> SessionSnapshot:
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.CONSUMER)
            if session.state is SessionState.CONNECTED:
                return self._snapshot(session)

            subscription = ConsumerSubscription(
                session_id=session_id,
                destination=destination,
                broker=self.broker,
                group_id=f"{self.settings.consumer_group_prefix}-{session_id}",
                on_record=partial(self.observer.on_record, session_id),
                on_error=self._error_sink(session_id),
                on_state=partial(self.observer.on_state, session_id),
            )
            await subscription.connect()
            session.destination = destination
            session.consumer = subscription
            return self._snapshot(session)

    async def disconnect_consumer(self, session_id: str) -> None:
        if session_id not in self._sessions:
            return
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None or session.consumer is None:
                return
            await session.consumer.disconnect()

    # Parameters and live producer settings

    async def add_parameter(self, session_id: str, parameter: Parameter) -> Parameter:
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            if parameter.name in session.parameters:
                raise ParameterError(
                    f"Parameter '{parameter.name}' already exists", session_id=session_id
                )
            session.parameters.put(parameter)
            return parameter

    async def update_parameter(self, session_id: str, name: str, **changes) -> Parameter:
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            current = session.parameters.get(name)
            if current is None:
                raise ParameterError(f"Unknown parameter '{name}'", session_id=session_id)

            try:
                updated = current.updated(**changes)
            except (TypeError, ValueError) as e:
                raise ParameterError(
                    f"Invalid update for '{name}': {e}", session_id=session_id
                ) from e

            if updated.name != name:
                if updated.name in session.parameters:
                    raise ParameterError(
                        f"Parameter '{updated.name}' already exists", session_id=session_id
                    )
                session.parameters.rename(name, updated)
            else:
                session.parameters.put(updated)
            return updated

    async def add_constraint(self, session_id: str, name: str, constraint: str) -> Parameter:
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            current = session.parameters.get(name)
            if current is None:
                raise ParameterError(f"Unknown parameter '{name}'", session_id=session_id)
            updated = current.with_constraint(constraint)
            session.parameters.put(updated)
            return updated

    async def remove_parameter(self, session_id: str, name: str) -> bool:
        if session_id not in self._sessions:
            return False
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            return session.parameters.remove(name)

    async def update_template(self, session_id: str, template: str) -> None:
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            session.template = template

    async def update_interval(self, session_id: str, interval_millis: int) -> None:
        if interval_millis < 0:
            raise ValueError("interval_millis must be >= 0")
        async with self._lock_for(session_id):
            session = self._ensure(session_id, SessionKind.PRODUCER)
            session.interval_millis = interval_millis

    # Reads

    def find(self, session_id: str) -> SessionSnapshot | None:
        session = self._sessions.get(session_id)
        return self._snapshot(session) if session is not None else None

    def get(self, session_id: str) -> SessionSnapshot:
        snapshot = self.find(session_id)
        if snapshot is None:
            raise UnknownSessionError("Unknown session", session_id=session_id)
        return snapshot

    def sessions(self) -> list[SessionSnapshot]:
        return [self._snapshot(s) for s in list(self._sessions.values())]

    async def wait(self, session_id: str) -> None:
        """Wait for a session's task to end on its own (stop-after or a dropped subscription)."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        task = session.producer if session.kind is SessionKind.PRODUCER else session.consumer
        if task is not None:
            await task.wait()

    # Teardown

    async def _stop_session(self, session: Session) -> None:
        async with self._lock_for(session.id):
            if session.producer is not None:
                await session.producer.stop()
            if session.consumer is not None:
                await session.consumer.disconnect()

    async def remove_session(self, session_id: str) -> None:
        """Stop a session's task and forget it."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        await self._stop_session(session)
        self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)

    async def shutdown(self) -> None:
        """Stop every live task. One session failing to stop does not block the others."""
        sessions = list(self._sessions.values())
        results = await asyncio.gather(
            *(self._stop_session(s) for s in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to stop session '{session.id}': {result}")
        shutdown_executor()
