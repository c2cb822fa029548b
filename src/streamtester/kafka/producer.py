"""Periodic templated producer for one session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from streamtester.errors import PublishError, StreamError
from streamtester.generators.template import TemplateRenderer
from streamtester.kafka.client import Broker, Publisher
from streamtester.kafka.simulator import ErrorCallback, Simulator, SimulatorStats, StateCallback
from streamtester.models.parameter import Parameter
from streamtester.models.session import Destination, ProducerConfig, SessionState, StopAfter

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats(SimulatorStats):
    messages_sent: int = 0
    send_errors: int = 0
    render_errors: int = 0

    def record_sent(self) -> None:
        with self._lock:
            self.messages_sent += 1

    def record_send_error(self) -> None:
        with self._lock:
            self.send_errors += 1

    def record_render_errors(self, count: int) -> None:
        with self._lock:
            self.render_errors += count


@dataclass
class ProducerAccessors:
    """Live views onto externally owned producer state, read fresh on every tick."""

    get_template: Callable[[], str]
    get_parameters: Callable[[], list[Parameter]]
    get_interval_millis: Callable[[], int] | None = None

    @classmethod
    def from_config(cls, config: ProducerConfig) -> ProducerAccessors:
        return cls(
            get_template=lambda: config.template,
            get_parameters=lambda: list(config.parameters),
            get_interval_millis=lambda: config.interval_millis,
        )


class ProducerLoop(Simulator[ProducerStats]):
    """Renders a template and publishes it every interval.

    State machine: IDLE -> RUNNING <-> PAUSED -> IDLE. ``start`` while
    RUNNING or PAUSED returns the existing loop without spawning a second
    task. Ticks are strictly sequential: the next render only starts after
    the previous send and callbacks have completed.
    """

    def __init__(
        self,
        session_id: str,
        destination: Destination,
        broker: Broker,
        renderer: TemplateRenderer,
        accessors: ProducerAccessors,
        interval_millis: int = 1000,
        stop_after: StopAfter | None = None,
        on_sent: Callable[[str], None] | None = None,
        on_error: ErrorCallback | None = None,
        on_state: StateCallback | None = None,
    ):
        super().__init__(session_id, on_error=on_error, on_state=on_state)
        self.destination = destination
        self.broker = broker
        self.renderer = renderer
        self.accessors = accessors
        self.interval_millis = interval_millis
        self.stop_after = stop_after or StopAfter()
        self._on_sent = on_sent
        self._publisher: Publisher | None = None
        self._resume_event = asyncio.Event()
        self._sent_this_run = 0
        self._stats = ProducerStats()

    @property
    def sent_this_run(self) -> int:
        return self._sent_this_run

    def get_stats(self) -> ProducerStats:
        return self._stats

    async def start(self) -> ProducerLoop:
        if self._state in (SessionState.RUNNING, SessionState.PAUSED):
            return self

        self._publisher = await self.broker.open_publisher(self.destination)
        self._sent_this_run = 0
        self._resume_event.set()
        self._spawn(self._run())
        self._set_state(SessionState.RUNNING)
        logger.info(f"Producer '{self.session_id}' started on {self.destination}")
        return self

    def pause(self) -> None:
        if self._state is not SessionState.RUNNING:
            return
        self._resume_event.clear()
        self._set_state(SessionState.PAUSED)

    def resume(self) -> None:
        if self._state is not SessionState.PAUSED:
            return
        self._resume_event.set()
        self._set_state(SessionState.RUNNING)

    async def stop(self) -> None:
        """Stop the loop and release the publisher. Safe to call repeatedly."""
        self._resume_event.set()
        await self._cancel_task()
        await self._release()

    async def _release(self) -> None:
        publisher, self._publisher = self._publisher, None
        if publisher is not None:
            try:
                await publisher.close()
            except Exception:
                logger.exception(f"Failed to close publisher for session '{self.session_id}'")
        if self._state is not SessionState.IDLE:
            logger.info(
                f"Producer '{self.session_id}' stopped after {self._sent_this_run} message(s)"
            )
        self._set_state(SessionState.IDLE)

    def _current_interval(self) -> float:
        millis = self.interval_millis
        if self.accessors.get_interval_millis is not None:
            millis = self.accessors.get_interval_millis()
        return max(millis, 0) / 1000

    def _limit_reached(self) -> bool:
        return self.stop_after.enabled and self._sent_this_run >= self.stop_after.count

    async def _run(self) -> None:
        try:
            while not self.should_stop:
                await asyncio.sleep(self._current_interval())
                await self._resume_event.wait()
                if self.should_stop or self._publisher is None:
                    break

                await self._tick()

                if self._limit_reached():
                    logger.info(
                        f"Producer '{self.session_id}' reached stop-after count "
                        f"{self.stop_after.count}"
                    )
                    break
        except Exception as e:
            logger.exception(f"Producer loop for session '{self.session_id}' crashed")
            self._report(StreamError(f"Producer loop crashed: {e}"))

        self._stop_event.set()
        await self._release()

    async def _tick(self) -> None:
        result = self.renderer.render(
            self.accessors.get_template(), self.accessors.get_parameters()
        )
        if result.errors:
            self._stats.record_render_errors(len(result.errors))
            for error in result.errors:
                self._report(error)

        try:
            await self._publisher.send(result.message.encode("utf-8"))
        except PublishError as e:
            self._stats.record_send_error()
            logger.warning(f"Send failed for session '{self.session_id}': {e.message}")
            self._report(e)
            return
        except Exception as e:
            self._stats.record_send_error()
            logger.warning(f"Send failed for session '{self.session_id}': {e}")
            self._report(PublishError(f"Send to {self.destination} failed: {e}"))
            return

        self._sent_this_run += 1
        self._stats.record_sent()

        if self._on_sent is not None:
            try:
                self._on_sent(result.message)
            except Exception:
                logger.exception(f"Sink callback failed for session '{self.session_id}'")
