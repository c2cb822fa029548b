"""Base class for session stream tasks (producer loops and consumer subscriptions)."""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from streamtester.errors import StreamError
from streamtester.models.session import SessionState

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[StreamError], None]
StateCallback = Callable[[SessionState], None]


@dataclass
class SimulatorStats:
    """Base class for simulator statistics."""

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


StatsT = TypeVar("StatsT", bound=SimulatorStats)


class Simulator(ABC, Generic[StatsT]):
    """Owns one background asyncio task and the stop signal it honors."""

    def __init__(
        self,
        session_id: str,
        on_error: ErrorCallback | None = None,
        on_state: StateCallback | None = None,
    ) -> None:
        self.session_id = session_id
        self._on_error = on_error
        self._on_state = on_state
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def should_stop(self) -> bool:
        """Check if the simulator should stop."""
        return self._stop_event.is_set()

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state is not None:
            try:
                self._on_state(state)
            except Exception:
                logger.exception(f"State callback failed for session '{self.session_id}'")

    def _report(self, error: StreamError) -> None:
        error.session_id = error.session_id or self.session_id
        if self._on_error is None:
            logger.warning(str(error))
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception(f"Error callback failed for session '{self.session_id}'")

    def _spawn(self, coro) -> None:
        self._stop_event.clear()
        self._task = asyncio.create_task(coro, name=f"{type(self).__name__}-{self.session_id}")

    async def _cancel_task(self) -> None:
        """Signal stop and cancel the task without waiting on in-flight broker I/O."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"Task for session '{self.session_id}' ended with an error")

    async def wait(self) -> None:
        """Wait until the background task finishes on its own."""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    @abstractmethod
    def get_stats(self) -> StatsT:
        """Get simulator statistics."""
        ...
