"""Long-lived consumer subscription for one session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from streamtester.errors import SubscriptionError
from streamtester.kafka.client import Broker, RecordSource
from streamtester.kafka.simulator import ErrorCallback, Simulator, SimulatorStats, StateCallback
from streamtester.models.session import ConsumedRecord, Destination, SessionState

logger = logging.getLogger(__name__)


@dataclass
class ConsumerStats(SimulatorStats):
    messages_consumed: int = 0

    def record_consumed(self) -> None:
        with self._lock:
            self.messages_consumed += 1


class ConsumerSubscription(Simulator[ConsumerStats]):
    """Forwards every received record to the sink, in receipt order, until disconnected.

    Failures after connecting are reported once through the error callback
    and end the subscription. There is no automatic reconnect.
    """

    def __init__(
        self,
        session_id: str,
        destination: Destination,
        broker: Broker,
        group_id: str,
        on_record: Callable[[ConsumedRecord], None] | None = None,
        on_error: ErrorCallback | None = None,
        on_state: StateCallback | None = None,
    ):
        super().__init__(session_id, on_error=on_error, on_state=on_state)
        self.destination = destination
        self.broker = broker
        self.group_id = group_id
        self._on_record = on_record
        self._source: RecordSource | None = None
        self._stats = ConsumerStats()

    def get_stats(self) -> ConsumerStats:
        return self._stats

    async def connect(self) -> ConsumerSubscription:
        if self._state is SessionState.CONNECTED:
            return self

        try:
            self._source = await self.broker.subscribe(self.destination, self.group_id)
        except SubscriptionError as e:
            e.session_id = e.session_id or self.session_id
            raise
        except Exception as e:
            raise SubscriptionError(
                f"Cannot subscribe to {self.destination}: {e}", session_id=self.session_id
            ) from e

        self._spawn(self._run())
        self._set_state(SessionState.CONNECTED)
        logger.info(f"Consumer '{self.session_id}' subscribed to {self.destination}")
        return self

    async def disconnect(self) -> None:
        """Tear down the subscription. Safe to call repeatedly."""
        await self._cancel_task()
        await self._release()

    async def _release(self) -> None:
        source, self._source = self._source, None
        if source is not None:
            try:
                await source.close()
            except Exception:
                logger.exception(f"Failed to close subscription for session '{self.session_id}'")
            logger.info(
                f"Consumer '{self.session_id}' disconnected after "
                f"{self._stats.messages_consumed} record(s)"
            )
        self._set_state(SessionState.IDLE)

    async def _run(self) -> None:
        try:
            while not self.should_stop and self._source is not None:
                record = await self._source.next_record()
                if record is None:
                    await asyncio.sleep(0)
                    continue

                self._stats.record_consumed()
                if self._on_record is not None:
                    try:
                        self._on_record(record)
                    except Exception:
                        logger.exception(f"Sink callback failed for session '{self.session_id}'")
        except SubscriptionError as e:
            logger.error(f"Consumer '{self.session_id}' lost its subscription: {e.message}")
            self._report(e)
        except Exception as e:
            logger.exception(f"Consumer loop for session '{self.session_id}' crashed")
            self._report(SubscriptionError(f"Subscription to {self.destination} failed: {e}"))

        self._stop_event.set()
        await self._release()
