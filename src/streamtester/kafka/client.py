"""Broker client seams and their confluent-kafka implementation."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from confluent_kafka import (
    TIMESTAMP_NOT_AVAILABLE,
    Consumer,
    KafkaError,
    KafkaException,
    Message,
    Producer,
)

from streamtester.config import StreamSettings
from streamtester.errors import PublishError, SubscriptionError
from streamtester.models.session import ConsumedRecord, Destination
from streamtester.runtime import get_executor

logger = logging.getLogger(__name__)

# Consumer errors after which the subscription cannot make progress
_TERMINAL_CONSUMER_ERRORS = {
    KafkaError._ALL_BROKERS_DOWN,
    KafkaError._AUTHENTICATION,
    KafkaError.UNKNOWN_TOPIC_OR_PART,
    KafkaError.TOPIC_AUTHORIZATION_FAILED,
    KafkaError.GROUP_AUTHORIZATION_FAILED,
}


class Publisher(Protocol):
    async def send(self, payload: bytes) -> None: ...

    async def close(self) -> None: ...


class RecordSource(Protocol):
    async def next_record(self) -> ConsumedRecord | None: ...

    async def close(self) -> None: ...


class Broker(Protocol):
    """Opens per-session broker handles. Handles are never shared across sessions."""

    async def open_publisher(self, destination: Destination) -> Publisher: ...

    async def subscribe(self, destination: Destination, group_id: str) -> RecordSource: ...


def _decode(data: bytes | str | None) -> str | None:
    if data is None or isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


def to_record(msg: Message) -> ConsumedRecord:
    ts_type, ts = msg.timestamp()
    return ConsumedRecord(
        topic=msg.topic(),
        key=_decode(msg.key()),
        value=_decode(msg.value()),
        partition=msg.partition(),
        offset=msg.offset(),
        timestamp=None if ts_type == TIMESTAMP_NOT_AVAILABLE else ts,
    )


class KafkaPublisher:
    """One producer handle per session, driven from its own I/O thread.

    A publish stuck in ``flush`` only holds this publisher's thread, so other
    sessions keep sending.
    """

    def __init__(self, destination: Destination, producer: Producer, flush_timeout: float):
        self.destination = destination
        self._producer = producer
        self._flush_timeout = flush_timeout
        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kafka-publish")

    def _produce_and_flush(self, payload: bytes) -> tuple[int, list[KafkaError]]:
        errors: list[KafkaError] = []

        def on_delivery(err, _msg):
            if err is not None:
                errors.append(err)

        self._producer.produce(self.destination.topic, value=payload, on_delivery=on_delivery)
        remaining = self._producer.flush(self._flush_timeout)
        return remaining, errors

    async def send(self, payload: bytes) -> None:
        if self._producer is None:
            raise PublishError(f"Publisher for {self.destination} is closed")
        loop = asyncio.get_running_loop()
        try:
            remaining, errors = await loop.run_in_executor(
                self._io, self._produce_and_flush, payload
            )
        except (KafkaException, BufferError) as e:
            raise PublishError(f"Failed to produce to {self.destination}: {e}") from e

        if errors:
            raise PublishError(f"Delivery to {self.destination} failed: {errors[0].str()}")
        if remaining:
            raise PublishError(
                f"Delivery to {self.destination} timed out after {self._flush_timeout}s"
            )

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        producer, self._producer = self._producer, None
        if producer is None:
            return
        try:
            await loop.run_in_executor(self._io, producer.flush, self._flush_timeout)
        finally:
            self._io.shutdown(wait=False)


class KafkaRecordSource:
    def __init__(self, destination: Destination, consumer: Consumer, poll_timeout: float):
        self.destination = destination
        self._consumer = consumer
        self._poll_timeout = poll_timeout
        # Polls block for up to poll_timeout, keep them off the shared pool
        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kafka-poll")
        # librdkafka must not close the handle while another thread is polling it
        self._handle_lock = threading.Lock()
        self._closed = False
        self._io_open = True

    def _poll(self) -> Message | None:
        with self._handle_lock:
            if self._closed:
                return None
            return self._consumer.poll(self._poll_timeout)

    def _close(self) -> None:
        with self._handle_lock:
            if self._closed:
                return
            self._closed = True
            self._consumer.close()

    async def next_record(self) -> ConsumedRecord | None:
        if not self._io_open:
            return None
        loop = asyncio.get_running_loop()
        try:
            msg = await loop.run_in_executor(self._io, self._poll)
        except KafkaException as e:
            raise SubscriptionError(f"Subscription to {self.destination} failed: {e}") from e

        if msg is None:
            return None

        err = msg.error()
        if err is None:
            return to_record(msg)
        if err.code() == KafkaError._PARTITION_EOF:
            return None
        if err.fatal() or err.code() in _TERMINAL_CONSUMER_ERRORS:
            raise SubscriptionError(f"Subscription to {self.destination} failed: {err.str()}")

        logger.warning(f"Transient consumer error on {self.destination}: {err.str()}")
        return None

    async def close(self) -> None:
        if not self._io_open:
            return
        self._io_open = False
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._io, self._close)
        finally:
            self._io.shutdown(wait=False)


class KafkaBroker:
    """Broker backed by confluent-kafka, one client handle per session."""

    def __init__(self, settings: StreamSettings):
        self.settings = settings

    def _producer_config(self, destination: Destination) -> dict:
        return {
            "bootstrap.servers": destination.broker_address,
            "client.id": self.settings.client_id,
            "message.timeout.ms": int(self.settings.flush_timeout_seconds * 1000),
        }

    def _consumer_config(self, destination: Destination, group_id: str) -> dict:
        return {
            "bootstrap.servers": destination.broker_address,
            "client.id": self.settings.client_id,
            "group.id": group_id,
            "auto.offset.reset": self.settings.auto_offset_reset,
            "enable.auto.commit": True,
        }

    def _create_consumer(self, destination: Destination, group_id: str) -> Consumer:
        consumer = Consumer(self._consumer_config(destination, group_id))
        consumer.subscribe([destination.topic])
        return consumer

    async def open_publisher(self, destination: Destination) -> KafkaPublisher:
        loop = asyncio.get_running_loop()
        try:
            producer = await loop.run_in_executor(
                get_executor(), Producer, self._producer_config(destination)
            )
        except KafkaException as e:
            raise PublishError(f"Cannot create producer for {destination}: {e}") from e
        return KafkaPublisher(destination, producer, self.settings.flush_timeout_seconds)

    async def subscribe(self, destination: Destination, group_id: str) -> KafkaRecordSource:
        loop = asyncio.get_running_loop()
        try:
            consumer = await loop.run_in_executor(
                get_executor(), self._create_consumer, destination, group_id
            )
        except KafkaException as e:
            raise SubscriptionError(f"Cannot subscribe to {destination}: {e}") from e
        return KafkaRecordSource(destination, consumer, self.settings.poll_timeout_seconds)
