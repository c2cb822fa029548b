"""In-memory broker doubles and shared fixtures for unit tests."""

import asyncio
import time
from collections import defaultdict

import pytest

from streamtester.config import StreamSettings
from streamtester.errors import PublishError, SubscriptionError
from streamtester.generators.catalog import FakerCatalog
from streamtester.generators.template import TemplateRenderer
from streamtester.generators.value import ValueGenerator
from streamtester.models.session import ConsumedRecord, Destination
from streamtester.sessions.observer import CollectingObserver
from streamtester.sessions.registry import SessionRegistry


class FakePublisher:
    def __init__(self, broker: "FakeBroker", destination: Destination):
        self.broker = broker
        self.destination = destination
        self.closed = False
        self.sent: list[str] = []

    async def send(self, payload: bytes) -> None:
        await asyncio.sleep(0)
        if self.closed:
            raise PublishError("publisher is closed")
        if self.broker.fail_sends > 0:
            self.broker.fail_sends -= 1
            raise PublishError(f"broker rejected message for {self.destination}")
        message = payload.decode("utf-8")
        self.sent.append(message)
        self.broker.topics[self.destination.topic].append(message)

    async def close(self) -> None:
        self.closed = True


class FakeRecordSource:
    def __init__(self, destination: Destination, group_id: str):
        self.destination = destination
        self.group_id = group_id
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def next_record(self) -> ConsumedRecord | None:
        try:
            item = await asyncio.wait_for(self.queue.get(), timeout=0.01)
        except asyncio.TimeoutError:
            return None
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class FakeBroker:
    """Stands in for the Kafka client: records sends, feeds consumers on demand."""

    def __init__(self):
        self.topics: dict[str, list[str]] = defaultdict(list)
        self.publishers: list[FakePublisher] = []
        self.sources: list[FakeRecordSource] = []
        self.fail_sends = 0
        self.fail_open = False
        self.fail_subscribe = False

    async def open_publisher(self, destination: Destination) -> FakePublisher:
        if self.fail_open:
            raise PublishError(f"cannot connect to {destination.broker_address}")
        publisher = FakePublisher(self, destination)
        self.publishers.append(publisher)
        return publisher

    async def subscribe(self, destination: Destination, group_id: str) -> FakeRecordSource:
        if self.fail_subscribe:
            raise SubscriptionError(f"cannot connect to {destination.broker_address}")
        source = FakeRecordSource(destination, group_id)
        self.sources.append(source)
        return source

    def deliver(self, topic: str, value: str, key: str | None = None) -> ConsumedRecord:
        offset = len(self.topics[topic])
        self.topics[topic].append(value)
        record = ConsumedRecord(
            topic=topic,
            key=key,
            value=value,
            partition=0,
            offset=offset,
            timestamp=int(time.time() * 1000),
        )
        for source in self.sources:
            if source.destination.topic == topic and not source.closed:
                source.queue.put_nowait(record)
        return record

    def fail_subscriptions(self, topic: str, error: Exception) -> None:
        for source in self.sources:
            if source.destination.topic == topic:
                source.queue.put_nowait(error)


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def settings():
    return StreamSettings(faker_seed=1234)


@pytest.fixture
def catalog():
    return FakerCatalog(seed=1234)


@pytest.fixture
def generator(catalog):
    return ValueGenerator(catalog)


@pytest.fixture
def renderer(generator):
    return TemplateRenderer(generator)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def observer():
    return CollectingObserver()


@pytest.fixture
def destination():
    return Destination(topic="orders", broker_address="localhost:9092")


@pytest.fixture
async def registry(settings, broker, catalog, observer):
    registry = SessionRegistry(settings, broker=broker, catalog=catalog, observer=observer)
    yield registry
    await registry.shutdown()
