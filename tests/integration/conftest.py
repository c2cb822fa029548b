"""Fixtures for integration tests using testcontainers."""

import pytest

pytest.importorskip("testcontainers.kafka")

from testcontainers.kafka import KafkaContainer  # noqa: E402

from streamtester.config import StreamSettings  # noqa: E402
from streamtester.sessions.observer import CollectingObserver  # noqa: E402
from streamtester.sessions.registry import SessionRegistry  # noqa: E402


@pytest.fixture(scope="module")
def kafka_container():
    """Start Kafka container for integration tests."""
    kafka = KafkaContainer("confluentinc/cp-kafka:7.5.0")
    try:
        kafka.start()
    except Exception as e:
        pytest.skip(f"Kafka container unavailable: {e}")
    yield kafka
    kafka.stop()


@pytest.fixture(scope="module")
def bootstrap_servers(kafka_container):
    """Get the bootstrap address reachable from the host."""
    return kafka_container.get_bootstrap_server()


@pytest.fixture
def observer():
    return CollectingObserver()


@pytest.fixture
async def kafka_registry(observer):
    """Registry wired to the real confluent-kafka client."""
    settings = StreamSettings(auto_offset_reset="earliest", faker_seed=99)
    registry = SessionRegistry(settings, observer=observer)
    yield registry
    await registry.shutdown()
