import pytest

from streamtester.errors import ParameterError
from streamtester.models.parameter import Parameter
from streamtester.models.session import ProducerConfig, SessionState, StopAfter
from streamtester.sessions.commands import (
    AddConstraint,
    AddParameter,
    CommandDispatcher,
    ConnectConsumer,
    RemoveParameter,
    SendOnce,
    StartProducer,
    StopProducer,
    UpdateParameter,
    UpdateTemplate,
    command_from_message,
)


@pytest.fixture
def dispatcher(registry):
    return CommandDispatcher(registry)


class TestCommandFromMessage:
    def test_start_producer(self):
        command = command_from_message(
            {
                "command": "start_producer",
                "session_id": "tab-1",
                "topic": "orders",
                "broker": "localhost:9092",
                "template": "{{id}}",
                "interval_ms": 250,
                "stop_after": {"enabled": True, "count": 10},
                "parameters": [{"name": "id", "randomized": True, "type": "uuid"}],
            }
        )

        assert isinstance(command, StartProducer)
        assert command.session_id == "tab-1"
        assert command.config.interval_millis == 250
        assert command.config.stop_after == StopAfter(enabled=True, count=10)
        assert command.config.parameters[0].is_randomized
        assert str(command.config.destination) == "orders@localhost:9092"

    def test_broker_address_alias(self):
        command = command_from_message(
            {
                "command": "connect_consumer",
                "session_id": "tab-2",
                "topic": "orders",
                "broker_address": "kafka:29092",
            }
        )
        assert isinstance(command, ConnectConsumer)
        assert command.destination.broker_address == "kafka:29092"

    def test_simple_commands(self):
        assert command_from_message({"command": "stop_producer", "session_id": "x"}) == (
            StopProducer("x")
        )
        assert command_from_message(
            {"command": "remove_parameter", "session_id": "x", "name": "a"}
        ) == RemoveParameter("x", "a")

    def test_update_parameter(self):
        command = command_from_message(
            {
                "command": "update_parameter",
                "session_id": "x",
                "name": "a",
                "updates": {"type": "uuid", "is_randomized": True},
            }
        )
        assert command == UpdateParameter("x", "a", {"type": "uuid", "is_randomized": True})

    def test_update_parameter_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="colour"):
            command_from_message(
                {
                    "command": "update_parameter",
                    "session_id": "x",
                    "name": "a",
                    "updates": {"colour": 1},
                }
            )

    @pytest.mark.parametrize(
        "message",
        [
            {"command": "stop_producer"},
            {"command": "launch_rockets", "session_id": "x"},
            {"command": "connect_consumer", "session_id": "x"},
            {"command": "add_constraint", "session_id": "x", "name": "a"},
        ],
    )
    def test_invalid_messages(self, message):
        with pytest.raises(ValueError):
            command_from_message(message)


class TestDispatcher:
    async def test_start_and_stop(self, dispatcher, registry, destination):
        config = ProducerConfig(destination=destination, template="x", interval_millis=5)

        started = await dispatcher.execute(StartProducer("tab-1", config))
        assert started.ok
        assert started.value.state is SessionState.RUNNING

        stopped = await dispatcher.execute(StopProducer("tab-1"))
        assert stopped.ok
        assert registry.get("tab-1").state is SessionState.IDLE

    async def test_stop_unknown_session_succeeds(self, dispatcher):
        result = await dispatcher.execute(StopProducer("ghost"))
        assert result.ok

    async def test_failures_become_results(self, dispatcher):
        await dispatcher.execute(AddParameter("tab-1", Parameter(name="a")))

        result = await dispatcher.execute(AddParameter("tab-1", Parameter(name="a")))

        assert not result.ok
        assert isinstance(result.error, ParameterError)
        assert result.error.session_id == "tab-1"

    async def test_parameter_commands(self, dispatcher, registry):
        await dispatcher.execute(AddParameter("tab-1", Parameter(name="a")))
        await dispatcher.execute(AddConstraint("tab-1", "a", "length:4"))
        await dispatcher.execute(UpdateParameter("tab-1", "a", {"is_randomized": True}))

        param = registry.get("tab-1").parameters[0]
        assert param.is_randomized
        assert param.constraints == ("length:4",)

        result = await dispatcher.execute(RemoveParameter("tab-1", "a"))
        assert result.value is True

    async def test_send_once(self, dispatcher, broker, destination):
        await dispatcher.execute(UpdateTemplate("tab-1", "ignored"))
        result = await dispatcher.execute(SendOnce("tab-1", destination, "hello"))

        assert result.ok
        assert result.value.message == "hello"
        assert broker.topics["orders"] == ["hello"]

    async def test_invalid_value_becomes_failure(self, dispatcher):
        await dispatcher.execute(AddParameter("tab-1", Parameter(name="a")))

        result = await dispatcher.execute(UpdateParameter("tab-1", "a", {"name": ""}))

        assert not result.ok
        assert result.error.session_id == "tab-1"
