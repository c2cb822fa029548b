import textwrap

import pytest

from streamtester.config import StreamSettings, load_settings
from streamtester.errors import ConfigError
from streamtester.models.session import StopAfter
from streamtester.sessions.loader import discover_session_files, load_sessions


def write(path, content):
    path.write_text(textwrap.dedent(content))
    return path


@pytest.fixture
def session_file(tmp_path):
    return write(
        tmp_path / "orders.yaml",
        """
        name: orders-load
        producers:
          - id: tab-1
            topic: orders
            template: '{"id": "{{id}}", "qty": {{qty}}}'
            interval_ms: 200
            stop_after: 50
            parameters:
              - name: id
                randomized: true
                type: uuid
              - name: qty
                randomized: true
                type: number
                constraints: ["min:1", "max:9"]
        consumers:
          - id: tab-2
            topic: orders
            broker: kafka:29092
        """,
    )


class TestSessionFiles:
    def test_load(self, session_file):
        sessions = load_sessions(session_file, default_broker="localhost:9092")

        assert sessions.name == "orders-load"
        producer = sessions.producers["tab-1"]
        assert producer.interval_millis == 200
        assert producer.stop_after == StopAfter(enabled=True, count=50)
        assert [p.name for p in producer.parameters] == ["id", "qty"]
        assert producer.parameters[1].constraints == ("min:1", "max:9")
        assert producer.destination.broker_address == "localhost:9092"
        assert sessions.consumers["tab-2"].broker_address == "kafka:29092"

    def test_name_defaults_to_file_stem(self, tmp_path):
        path = write(tmp_path / "smoke.yaml", "producers:\n  - id: p\n    topic: t\n")
        assert load_sessions(path).name == "smoke"

    def test_stop_after_mapping(self, tmp_path):
        path = write(
            tmp_path / "s.yaml",
            """
            producers:
              - id: p
                topic: t
                stop_after: {enabled: false, count: 4}
            """,
        )
        assert load_sessions(path).producers["p"].stop_after == StopAfter(enabled=False, count=4)

    @pytest.mark.parametrize(
        "content",
        [
            "- just\n- a list\n",
            "producers:\n  - topic: t\n",
            "producers:\n  - id: p\n",
            "producers:\n  - {id: p, topic: t}\n  - {id: p, topic: u}\n",
            "producers:\n  - {id: p, topic: t, interval_ms: -5}\n",
            "producers:\n  - {id: x, topic: t}\nconsumers:\n  - {id: x, topic: t}\n",
            "producers: nope\n",
        ],
    )
    def test_invalid_files(self, tmp_path, content):
        path = write(tmp_path / "bad.yaml", content)
        with pytest.raises(ConfigError):
            load_sessions(path)

    @pytest.mark.parametrize("content", ["producers: [unclosed\n", "producers:\n\t- id: p\n"])
    def test_malformed_yaml_is_a_config_error(self, tmp_path, content):
        path = write(tmp_path / "broken.yaml", content)
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_sessions(path)

    def test_discover(self, tmp_path, session_file):
        write(tmp_path / "other.yaml", "something: else\n")
        write(tmp_path / "broken.yaml", "producers: [unclosed\n")

        assert discover_session_files(tmp_path) == {"orders-load": session_file}

    def test_discover_missing_dir(self, tmp_path):
        assert discover_session_files(tmp_path / "nope") == {}


class TestSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.yaml") == StreamSettings()
        assert load_settings(None) == StreamSettings()

    def test_load(self, tmp_path):
        path = write(
            tmp_path / "settings.yaml",
            """
            default_broker: kafka:29092
            auto_offset_reset: earliest
            faker_seed: 7
            """,
        )
        settings = load_settings(path)

        assert settings.default_broker == "kafka:29092"
        assert settings.auto_offset_reset == "earliest"
        assert settings.faker_seed == 7

    def test_empty_file_gives_defaults(self, tmp_path):
        assert load_settings(write(tmp_path / "empty.yaml", "")) == StreamSettings()

    @pytest.mark.parametrize(
        "content",
        [
            "unknown_key: 1\n",
            "auto_offset_reset: middle\n",
            "flush_timeout_seconds: 0\n",
            "max_workers: 0\n",
            "log_level: chatty\n",
            "- a\n- b\n",
        ],
    )
    def test_invalid_settings(self, tmp_path, content):
        with pytest.raises(ConfigError):
            load_settings(write(tmp_path / "settings.yaml", content))

    def test_malformed_yaml_is_a_config_error(self, tmp_path):
        path = write(tmp_path / "settings.yaml", "default_broker: [kafka\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)
