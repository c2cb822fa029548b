from __future__ import annotations

from rich.console import Console

DEFAULT_IMAGE = "confluentinc/cp-kafka:7.5.0"


class LocalBroker:
    """Disposable single-node Kafka started through testcontainers."""

    def __init__(self, image: str = DEFAULT_IMAGE, console: Console | None = None):
        self.image = image
        self._console = console or Console()
        self._container = None
        self._bootstrap_servers: str | None = None

    @property
    def is_running(self) -> bool:
        return self._container is not None

    @property
    def bootstrap_servers(self) -> str:
        if self._bootstrap_servers is None:
            raise RuntimeError("Local broker is not running")
        return self._bootstrap_servers

    def start(self) -> str:
        if self._bootstrap_servers is not None:
            return self._bootstrap_servers

        try:
            from testcontainers.kafka import KafkaContainer
        except ImportError as e:
            raise RuntimeError(
                "The local broker needs testcontainers: pip install 'kafka-stream-tester[local]'"
            ) from e

        self._console.print(f"[bold blue]Starting local Kafka broker ({self.image})...[/bold blue]")
        container = KafkaContainer(self.image)
        try:
            container.start()
        except Exception as e:
            message = str(e)
            if (
                "Cannot connect to the Docker daemon" in message
                or "Error while fetching" in message
            ):
                raise RuntimeError(
                    "Docker is not running. Please start Docker and try again."
                ) from e
            raise RuntimeError(f"Failed to start local Kafka broker: {message}") from e

        self._container = container
        self._bootstrap_servers = container.get_bootstrap_server()
        self._console.print(
            f"[bold green]Local broker ready at {self._bootstrap_servers}[/bold green]"
        )
        return self._bootstrap_servers

    def stop(self) -> None:
        container, self._container = self._container, None
        self._bootstrap_servers = None
        if container is None:
            return

        self._console.print("[bold blue]Stopping local Kafka broker...[/bold blue]")
        container.stop()
        self._console.print("[bold green]Local broker stopped![/bold green]")

    def __enter__(self) -> LocalBroker:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
