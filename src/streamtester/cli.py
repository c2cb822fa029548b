"""stream-tester command line."""

from __future__ import annotations

import asyncio
import signal
import time
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from streamtester.config import StreamSettings, load_settings
from streamtester.errors import StreamError
from streamtester.generators.catalog import FakerCatalog
from streamtester.generators.template import TemplateRenderer
from streamtester.generators.value import ValueGenerator
from streamtester.infrastructure.local_broker import LocalBroker
from streamtester.models.parameter import Parameter
from streamtester.models.session import SessionKind, SessionState
from streamtester.runtime import configure_logging
from streamtester.sessions.loader import SessionFile, discover_session_files, load_sessions
from streamtester.sessions.observer import ConsoleObserver
from streamtester.sessions.registry import SessionRegistry

console = Console()


def parse_parameter_spec(spec: str) -> Parameter:
    """Parse ``name=type`` or ``name=type:key:value,key:value`` into a randomized parameter."""
    name, sep, rest = spec.partition("=")
    if not sep or not name or not rest:
        raise click.BadParameter(f"Expected name=type[:constraints], got '{spec}'")
    type_name, _, constraints = rest.partition(":")
    return Parameter(
        name=name,
        is_randomized=True,
        type=type_name,
        constraints=tuple(c for c in constraints.split(",") if c),
    )


def parse_value_specs(specs: tuple[str, ...]) -> list[Parameter]:
    values: dict[str, list[str]] = {}
    for spec in specs:
        name, sep, value = spec.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"Expected name=value, got '{spec}'")
        values.setdefault(name, []).append(value)
    return [Parameter(name=name, manual_values=tuple(v)) for name, v in values.items()]


def build_stats_table(registry: SessionRegistry, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Session", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("State")
    table.add_column("Destination", style="dim")
    table.add_column("Sent", style="green")
    table.add_column("Consumed", style="yellow")
    table.add_column("Errors", style="red")

    for snapshot in registry.sessions():
        errors = snapshot.send_errors + snapshot.render_errors
        table.add_row(
            snapshot.id,
            snapshot.kind.value,
            snapshot.state.value,
            str(snapshot.destination or "-"),
            f"{snapshot.messages_sent:,}" if snapshot.kind is SessionKind.PRODUCER else "",
            f"{snapshot.messages_consumed:,}" if snapshot.kind is SessionKind.CONSUMER else "",
            f"{errors:,}" if errors else "",
        )
    return table


def resolve_session_path(path: Path, name: str | None) -> Path:
    """Pick the session file to run. A directory is searched for session files by name."""
    if not path.is_dir():
        return path

    found = discover_session_files(path)
    if name is not None:
        if name not in found:
            raise click.ClickException(f"No session file named '{name}' in {path}")
        return found[name]
    if len(found) == 1:
        return next(iter(found.values()))
    if not found:
        raise click.ClickException(f"No session files found in {path}")
    raise click.ClickException(
        f"Several session files in {path}, pick one with --name: {', '.join(sorted(found))}"
    )


async def run_session_file(
    sessions: SessionFile,
    settings: StreamSettings,
    duration_seconds: int,
    quiet: bool = False,
) -> SessionRegistry:
    registry = SessionRegistry(settings, observer=ConsoleObserver(console, show_messages=not quiet))
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        console.print("\n[yellow]Shutting down gracefully...[/yellow]")
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        for session_id, destination in sessions.consumers.items():
            try:
                await registry.connect_consumer(session_id, destination)
            except StreamError as e:
                console.print(f"[red]{escape(str(e))}[/red]")

        for session_id, config in sessions.producers.items():
            try:
                await registry.start_producer(session_id, config)
            except StreamError as e:
                console.print(f"[red]{escape(str(e))}[/red]")

        bounded = [sid for sid, cfg in sessions.producers.items() if cfg.stop_after.enabled]
        unbounded = len(bounded) < len(sessions.producers) or bool(sessions.consumers)
        start_time = time.time()

        while not stop_requested.is_set():
            await asyncio.sleep(0.5)
            if duration_seconds > 0 and (time.time() - start_time) >= duration_seconds:
                break
            if not unbounded and all(
                registry.get(sid).state is SessionState.IDLE for sid in sessions.producers
            ):
                break
    finally:
        await registry.shutdown()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    return registry


@click.group()
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="YAML settings file",
)
@click.pass_context
def main(ctx: click.Context, settings_path: Path | None) -> None:
    """Drive templated load against Kafka topics and watch what comes back."""
    try:
        settings = load_settings(settings_path)
    except StreamError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(settings.log_level)
    ctx.obj = settings


@main.command()
@click.argument("session_path", type=click.Path(exists=True, path_type=Path))
@click.option("--name", default=None, help="Session file to run when SESSION_PATH is a directory")
@click.option("--duration", default=0, help="Seconds to run, 0 runs until stopped")
@click.option("--quiet", is_flag=True, help="Only print state changes and errors")
@click.pass_obj
def run(
    settings: StreamSettings, session_path: Path, name: str | None, duration: int, quiet: bool
) -> None:
    """Run every producer and consumer declared in a session file.

    SESSION_PATH is a session file, or a directory holding session files.
    """
    session_file = resolve_session_path(session_path, name)
    try:
        sessions = load_sessions(session_file, default_broker=settings.default_broker)
    except StreamError as e:
        raise click.ClickException(str(e)) from e

    console.print(
        f"[dim]Loaded '{sessions.name}': {len(sessions.producers)} producer(s), "
        f"{len(sessions.consumers)} consumer(s)[/dim]"
    )
    registry = asyncio.run(run_session_file(sessions, settings, duration, quiet))
    console.print(build_stats_table(registry, f"Sessions: {sessions.name}"))


@main.command("sessions")
@click.argument(
    "directory", type=click.Path(exists=True, file_okay=False, path_type=Path), default="."
)
def list_sessions(directory: Path) -> None:
    """List the session files found under DIRECTORY."""
    found = discover_session_files(directory)
    if not found:
        console.print(f"[yellow]No session files in {escape(str(directory))}[/yellow]")
        return

    for name, path in found.items():
        click.echo(f"{name}\t{path}")


@main.command()
@click.argument("template")
@click.option("-p", "--param", "params", multiple=True, help="name=type[:key:value,...]")
@click.option("-v", "--value", "values", multiple=True, help="name=literal (repeatable)")
@click.option("-n", "--count", default=1, help="Number of messages to render")
@click.pass_obj
def render(
    settings: StreamSettings,
    template: str,
    params: tuple[str, ...],
    values: tuple[str, ...],
    count: int,
) -> None:
    """Render TEMPLATE locally without touching a broker."""
    parameters = [parse_parameter_spec(p) for p in params] + parse_value_specs(values)
    catalog = FakerCatalog(settings.faker_locale, settings.faker_seed)
    renderer = TemplateRenderer(ValueGenerator(catalog))

    for _ in range(count):
        result = renderer.render(template, parameters)
        click.echo(result.message)
        for error in result.errors:
            console.print(f"[red]{escape(str(error))}[/red]")


@main.command()
@click.option("--filter", "pattern", default="", help="Only show types containing this text")
@click.pass_obj
def types(settings: StreamSettings, pattern: str) -> None:
    """List the catalog types usable as parameter types."""
    catalog = FakerCatalog(settings.faker_locale)
    for name in catalog.list_types():
        if pattern in name:
            click.echo(name)


@main.command("local-broker")
@click.option("--image", default="confluentinc/cp-kafka:7.5.0", help="Kafka container image")
def local_broker(image: str) -> None:
    """Start a disposable Kafka broker and keep it up until interrupted."""
    broker = LocalBroker(image=image, console=console)
    try:
        address = broker.start()
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold]Bootstrap servers:[/bold] {address}  [dim](Ctrl+C to stop)[/dim]")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        broker.stop()


if __name__ == "__main__":
    main()
