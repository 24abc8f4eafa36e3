"""Typer CLI for the outbox relay."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from outbox_relay.config.loader import load_relay_config
from outbox_relay.config.models import RelayConfig
from outbox_relay.observability.health import Status, check_relay_health
from outbox_relay.observability.logs import configure_logging

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="relay", help="Outbox relay: database outbox → event stream")


def _load(config_path: str | None) -> RelayConfig:
    if config_path is not None and not Path(config_path).exists():
        console.print(f"[red]Config file not found: {escape(config_path)}[/red]")
        raise typer.Exit(1)
    try:
        return load_relay_config(Path(config_path) if config_path else None)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


@app.command()
def validate(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Relay YAML merged over built-in defaults"
    ),
) -> None:
    """Validate the relay configuration."""
    config = _load(config_path)
    console.print("[green]Valid[/green]")
    console.print(
        f"  source:   {config.source.host}:{config.source.port}/"
        f"{config.source.database} table={config.source.table}"
    )
    console.print(
        f"  stream:   {config.stream.bootstrap_servers} topic={config.stream.topic}"
    )
    d = config.dispatch
    console.print(
        f"  dispatch: limit={d.read_limit} chunk={d.update_chunk_size} "
        f"every {d.interval_seconds}s policy={d.missing_field_policy}"
    )


@app.command()
def run(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Relay YAML merged over built-in defaults"
    ),
) -> None:
    """Run the relay until SIGINT/SIGTERM."""
    config = _load(config_path)
    configure_logging(config.logging)

    from outbox_relay.pipeline.runner import Relay

    console.print(
        f"[yellow]Starting relay:[/yellow] {config.source.table} → {config.stream.topic}"
    )
    relay = Relay(config)
    try:
        relay.start()
    except KeyboardInterrupt:
        relay.stop()
    except Exception as exc:
        logger.exception("relay.fatal")
        raise typer.Exit(1) from exc


@app.command()
def once(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Relay YAML merged over built-in defaults"
    ),
) -> None:
    """Run a single dispatch cycle and print its result."""
    config = _load(config_path)
    configure_logging(config.logging)

    from outbox_relay.pipeline.cycle import CycleOutcome
    from outbox_relay.pipeline.runner import Relay

    relay = Relay(config, install_signal_handlers=False)
    result = asyncio.run(relay.run_once())

    table = Table(title="Dispatch cycle")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in result.as_dict().items():
        table.add_row(key, "" if value is None else escape(str(value)))
    console.print(table)
    if result.outcome not in (CycleOutcome.OK, CycleOutcome.EMPTY):
        raise typer.Exit(1)


@app.command()
def pending(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Relay YAML merged over built-in defaults"
    ),
) -> None:
    """Print how many outbox rows are waiting to be dispatched."""
    config = _load(config_path)

    from outbox_relay.source.pool import open_pool
    from outbox_relay.source.reader import BatchReader

    async def _count() -> int:
        pool = await open_pool(config.source)
        try:
            return await BatchReader(pool, config.source).count_pending()
        finally:
            await pool.close()

    count = asyncio.run(_count())
    console.print(f"{count} pending row(s) in {config.source.table}")


@app.command()
def health(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Relay YAML merged over built-in defaults"
    ),
) -> None:
    """Check connectivity to the source database and the event stream."""
    config = _load(config_path)
    result = check_relay_health(config)

    table = Table(title="Relay Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", escape(c.detail))

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)
