"""CLI commands for Code Ledger using Typer."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from code_ledger import __version__
from code_ledger.core.config import Config, get_config
from code_ledger.core.status import StatusReport, format_detailed_time, format_time_string


def _get_service_pid(config: Config) -> int | None:
    """Get the running service PID, clearing a stale PID file."""
    from code_ledger.core.orchestrator import Orchestrator

    return Orchestrator.get_service_pid(config)


app = typer.Typer(
    name="code-ledger",
    help="Per-file coding time accounting with durable sync.",
    add_completion=False,
)

console = Console()


def setup_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Reduce noise from external libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _mask(token: str | None) -> str:
    if not token:
        return "[yellow]Not Set[/yellow]"
    return f"{token[:4]}***" if len(token) > 8 else "***"


@app.command()
def run(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    ),
    log_to_file: bool = typer.Option(
        False,
        "--log-file",
        help="Also write logs to the log directory",
    ),
    no_stdin: bool = typer.Option(
        False,
        "--no-stdin",
        help="Do not read editor events from stdin",
    ),
) -> None:
    """Run the tracker in the foreground, reading JSON editor events from stdin."""
    config = get_config()

    pid = _get_service_pid(config)
    if pid is not None:
        console.print(f"[yellow]Service already running (PID: {pid})[/yellow]")
        raise typer.Exit(1)

    setup_logging(log_level, config.log_dir / "service.log" if log_to_file else None)

    from code_ledger.core.orchestrator import run_service

    try:
        asyncio.run(run_service(config, read_stdin=not no_stdin))
    except KeyboardInterrupt:
        pass


@app.command()
def status() -> None:
    """Show stored totals and sync state."""
    from code_ledger.storage.buffer import PersistentBuffer

    config = get_config()
    buffer = PersistentBuffer(config.store_path, retention_days=config.storage.retention_days)
    report = StatusReport(
        stored_seconds=buffer.total_time(),
        session_seconds=0,
        unsynced_count=buffer.unsynced_count(),
    )
    pid = _get_service_pid(config)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row(
        "Service",
        f"[green bold]RUNNING[/green bold] (PID: {pid})" if pid else "[red]STOPPED[/red]",
    )
    table.add_row("Total time", format_detailed_time(report.total_seconds))
    table.add_row("Records", str(len(buffer)))
    if report.all_synced:
        table.add_row("Sync", "[green]Everything synchronized[/green]")
    else:
        table.add_row("Sync", f"[yellow]Waiting for synchronization: {report.unsynced_count} records[/yellow]")
    table.add_row("API token", _mask(config.sync.api_token))
    table.add_row("Store", str(config.store_path))

    console.print(Panel(table, title=f"Code Ledger - {format_time_string(report.total_seconds)}", border_style="green" if pid else "red"))


@app.command()
def sync() -> None:
    """Synchronize stored records now."""
    config = get_config()

    if not config.has_token:
        console.print("[yellow]First configure an API token with 'code-ledger set-token'[/yellow]")
        raise typer.Exit(1)

    pid = _get_service_pid(config)
    if pid is not None and hasattr(signal, "SIGUSR1"):
        os.kill(pid, signal.SIGUSR1)
        console.print(f"[green]Synchronization requested from running service (PID: {pid})[/green]")
        return

    from code_ledger.storage.buffer import PersistentBuffer
    from code_ledger.sync.api_client import CollectorClient, CollectorError
    from code_ledger.sync.coordinator import SyncCoordinator

    buffer = PersistentBuffer(config.store_path, retention_days=config.storage.retention_days)
    pending = buffer.unsynced_count()
    if not pending:
        console.print("[green]No data for synchronization[/green]")
        return

    client = CollectorClient(config.sync.api_url, config.sync.api_token, timeout=config.sync.timeout_seconds)
    coordinator = SyncCoordinator(buffer, client)

    try:
        with console.status("Synchronization..."):
            asyncio.run(coordinator.sync())
    except CollectorError as e:
        console.print(f"[red]Synchronization error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Synchronized {pending} records[/green]")


@app.command()
def cleanup() -> None:
    """Remove synced records older than the retention window."""
    config = get_config()

    if _get_service_pid(config) is not None:
        console.print("[yellow]Service is running; it cleans up on its own schedule[/yellow]")
        raise typer.Exit(1)

    from code_ledger.storage.buffer import PersistentBuffer

    buffer = PersistentBuffer(config.store_path, retention_days=config.storage.retention_days)
    removed = buffer.cleanup()
    console.print(f"Removed {removed} records older than {config.storage.retention_days} days")


@app.command(name="set-token")
def set_token(
    token: str = typer.Option(
        ...,
        "--token",
        prompt="Enter API token from your profile",
        hide_input=True,
        help="Collector API token",
    ),
) -> None:
    """Store the API token and verify it against the collector."""
    from code_ledger.sync.api_client import CollectorClient

    config = get_config()
    config.sync.api_token = token.strip() or None

    try:
        config.save()
    except OSError as e:
        console.print(f"[red]Error saving token: {e}[/red]")
        raise typer.Exit(1)
    get_config.cache_clear()

    pid = _get_service_pid(config)
    if pid is not None and hasattr(signal, "SIGHUP"):
        os.kill(pid, signal.SIGHUP)

    if not config.has_token:
        console.print("[yellow]API token cleared[/yellow]")
        return

    client = CollectorClient(config.sync.api_url, config.sync.api_token, timeout=config.sync.timeout_seconds)
    if asyncio.run(client.validate_token()):
        console.print("[green]API token successfully installed and verified[/green]")
    else:
        console.print("[yellow]API token installed, but failed verification. Please make sure the token is correct.[/yellow]")


@app.command(name="validate-token")
def validate_token() -> None:
    """Check the configured API token against the collector."""
    from code_ledger.sync.api_client import CollectorClient

    config = get_config()
    if not config.has_token:
        console.print("[yellow]No API token configured[/yellow]")
        raise typer.Exit(1)

    client = CollectorClient(config.sync.api_url, config.sync.api_token, timeout=config.sync.timeout_seconds)
    if asyncio.run(client.validate_token()):
        console.print("[green]Token is valid[/green]")
    else:
        console.print("[red]Token is invalid[/red]")
        raise typer.Exit(1)


@app.command(name="config-show")
def config_show() -> None:
    """Show current configuration."""
    config = get_config()

    table = Table(title="Code Ledger Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("[bold]Paths[/bold]", "")
    table.add_row("  Data Directory", str(config.data_dir))
    table.add_row("  Log Directory", str(config.log_dir))
    table.add_row("  Config File", str(config.config_file))
    table.add_row("  Store", str(config.store_path))

    table.add_row("[bold]Tracking[/bold]", "")
    table.add_row("  Idle Threshold", f"{config.tracking.idle_threshold_seconds:g}s")
    table.add_row("  Tick Cap", f"{config.tracking.max_seconds_per_tick:g}s")
    table.add_row("  Flush Interval", f"{config.tracking.flush_interval_seconds:g}s")
    table.add_row("  Flush Cap", f"{config.tracking.max_seconds_per_flush:g}s")

    table.add_row("[bold]Storage[/bold]", "")
    table.add_row("  Retention", f"{config.storage.retention_days} days")

    table.add_row("[bold]Sync[/bold]", "")
    table.add_row("  API URL", config.sync.api_url)
    table.add_row("  API Token", _mask(config.sync.api_token))
    table.add_row("  Interval", f"{config.sync.interval_minutes:g} min")
    table.add_row("  Sync On Flush", str(config.sync.sync_on_flush))

    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Code Ledger v{__version__}")


@app.callback()
def main_callback() -> None:
    """Code Ledger - coding time accounting with durable sync."""
    pass


if __name__ == "__main__":
    app()
