"""Command line interface for pocketid-sync."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from pocketid_sync.cli.factory import ClientFactory, ComponentFactory
from pocketid_sync.cli.formatters import ConfigFormatter, ResultFormatter, StatusFormatter
from pocketid_sync.config.loader import (
    ConfigLoader,
    ConfigurationError,
    DeclarationWatcher,
    find_config_file,
)
from pocketid_sync.config.models import SyncConfig
from pocketid_sync.core.scheduler import ReconcileScheduler
from pocketid_sync.resources.base import ReconcileOutcome, ReconcileResult
from pocketid_sync.security.validation import sanitize_log_input, validate_file_path

console = Console()
logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="pocketid-sync",
    help="Reconcile declared users, groups and OIDC clients against a Pocket ID instance.",
    rich_markup_mode="rich",
)

ConfigOption = typer.Option(None, "--config", "-c", help="Path to configuration file")


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Set up structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def resolve_config_path(config_file: Optional[Path]) -> Path:
    """Find and sanity-check the configuration file path.

    Raises:
        typer.Exit: If no usable path is found
    """
    if config_file is None:
        config_file = find_config_file()
        if config_file is None:
            console.print("[red]Error: No configuration file found[/red]")
            console.print("Please create a pocketid-sync.yaml file or specify --config")
            raise typer.Exit(1)

    if not validate_file_path(str(config_file)):
        console.print(
            f"[red]Error: Invalid or unsafe configuration file path: "
            f"{sanitize_log_input(str(config_file))}[/red]"
        )
        raise typer.Exit(1)

    return config_file


def load_configuration(config_path: Path) -> SyncConfig:
    """Load configuration and set up logging from it.

    Raises:
        typer.Exit: If configuration loading fails
    """
    try:
        config = ConfigLoader().load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Error loading configuration: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    setup_logging(config.logging.level, config.logging.format)
    console.print(f"[green]✓[/green] Loaded configuration from {config_path}")
    return config


def _exit_code(results: List[ReconcileResult]) -> int:
    return 1 if any(r.outcome == ReconcileOutcome.FAILED for r in results) else 0


@app.command()
def validate(config_file: Optional[Path] = ConfigOption) -> None:
    """Validate the configuration file and declared resources."""
    console.print("[blue]Validating configuration...[/blue]")
    config_path = resolve_config_path(config_file)

    missing = ConfigLoader().get_missing_env_vars(config_path)
    if missing:
        console.print("[red]Missing required environment variables:[/red]")
        for var_name in missing:
            console.print(f"  • {sanitize_log_input(var_name)}")
        raise typer.Exit(1)

    config = load_configuration(config_path)
    ConfigFormatter(console).format_config_summary(config)
    console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def reconcile(config_file: Optional[Path] = ConfigOption) -> None:
    """Run a single reconciliation pass over every declared resource."""
    config_path = resolve_config_path(config_file)
    config = load_configuration(config_path)

    async def run_reconcile() -> List[ReconcileResult]:
        try:
            client = ClientFactory.create_pocketid_client(config.pocketid)
        except ValueError as e:
            console.print(f"[red]Setup failed: {sanitize_log_input(str(e))}[/red]")
            raise typer.Exit(1)

        async with client:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task("Checking API connectivity...", total=None)
                if not await ClientFactory.validate_client(client):
                    console.print("[red]Cannot reach Pocket ID with the configured API key[/red]")
                    raise typer.Exit(1)

                progress.add_task("Reconciling resources...", total=None)
                store = ComponentFactory.create_store(config)
                scheduler = ComponentFactory.create_scheduler(
                    client,
                    store,
                    config,
                    DeclarationWatcher(config_path, initial=config),
                )
                results = await scheduler.run_once()

        formatter = ResultFormatter(console)
        formatter.format_results_table(results)
        formatter.format_connection_details(results)
        formatter.format_summary(ReconcileScheduler.summarize(results))
        return results

    results = asyncio.run(run_reconcile())
    code = _exit_code(results)
    if code:
        console.print("[yellow]Completed with failures[/yellow]")
    else:
        console.print("[green]✓ Reconciliation pass completed[/green]")
    raise typer.Exit(code)


@app.command()
def run(config_file: Optional[Path] = ConfigOption) -> None:
    """Reconcile continuously until interrupted."""
    config_path = resolve_config_path(config_file)
    config = load_configuration(config_path)

    async def run_loop() -> None:
        try:
            client = ClientFactory.create_pocketid_client(config.pocketid)
        except ValueError as e:
            console.print(f"[red]Setup failed: {sanitize_log_input(str(e))}[/red]")
            raise typer.Exit(1)

        async with client:
            store = ComponentFactory.create_store(config)
            watcher = DeclarationWatcher(config_path, initial=config)
            scheduler = ComponentFactory.create_scheduler(client, store, config, watcher)

            async def watch_declarations() -> None:
                interval = min(2.0, config.reconcile.poll_interval_seconds)
                while True:
                    await asyncio.sleep(interval)
                    if watcher.has_changed():
                        scheduler.notify_changed()

            watch_task = asyncio.ensure_future(watch_declarations())
            try:
                await scheduler.run_forever()
            finally:
                watch_task.cancel()

    console.print(
        f"[blue]Reconciling every {config.reconcile.poll_interval_seconds}s "
        f"(Ctrl+C to stop)[/blue]"
    )
    try:
        asyncio.run(run_loop())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


@app.command()
def status(config_file: Optional[Path] = ConfigOption) -> None:
    """Show the persisted status of every declared resource."""
    config = load_configuration(resolve_config_path(config_file))
    store = ComponentFactory.create_store(config)
    StatusFormatter(console).format_status_table(store.list())


if __name__ == "__main__":
    app()
