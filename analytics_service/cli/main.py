"""
CLI interface for the Analytics Service.

Runs the server, prepares storage, and talks to a running service.
"""

import sys
from typing import Optional

import grpc
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from analytics_service.client.analytics_client import AnalyticsClient
from analytics_service.config.loader import load_service_config
from analytics_service.core.windows import TimeWindow
from analytics_service.logging_setup import setup_logging
from analytics_service.server.grpc_server import serve as run_server
from analytics_service.storage.repository import StorageError, create_backend

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION_HELP = "Path to YAML configuration file"
TARGET_OPTION_HELP = "Address of a running service (host:port)"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Analytics Service CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Analytics Service - Use --help to see available commands")


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Run the gRPC server until interrupted."""
    try:
        service_config = load_service_config(config)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    setup_logging(service_config.logging.level, service_config.logging.json)

    try:
        run_server(service_config)
    except (StorageError, RuntimeError) as e:
        console.print(f"[red]Failed to start server:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def init(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Create the storage schema and indexes."""
    try:
        backend = create_backend(load_service_config(config).storage)
        try:
            backend.initialize()
        finally:
            backend.close()
        console.print("[green]✓[/] Storage initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing storage:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Check that the configured storage backend is reachable."""
    try:
        service_config = load_service_config(config)
        backend = create_backend(service_config.storage)
        try:
            backend.ping()
        finally:
            backend.close()
        console.print(f"[green]✓[/] {service_config.storage.backend.value} backend is reachable")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Backend unreachable:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def log(
    service_name: str = typer.Argument(..., help="Name of the originating service"),
    level: str = typer.Argument(..., help="Severity label, e.g. ERROR"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Free-text description"),
    metadata: str = typer.Option("{}", "--metadata", "-d", help="JSON object with extra data"),
    target: str = typer.Option("localhost:8089", "--target", "-t", help=TARGET_OPTION_HELP),
):
    """Send a log entry to a running service."""
    try:
        with AnalyticsClient(target) as client:
            response = client.log(service_name, level, message=message, metadata=metadata)
        console.print(f"[green]✓[/] {response.message}")
        sys.exit(EXIT_CODE_PASS)
    except grpc.RpcError as e:
        console.print(f"[red]Error ({e.code().name}):[/] {e.details()}")
        sys.exit(EXIT_CODE_FAIL)


@app.command(name="list")
def list_logs(
    window: str = typer.Option(
        "unspecified",
        "--window",
        "-w",
        help="today, yesterday, last_week, last_month, last_three_months or unspecified"
    ),
    target: str = typer.Option("localhost:8089", "--target", "-t", help=TARGET_OPTION_HELP),
):
    """List log entries from a running service, newest first."""
    try:
        time_window = TimeWindow.parse(window)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        with AnalyticsClient(target) as client:
            response = client.list_logs(time_window)
    except grpc.RpcError as e:
        console.print(f"[red]Error ({e.code().name}):[/] {e.details()}")
        sys.exit(EXIT_CODE_FAIL)

    if not response.logs:
        console.print("\n[dim]No log entries found.[/]")
        sys.exit(EXIT_CODE_PASS)

    _display_logs(response.logs)
    sys.exit(EXIT_CODE_PASS)


def _display_logs(logs):
    """Render log entries as a table."""
    table = Table(title=f"Log entries ({len(logs)})")
    table.add_column("Created at (UTC)")
    table.add_column("Service")
    table.add_column("Level")
    table.add_column("Message")
    table.add_column("Metadata")

    for entry in logs:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            escape(entry.service_name),
            escape(entry.level),
            escape(entry.message),
            escape(entry.metadata),
        )

    console.print(table)


if __name__ == "__main__":
    app()
