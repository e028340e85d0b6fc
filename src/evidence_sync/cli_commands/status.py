"""Status and run commands for the Evidence Sync CLI."""

import asyncio
import json
import signal

import typer

from evidence_sync.config import get_settings
from evidence_sync.engine import SyncOrchestrator
from evidence_sync.logging import setup_logging


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show upload queue status.

    Displays record counts and how many uploads are waiting or need
    a manual retry.
    """
    settings = get_settings()
    orchestrator = SyncOrchestrator(settings)

    async def collect() -> dict:
        async with orchestrator:
            return orchestrator.get_status()

    status_data = asyncio.run(collect())
    queue = status_data["queue"]

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("Evidence Sync Status")
    typer.echo("--------------------")
    typer.echo(f"Queue: {queue['awaiting_upload']} awaiting upload")
    typer.echo(f"Completed: {queue['completed']}")
    if queue["terminal_failed"] > 0:
        typer.echo(f"Failed: {queue['terminal_failed']} uploads need a manual retry")
    if queue["cancelled"] > 0:
        typer.echo(f"Cancelled: {queue['cancelled']}")
    typer.echo(f"Data: {status_data['data_dir']} ({status_data['store_backend']})")
    typer.echo("")


def run_command(
    interval: int = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between processing passes (default: from config)",
    ),
) -> None:
    """Process the upload queue until interrupted.

    Runs a pass at startup and then on a fixed interval. Press Ctrl+C
    to stop.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, device_id=settings.device_id)

    if interval is not None:
        if interval < 1:
            typer.echo("Interval must be at least 1 second")
            raise typer.Exit(1)
        settings = settings.model_copy(update={"process_interval": interval})

    async def run() -> None:
        orchestrator = SyncOrchestrator(settings)
        stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

        orchestrator.start()
        try:
            await stop_event.wait()
        finally:
            await orchestrator.stop()

    typer.echo(f"Processing upload queue every {settings.process_interval}s. Press Ctrl+C to stop.")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    typer.echo("Stopped.")
