"""Queue management CLI commands."""

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

import typer

from evidence_sync.config import get_settings
from evidence_sync.engine import SyncOrchestrator
from evidence_sync.errors import RecordStateError
from evidence_sync.models import ArtifactReference, QueueRecord, UploadStatus

queue_app = typer.Typer(
    name="queue",
    help="Upload queue management - list, enqueue, process, retry, cancel, clear.",
    no_args_is_help=True,
)


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


def _describe(record: QueueRecord) -> str:
    line = (
        f"{record.id}  {record.status.value:<11}  retries={record.retry_count}/"
        f"{record.max_retries}  reason={record.artifact.reason}  "
        f"queued={record.queued_at.strftime('%Y-%m-%d %H:%M:%S')}"
    )
    if record.result_url:
        line += f"  url={record.result_url}"
    if record.error_message:
        line += f"  error={record.error_message}"
    return line


async def _with_orchestrator(action):
    orchestrator = SyncOrchestrator(get_settings())
    async with orchestrator:
        return await action(orchestrator)


@queue_app.command("list")
def list_records(
    status: UploadStatus = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show records with this status",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List queued records in queue order."""

    async def action(orchestrator: SyncOrchestrator) -> list[QueueRecord]:
        if status is None:
            return orchestrator.processor.list_all()
        return orchestrator.store.by_status(lambda r: r.status == status)

    records = asyncio.run(_with_orchestrator(action))

    if output_json:
        typer.echo(json.dumps([record.to_dict() for record in records]))
        return
    if not records:
        typer.echo("Queue is empty")
        return
    for record in records:
        typer.echo(_describe(record))


@queue_app.command()
def enqueue(
    path: Path = typer.Argument(..., help="Path to the captured photo"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the photo was captured"),
    now: bool = typer.Option(
        False,
        "--now",
        help="Attempt the upload immediately when online",
    ),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Add a captured photo to the upload queue."""
    if not path.exists():
        _output(
            {"status": "error", "message": f"File not found: {path}"},
            output_json,
            f"File not found: {path}",
        )
        raise typer.Exit(1)

    artifact = ArtifactReference(
        id=str(uuid.uuid4()),
        source_handle=str(path.resolve()),
        captured_at=datetime.now(timezone.utc),
        reason=reason,
    )

    async def action(orchestrator: SyncOrchestrator):
        if now:
            return await orchestrator.processor.submit(artifact)
        return await orchestrator.processor.enqueue(artifact)

    result = asyncio.run(_with_orchestrator(action))

    if isinstance(result, QueueRecord):
        _output(
            {"status": "queued", "record_id": result.id},
            output_json,
            f"Queued {path.name} as {result.id}",
        )
        return

    _output(
        {
            "status": result.record.status.value,
            "record_id": result.record.id,
            "url": result.url,
            "error": result.error,
        },
        output_json,
        f"Uploaded: {result.url}" if result.success else f"{result.error} ({result.record.id})",
    )


@queue_app.command()
def process(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Run one processing pass now."""
    summary = asyncio.run(_with_orchestrator(lambda o: o.processor.process_once()))

    data = {
        "online": summary.online,
        "attempted": summary.attempted,
        "completed": summary.completed,
        "failed": summary.failed,
        "deferred": summary.deferred,
    }
    if not summary.online:
        message = "Offline - nothing attempted"
    else:
        message = (
            f"Attempted {summary.attempted}: {summary.completed} completed, "
            f"{summary.failed} failed, {summary.deferred} waiting for backoff"
        )
    _output(data, output_json, message)


@queue_app.command()
def retry(
    record_id: str = typer.Argument(..., help="Queue record ID"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Reset a failed record and upload it immediately."""
    try:
        result = asyncio.run(_with_orchestrator(lambda o: o.processor.retry(record_id)))
    except RecordStateError as e:
        _output({"status": "error", "message": str(e)}, output_json, str(e))
        raise typer.Exit(1)

    if result is None:
        _output(
            {"status": "error", "message": "Record not found"},
            output_json,
            f"Record not found: {record_id}",
        )
        raise typer.Exit(1)

    _output(
        {
            "status": result.record.status.value,
            "record_id": record_id,
            "url": result.url,
            "error": result.error,
        },
        output_json,
        f"Uploaded: {result.url}" if result.success else result.error,
    )


@queue_app.command()
def cancel(
    record_id: str = typer.Argument(..., help="Queue record ID"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Cancel a record that has not been uploaded yet."""
    try:
        found = asyncio.run(_with_orchestrator(lambda o: o.processor.cancel(record_id)))
    except RecordStateError as e:
        _output({"status": "error", "message": str(e)}, output_json, str(e))
        raise typer.Exit(1)

    if not found:
        _output(
            {"status": "error", "message": "Record not found"},
            output_json,
            f"Record not found: {record_id}",
        )
        raise typer.Exit(1)

    _output({"status": "cancelled", "record_id": record_id}, output_json, f"Cancelled {record_id}")


@queue_app.command()
def clear(
    completed: bool = typer.Option(False, "--completed", help="Remove completed records"),
    failed: bool = typer.Option(False, "--failed", help="Remove terminally failed records"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Remove completed and/or terminally failed records."""
    if not completed and not failed:
        _output(
            {"status": "error", "message": "Pass --completed and/or --failed"},
            output_json,
            "Nothing to clear: pass --completed and/or --failed",
        )
        raise typer.Exit(1)

    async def action(orchestrator: SyncOrchestrator) -> dict[str, int]:
        removed = {}
        if completed:
            removed["completed"] = await orchestrator.processor.clear_completed()
        if failed:
            removed["failed"] = await orchestrator.processor.clear_failed()
        return removed

    removed = asyncio.run(_with_orchestrator(action))
    message = ", ".join(f"{count} {kind}" for kind, count in removed.items())
    _output({"status": "cleared", "removed": removed}, output_json, f"Removed {message}")
