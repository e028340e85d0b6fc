"""Evidence Sync CLI - operator interface for the evidence upload queue."""

import typer

from evidence_sync import __version__
from evidence_sync.cli_commands import queue_app, run_command, status_command

app = typer.Typer(
    name="evidence-sync",
    help="Evidence Sync - durable upload queue for anti-theft evidence photos.",
    no_args_is_help=True,
)

app.add_typer(queue_app, name="queue")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"evidence-sync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Evidence Sync - durable upload queue for anti-theft evidence photos."""
    pass


app.command(name="status")(status_command)
app.command(name="run")(run_command)


if __name__ == "__main__":
    app()
