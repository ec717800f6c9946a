"""CLI entrypoint for the drainer checkpoint store."""

from __future__ import annotations

import logging

import typer
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .checkpoint.store import FlashCheckpoint, open_checkpoint
from .config import get_settings
from .db.models import checkpoint_table
from .db.session import create_engine_from_settings, ensure_schema
from .errors import BackendError, CheckpointError
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Drainer checkpoint command line interface")


def open_with_retry(attempts: int) -> FlashCheckpoint:
    """Open the store, retrying while the backend is unreachable."""

    settings = get_settings()
    for attempt in Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, max=10),
        retry=retry_if_exception_type(BackendError),
        reraise=True,
    ):
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.warning("Retrying backend connection (attempt %s)", attempt.retry_state.attempt_number)
            return open_checkpoint(settings)
    raise BackendError("backend unreachable")


@app.command()
def show_config() -> None:
    """Print the active configuration."""

    settings = get_settings()
    typer.echo(settings.model_dump_json(indent=2, exclude={"password"}))


@app.command()
def init_schema() -> None:
    """Create the checkpoint schema and table if missing."""

    settings = get_settings()
    configure_logging(settings)
    table = checkpoint_table(settings.schema_name, settings.table_name)
    try:
        engine = create_engine_from_settings(settings)
    except CheckpointError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    try:
        ensure_schema(engine, table)
    except CheckpointError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        engine.dispose()
    typer.echo(f"Checkpoint table {table.fullname} is ready")


@app.command()
def show(retries: int = typer.Option(1, min=1, help="Connection attempts before giving up")) -> None:
    """Load and print the stored checkpoint for the configured cluster."""

    settings = get_settings()
    configure_logging(settings)
    try:
        checkpoint = open_with_retry(retries)
    except CheckpointError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    try:
        typer.echo(str(checkpoint))
    finally:
        checkpoint.engine.dispose()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8250, help="Bind port"),
    retries: int = typer.Option(5, min=1, help="Connection attempts before giving up"),
) -> None:
    """Serve the checkpoint diagnostics API."""

    import uvicorn

    from .main import create_app

    settings = get_settings()
    configure_logging(settings)
    try:
        checkpoint = open_with_retry(retries)
    except CheckpointError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    uvicorn.run(create_app(checkpoint, settings), host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
