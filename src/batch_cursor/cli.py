"""Command line interface for batch cursor jobs."""
import logging
from pathlib import Path
from typing import Optional

import typer

from .checkpoint import CheckpointCodec
from .checkpoint_store_factory import create_checkpoint_store
from .config import ConfigLoader
from .errors import CheckpointCorruptError, ConfigurationError, TransientFetchError
from .pipeline import run_job
from .run_context import RunContext
from .sqlite_source import SQLiteRecordSource
from .state_inspect import format_checkpoints

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="Checkpointed reverse-chronological batch reader")
checkpoint_app = typer.Typer(help="Checkpoint commands")
app.add_typer(checkpoint_app, name="checkpoint")
records_app = typer.Typer(help="Record source commands")
app.add_typer(records_app, name="records")


def _codec(config_path: Optional[str]) -> CheckpointCodec:
    if config_path is None and not Path("config/batch_cursor.yaml").exists():
        return CheckpointCodec()
    settings = ConfigLoader(config_path).model.reader
    return CheckpointCodec(
        prefix=settings.checkpoint_prefix,
        tolerate_corrupt=settings.tolerate_corrupt_checkpoint,
    )


@app.command()
def run(
    job: str = typer.Argument(..., help="Job name from the configuration file"),
    max_batches: Optional[int] = typer.Option(None, "--max-batches", min=1),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    output: str = typer.Option("data/batches.jsonl", "--output"),
    config_path: Optional[str] = typer.Option(None, "--config"),
) -> None:
    """Read batches for JOB, checkpointing after each one."""
    try:
        config = ConfigLoader(config_path).model
        run_context = RunContext.create(job)
        logger.info("Starting run for job=%s run_id=%s", job, run_context.run_id)
        summary = run_job(
            config,
            job,
            batch_size=batch_size,
            max_batches=max_batches,
            output_path=output,
            run_context=run_context,
        )
    except (ConfigurationError, CheckpointCorruptError, FileNotFoundError, KeyError) as exc:
        typer.echo(f"Cannot run job {job}: {exc}", err=True)
        raise typer.Exit(code=2)
    except TransientFetchError as exc:
        typer.echo(f"Search failed (retryable, checkpoint kept): {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"Job {summary.job_key} run_id={summary.run_id} | batches={summary.batches} "
        f"pids={summary.pids} failed={len(summary.failed_pids)} "
        f"{'complete' if summary.completed else 'paused'}"
    )


@checkpoint_app.command("inspect")
def checkpoint_inspect(
    job: Optional[str] = typer.Option(None, "--job"),
    output_format: str = typer.Option("table", "--format", help="table or json"),
    config_path: Optional[str] = typer.Option(None, "--config"),
) -> None:
    """Show stored checkpoints without mutating anything."""
    store = create_checkpoint_store()
    keys = [job] if job else list(store.list_keys())
    entries = []
    for key in keys:
        context = store.load(key)
        if context is not None:
            entries.append((key, context))
    if not entries:
        typer.echo("No checkpoints found.")
        raise typer.Exit(code=0)
    try:
        rendered = format_checkpoints(entries, _codec(config_path), output_format=output_format)
    except CheckpointCorruptError as exc:
        typer.echo(f"Stored checkpoint is unreadable: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(rendered)


@checkpoint_app.command("reset")
def checkpoint_reset(
    job: str = typer.Argument(...),
    force: bool = typer.Option(False, "--force"),
) -> None:
    """Delete the stored checkpoint so JOB restarts from its start time."""
    store = create_checkpoint_store()
    if store.load(job) is None:
        typer.echo(f"No checkpoint stored for {job}.")
        raise typer.Exit(code=0)
    if not force:
        typer.confirm(f"Delete checkpoint for {job}?", abort=True)
    store.delete(job)
    typer.echo(f"Checkpoint for {job} deleted.")


@records_app.command("load")
def records_load(
    path: str = typer.Argument(..., help="JSON-lines file of records"),
    db_path: str = typer.Option("data/records.db", "--db-path"),
) -> None:
    """Load records into the SQLite record source."""
    if not Path(path).exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)
    try:
        loaded = SQLiteRecordSource(db_path).load_jsonl(path)
    except ConfigurationError as exc:
        typer.echo(f"Cannot load records from {path}: {exc}", err=True)
        raise typer.Exit(code=2)
    typer.echo(f"Loaded {loaded} records into {db_path}")


if __name__ == "__main__":
    app()
