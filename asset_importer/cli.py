"""
Command-line interface for the asset importer.

``run`` imports a JSON list of media descriptors batch by batch and keeps the
output file as a checkpoint; ``summary`` reports on an existing result file.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer

from asset_importer.config import settings
from asset_importer.pipeline.checkpoint import CheckpointWriter, load_checkpoint, load_descriptors
from asset_importer.pipeline.importer import BatchImporter, ImportOptions
from asset_importer.pipeline.observers import LoggingObserver
from asset_importer.pipeline.results import summarize
from asset_importer.providers.factory import get_asset_provider
from asset_importer.utils.logging import configure_json_logging

app = typer.Typer(help="Register media URLs as remote assets in checkpointed batches")


def _fail(message: str, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({"status": "error", "error": message}))
    else:
        typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


@app.command("run")
def run_import(
    input_path: Path = typer.Argument(
        None, help="JSON array of {url, ...} objects (default: INPUT_PATH or output.json)"
    ),
    output: Path = typer.Option(None, "--output", "-o", help="Result/checkpoint file"),
    batch_size: int = typer.Option(None, "--batch-size", "-b", min=1, help="Items per batch"),
    provider: str = typer.Option(None, "--provider", help="livepeer or simulated"),
    poll_timeout: float = typer.Option(
        None, "--poll-timeout", help="Give up on an asset after this many seconds"
    ),
    resume: bool = typer.Option(
        False, "--resume", help="Skip items already recorded in the output file"
    ),
    isolate_failures: bool = typer.Option(
        False, "--isolate-failures", help="Record per-item API errors instead of aborting"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output summary in JSON format"),
):
    """
    Import every descriptor of INPUT_PATH and write results after each batch.
    """
    configure_json_logging(settings.log_level, stream=sys.stderr)

    input_path = input_path or Path(settings.input_path)
    output = output or Path(settings.output_path)

    try:
        descriptors = load_descriptors(input_path)
        existing = load_checkpoint(output) if resume and output.exists() else []
        options = ImportOptions.from_settings(
            batch_size=batch_size,
            poll_timeout=poll_timeout,
            isolate_failures=isolate_failures,
        )
        importer = BatchImporter(
            provider=get_asset_provider(provider),
            writer=CheckpointWriter(output),
            options=options,
            observer=LoggingObserver(),
        )
        results = asyncio.run(importer.run(descriptors, existing))
    except Exception as e:
        _fail(str(e) or e.__class__.__name__, json_output)

    summary = summarize(results)
    if json_output:
        typer.echo(json.dumps({"status": "ok", "output": str(output), **summary.as_dict()}))
    else:
        typer.echo(
            f"Imported {summary.total} videos: {summary.succeeded} ready, "
            f"{summary.failed} failed -> {output}"
        )


@app.command("summary")
def show_summary(
    checkpoint: Path = typer.Argument(..., help="Result file written by 'run'"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """
    Count successes and failures in a result file.
    """
    try:
        results = load_checkpoint(checkpoint)
    except Exception as e:
        _fail(str(e) or e.__class__.__name__, json_output)

    summary = summarize(results)
    if json_output:
        typer.echo(json.dumps(summary.as_dict()))
        return
    typer.echo(f"Total:     {summary.total}")
    typer.echo(f"Succeeded: {summary.succeeded}")
    typer.echo(f"Failed:    {summary.failed}")
    for result in results:
        if not result.success:
            typer.echo(f"  {result.assetId or '-'} {result.source.url}: {result.errorMessage or 'none'}")


if __name__ == "__main__":
    app()
