"""Typer CLI entrypoint for substack-wxr."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from pydantic import ValidationError

from substack_wxr.config import ConverterConfig, PollConfig, ResumeMode
from substack_wxr.models import ChannelMetadata, JobStatus, ProgressSnapshot, WxrAuthor
from substack_wxr.pipeline import convert_export
from substack_wxr.poller import progress_percent
from substack_wxr.store import JsonFileJobStore

logger = logging.getLogger(__name__)

app = typer.Typer(help="Convert a Substack export into a WordPress WXR file.", no_args_is_help=True)


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for a conversion run."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(message)s")


def _echo_progress(snapshot: ProgressSnapshot) -> None:
    typer.echo(f"{snapshot.processed}/{snapshot.total} ({progress_percent(snapshot):.0f}%) {snapshot.status.value}")


@app.callback()
def main() -> None:
    """substack-wxr command group."""


@app.command()
def convert(
    export: Path = typer.Argument(..., exists=True, readable=True),
    output: Path = typer.Option(..., dir_okay=False),
    site_title: str = typer.Option(...),
    site_url: str = typer.Option(...),
    site_description: str = typer.Option(""),
    author: str = typer.Option("admin"),
    author_email: str = typer.Option(""),
    batch_size: int = typer.Option(10, min=1, max=500),
    resume_mode: ResumeMode = typer.Option(ResumeMode.RESUME),
    state_dir: Path | None = typer.Option(None, file_okay=False),
    job_id: str | None = typer.Option(None),
    interval: float = typer.Option(0.0, min=0.0),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Convert EXPORT (directory or zip) into a WXR file, batch by batch."""

    setup_logging(verbose=verbose)

    try:
        config = ConverterConfig(batch_size=batch_size, resume_mode=resume_mode, author_login=author)
        poll_config = PollConfig(interval_seconds=interval, max_interval_seconds=max(interval * 8, 10.0))
        metadata = ChannelMetadata(
            title=site_title,
            link=site_url,
            description=site_description,
            authors=[WxrAuthor(author_id=1, login=author, email=author_email, display_name=author)],
        )
    except ValidationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    try:
        report = convert_export(
            export,
            output,
            metadata,
            config,
            poll_config=poll_config,
            state_dir=state_dir,
            job_id=job_id,
            on_progress=_echo_progress,
        )
    except Exception as exc:
        logger.exception("Conversion failed")
        typer.echo(f"Conversion failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"Job {report.job_id}: processed {report.total} post(s): "
        f"{report.succeeded} converted, {report.failed} skipped, status {report.status.value}."
    )
    if report.output is not None:
        typer.echo(f"Output: {report.output}")

    if report.failures:
        typer.echo("Failures:", err=True)
        for failure in report.failures:
            typer.echo(f"- {failure}", err=True)

    if report.status != JobStatus.DONE:
        raise typer.Exit(code=1)


@app.command()
def status(
    state_dir: Path = typer.Option(..., exists=True, file_okay=False),
    job_id: str = typer.Option(...),
) -> None:
    """Print the persisted progress of a job."""

    try:
        job = JsonFileJobStore(state_dir).load(job_id)
    except Exception as exc:
        typer.echo(f"Cannot read job: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if job is None:
        typer.echo(f"Unknown job: {job_id}", err=True)
        raise typer.Exit(code=1)

    _echo_progress(job.snapshot())
    if job.error:
        typer.echo(f"Error: {job.error}", err=True)
