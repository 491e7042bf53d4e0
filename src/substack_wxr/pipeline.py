"""Main conversion orchestration for substack-wxr."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from substack_wxr.config import ConverterConfig, PollConfig
from substack_wxr.converter import Converter
from substack_wxr.models import ChannelMetadata, ConversionReport, JobStatus, ProgressSnapshot
from substack_wxr.poller import ProgressPoller
from substack_wxr.source import SubstackExport
from substack_wxr.store import JobStore, JsonFileJobStore, MemoryJobStore

logger = logging.getLogger(__name__)

OUTPUT_SUFFIXES = (".xml", ".wxr")


def _job_store(state_dir: Path | None) -> JobStore:
    if state_dir is None:
        return MemoryJobStore()
    return JsonFileJobStore(state_dir)


def _normalize_output(output: Path) -> Path:
    return output if output.suffix.lower() in OUTPUT_SUFFIXES else output.with_suffix(".xml")


def convert_export(
    export_path: Path,
    output: Path,
    metadata: ChannelMetadata,
    config: ConverterConfig,
    *,
    poll_config: PollConfig | None = None,
    state_dir: Path | None = None,
    job_id: str | None = None,
    on_progress: Callable[[ProgressSnapshot], None] | None = None,
) -> ConversionReport:
    """Convert a Substack export into a WXR file, resuming `job_id` when it exists."""

    source = SubstackExport.from_path(export_path, author=metadata.authors[0].login if metadata.authors else None)
    output = _normalize_output(output)
    store = _job_store(state_dir)
    converter = Converter(source, output, metadata, store=store, config=config)

    job = store.load(job_id) if job_id else None
    if job is None:
        job = converter.start(job_id)
    else:
        logger.info("Resuming job %s at %d/%d", job.job_id, job.cursor, job.total or 0)

    if job.status != JobStatus.FAILED:
        poller = ProgressPoller(lambda: converter.advance(job.job_id), poll_config)
        poller.run(on_progress)

    final = converter.job(job.job_id)
    failures = [
        f"#{failure.position} {failure.source_id or '?'}: {failure.reason}" for failure in final.failures
    ]
    if final.error:
        failures.append(final.error)

    return ConversionReport(
        job_id=final.job_id,
        status=final.status,
        total=final.total or 0,
        succeeded=len(final.emitted_ids),
        failed=len(final.failures),
        output=output,
        failures=failures,
    )
