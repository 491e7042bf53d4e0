"""Batch conversion state machine: Created -> Processing -> Done | Failed | Cancelled."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from substack_wxr.config import ConverterConfig, ResumeMode
from substack_wxr.document import DocumentBuilder
from substack_wxr.errors import (
    BusyError,
    InvalidStateError,
    IOStateError,
    JobNotFoundError,
    SchemaError,
    StructuralError,
)
from substack_wxr.mapping import map_source_item
from substack_wxr.models import (
    ChannelMetadata,
    ConversionJob,
    ItemFailure,
    JobStatus,
    ProgressSnapshot,
    SnapshotStatus,
    SourceItem,
)
from substack_wxr.source import SourceCollection
from substack_wxr.store import JobStore, MemoryJobStore
from substack_wxr.writer import OutputTarget, Writer, open_writer
from substack_wxr.wxr import CHANNEL_PATH, WxrGenerator

logger = logging.getLogger(__name__)

_FATAL_ERRORS = (IOStateError, StructuralError, InvalidStateError, OSError)


def _corruption_reason(job: ConversionJob) -> str | None:
    if job.total is None:
        return "total item count is unknown"
    if job.cursor < 0 or job.cursor > job.total:
        return f"cursor {job.cursor} is outside 0..{job.total}"
    if len(job.emitted_ids) + len(job.failures) != job.cursor:
        return (
            f"{len(job.emitted_ids)} emitted + {len(job.failures)} failed items "
            f"do not add up to cursor {job.cursor}"
        )
    if job.cursor > 0 and job.output_offset is None:
        return "items were processed but no output offset was committed"
    return None


class Converter:
    """Converts a source collection into one WXR document, one batch per advance call.

    Each `advance` opens the output, truncates it back to the offset committed
    by the previous batch, appends the next batch, and persists the new
    `(cursor, total, status)` before returning. Output is only ever appended
    after the committed offset, so an interrupted batch is discarded and
    re-emitted rather than duplicated.

    A second `advance` or `cancel` on a job that already has one in flight is
    rejected with BusyError.
    """

    def __init__(
        self,
        source: SourceCollection,
        output: OutputTarget,
        metadata: ChannelMetadata,
        *,
        store: JobStore | None = None,
        config: ConverterConfig | None = None,
    ) -> None:
        self._source = source
        self._output = output
        self._metadata = metadata
        self._store = store if store is not None else MemoryJobStore()
        self._config = config or ConverterConfig()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._attached: set[str] = set()

    @property
    def config(self) -> ConverterConfig:
        return self._config

    def start(self, job_id: str | None = None) -> ConversionJob:
        """Create and persist a new job positioned before the first item."""

        job_id = job_id or uuid.uuid4().hex
        if self._store.load(job_id) is not None:
            raise InvalidStateError(f"Job {job_id} already exists")

        total = self._source.count()
        job = ConversionJob(job_id=job_id, total=total)
        if total is None or total < 0:
            job.status = JobStatus.FAILED
            job.error = "Source item count is unknown"
            logger.error("Job %s failed at creation: %s", job_id, job.error)
        else:
            logger.info("Created job %s for %d item(s)", job_id, total)

        self._store.save(job)
        self._attached.add(job_id)
        return job

    def job(self, job_id: str) -> ConversionJob:
        return self._load(job_id)

    def snapshot(self, job_id: str) -> ProgressSnapshot:
        return self._load(job_id).snapshot()

    def advance(self, job_id: str, batch_size: int | None = None) -> ProgressSnapshot:
        """Process the next batch of items and return the updated progress."""

        size = batch_size if batch_size is not None else self._config.batch_size
        if size < 1:
            raise ValueError("batch_size must be >= 1")

        with self._exclusive(job_id):
            job = self._load(job_id)
            if job.status == JobStatus.DONE:
                return job.snapshot()
            if job.is_terminal:
                raise InvalidStateError(f"Job {job_id} is {job.status.value}; cannot advance")

            reason = _corruption_reason(job)
            if reason is not None:
                self._fail(job_id, f"Corrupted job state: {reason}")
                raise InvalidStateError(f"Job {job_id} has corrupted state: {reason}")

            try:
                self._run_batch(job, size)
                job.touch()
                self._store.save(job)
            except _FATAL_ERRORS as exc:
                logger.error("Job %s failed at item %d: %s", job_id, job.cursor, exc)
                self._fail(job_id, str(exc))
                raise
            except Exception as exc:
                logger.exception("Job %s failed unexpectedly at item %d", job_id, job.cursor)
                self._fail(job_id, f"{type(exc).__name__}: {exc}")
                raise

            self._attached.add(job_id)
            snapshot = job.snapshot()
            logger.info(
                "Job %s: %d/%d processed (%d failed), status %s",
                job_id,
                snapshot.processed,
                snapshot.total,
                snapshot.failed_items,
                job.status.value,
            )
            return snapshot

    def cancel(self, job_id: str) -> ProgressSnapshot:
        """Move a created or processing job to the cancelled terminal state.

        No output handle outlives an advance call, so there is nothing left
        open; the partial output stays as it was after the last batch.
        """

        with self._exclusive(job_id):
            job = self._load(job_id)
            if job.is_terminal:
                raise InvalidStateError(f"Job {job_id} is {job.status.value}; cannot cancel")

            job.status = JobStatus.CANCELLED
            job.error = "Cancelled"
            job.touch()
            self._store.save(job)
            logger.info("Job %s cancelled at %d/%d", job_id, job.cursor, job.total or 0)
            return job.snapshot()

    def _load(self, job_id: str) -> ConversionJob:
        job = self._store.load(job_id)
        if job is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return job

    @contextmanager
    def _exclusive(self, job_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(job_id, threading.Lock())
        if not lock.acquire(blocking=False):
            raise BusyError(f"Job {job_id} already has a batch in flight")
        try:
            yield
        finally:
            lock.release()

    def _fail(self, job_id: str, reason: str) -> None:
        # Reload so the failed job keeps the last committed cursor and offset.
        job = self._store.load(job_id)
        if job is None:
            return
        job.failed_position = job.cursor
        job.status = JobStatus.FAILED
        job.error = reason
        job.touch()
        try:
            self._store.save(job)
        except IOStateError:
            logger.exception("Could not persist failure of job %s", job_id)

    def _should_restart(self, job: ConversionJob) -> bool:
        return (
            self._config.resume_mode == ResumeMode.RESTART
            and job.job_id not in self._attached
            and job.cursor > 0
        )

    def _run_batch(self, job: ConversionJob, size: int) -> None:
        assert job.total is not None

        with open_writer(self._output) as writer:
            if self._should_restart(job):
                logger.info("Restarting job %s from the first item (was at %d)", job.job_id, job.cursor)
                job.cursor = 0
                job.output_offset = None
                job.channel_open = False
                job.emitted_ids = []
                job.failures = []

            writer.truncate(job.output_offset or 0)
            generator = self._open_generator(job, writer)

            limit = min(size, job.total - job.cursor)
            items = list(self._source.read(job.cursor, limit)) if limit else []
            if len(items) != limit:
                raise InvalidStateError(
                    f"Source returned {len(items)} item(s) at offset {job.cursor}, expected {limit}"
                )

            emitted = set(job.emitted_ids)
            for item in items:
                self._convert_item(job, generator, item, emitted)
                job.cursor += 1

            if job.cursor == job.total:
                generator.end_channel()
                job.channel_open = False
                job.status = JobStatus.DONE

            job.output_offset = writer.tell()

    def _open_generator(self, job: ConversionJob, writer: Writer) -> WxrGenerator:
        if job.channel_open:
            generator = WxrGenerator(DocumentBuilder(writer, open_elements=CHANNEL_PATH))
            generator.resume()
        else:
            generator = WxrGenerator(DocumentBuilder(writer))
            generator.begin_channel(self._metadata)
            job.channel_open = True
        job.status = JobStatus.PROCESSING
        return generator

    def _convert_item(
        self,
        job: ConversionJob,
        generator: WxrGenerator,
        item: SourceItem,
        emitted: set[str],
    ) -> None:
        source_id = item.source_id.strip()
        try:
            wxr_item = map_source_item(item, self._config, site_url=self._metadata.link)
            if source_id in emitted:
                raise SchemaError(f"Duplicate source id {source_id}")
            generator.write_item(wxr_item)
        except SchemaError as exc:
            job.failures.append(ItemFailure(position=job.cursor, source_id=source_id or None, reason=str(exc)))
            logger.warning("Job %s: skipped item %d (%s): %s", job.job_id, job.cursor, source_id or "?", exc)
            return

        emitted.add(source_id)
        job.emitted_ids.append(source_id)


def progress_endpoint(converter: Converter, job_id: str, batch_size: int | None = None) -> dict[str, Any]:
    """Advance a job by one batch and return the JSON body a polling client expects.

    A concurrent request that finds the job busy gets the current snapshot
    reported as still processing, so the client simply polls again. A job
    that has failed or been cancelled is reported as `failed` instead of
    raising. Unknown job ids still raise JobNotFoundError.
    """

    try:
        snapshot = converter.advance(job_id, batch_size)
    except BusyError:
        current = converter.snapshot(job_id)
        snapshot = current.model_copy(update={"status": SnapshotStatus.PROCESSING})
    except JobNotFoundError:
        raise
    except Exception:
        snapshot = converter.snapshot(job_id)
        if snapshot.status != SnapshotStatus.FAILED:
            raise
    return snapshot.model_dump(mode="json")
