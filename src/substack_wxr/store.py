"""Persistence for conversion job state."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from substack_wxr.errors import InvalidStateError, IOStateError
from substack_wxr.models import ConversionJob

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class JobStore(Protocol):
    """Where a converter keeps job state between advance calls."""

    def load(self, job_id: str) -> ConversionJob | None:
        """Return a copy of the stored job, or None if the id is unknown."""
        ...

    def save(self, job: ConversionJob) -> None:
        """Persist the job, replacing any earlier state for the same id."""
        ...


class MemoryJobStore:
    """Keeps jobs for the lifetime of the process."""

    def __init__(self) -> None:
        self._jobs: dict[str, ConversionJob] = {}

    def load(self, job_id: str) -> ConversionJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def save(self, job: ConversionJob) -> None:
        self._jobs[job.job_id] = job.model_copy(deep=True)


class JsonFileJobStore:
    """One JSON document per job in a directory, replaced atomically on save."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, job_id: str) -> Path:
        if not _JOB_ID_RE.match(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self.directory / f"{job_id}.json"

    def load(self, job_id: str) -> ConversionJob | None:
        path = self._path(job_id)
        if not path.exists():
            return None
        try:
            return ConversionJob.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise InvalidStateError(f"Corrupted job state in {path}: {exc}") from exc

    def save(self, job: ConversionJob) -> None:
        path = self._path(job.job_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(job.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise IOStateError(f"Cannot persist job {job.job_id} to {path}: {exc}") from exc
        logger.debug("Saved job %s (cursor=%d, status=%s)", job.job_id, job.cursor, job.status.value)
