"""Configuration models and enums for substack-wxr."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ResumeMode(str, Enum):
    """What a converter does with a job it finds half-done from another process.

    RESUME truncates the output to the last committed batch and continues.
    RESTART discards the partial output and runs the job again from item 0.
    This is the one case where `processed` goes down: a poller that was
    already watching the job sees it drop back to the first batch.
    """

    RESUME = "resume"
    RESTART = "restart"


class CommentStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ConverterConfig(BaseModel):
    """Settings for batch conversion."""

    batch_size: int = Field(default=10, ge=1, le=500)
    resume_mode: ResumeMode = ResumeMode.RESUME
    author_login: str = Field(default="admin", min_length=1)
    default_comment_status: CommentStatus = CommentStatus.OPEN


class PollConfig(BaseModel):
    """Pacing for the progress poller."""

    interval_seconds: float = Field(default=0.5, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_interval_seconds: float = Field(default=10.0, ge=0)
    max_polls: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_interval_relationship(self) -> "PollConfig":
        if self.max_interval_seconds < self.interval_seconds:
            raise ValueError("max_interval_seconds should be >= interval_seconds")
        return self
