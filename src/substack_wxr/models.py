"""Domain models used by substack-wxr."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class SourceComment(BaseModel):
    """A reader comment attached to a Substack post."""

    model_config = ConfigDict(frozen=True)

    comment_id: str
    author: str = ""
    author_email: str = ""
    author_url: str = ""
    body: str = ""
    published_at: str | None = None
    parent_id: str | None = None
    approved: bool = True


class SourceItem(BaseModel):
    """One post read from a Substack export. Dates are kept as raw strings."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    title: str | None = None
    subtitle: str | None = None
    body_html: str | None = None
    published_at: str | None = None
    email_sent_at: str | None = None
    author: str | None = None
    is_published: bool = True
    post_type: str = "newsletter"
    audience: str | None = None
    podcast_url: str | None = None
    tags: tuple[str, ...] = ()
    attachments: tuple[str, ...] = ()
    comments: tuple[SourceComment, ...] = ()


class PostMeta(BaseModel):
    key: str
    value: str


class WxrTerm(BaseModel):
    """A category or tag assignment on an item."""

    domain: str
    nicename: str
    name: str


class WxrComment(BaseModel):
    comment_id: int
    author: str = ""
    author_email: str = ""
    author_url: str = ""
    date: datetime | None = None
    content: str = ""
    approved: str = "1"
    parent: int = 0
    comment_type: str = ""


class WxrItem(BaseModel):
    """Target-schema form of one source item.

    `post_id`, `title` and `status` are optional here so that a missing value
    surfaces as a SchemaError from the generator instead of a validation error.
    """

    post_id: int | None = None
    title: str | None = None
    status: str | None = None
    guid: str | None = None
    link: str | None = None
    creator: str | None = None
    description: str | None = None
    content: str | None = None
    excerpt: str | None = None
    post_date: datetime | None = None
    post_name: str | None = None
    post_type: str = "post"
    comment_status: str = "open"
    ping_status: str = "closed"
    post_parent: int = 0
    menu_order: int = 0
    post_password: str = ""
    is_sticky: bool = False
    terms: list[WxrTerm] = Field(default_factory=list)
    postmeta: list[PostMeta] = Field(default_factory=list)
    comments: list[WxrComment] = Field(default_factory=list)


class WxrAuthor(BaseModel):
    author_id: int
    login: str
    email: str = ""
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""


class ChannelMetadata(BaseModel):
    """Site-level fields written once at the top of the WXR channel."""

    title: str
    link: str
    description: str = ""
    language: str = "en-US"
    base_site_url: str | None = None
    base_blog_url: str | None = None
    pub_date: datetime | None = None
    generator: str = "substack-wxr"
    authors: list[WxrAuthor] = Field(default_factory=list)


class JobStatus(str, Enum):
    CREATED = "created"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SnapshotStatus(str, Enum):
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


_TERMINAL_STATUSES = {JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELLED}


class ItemFailure(BaseModel):
    """A source item that was skipped during conversion."""

    position: int
    source_id: str | None = None
    reason: str


class ProgressSnapshot(BaseModel):
    """The part of a job a polling caller gets to see."""

    processed: int
    total: int
    status: SnapshotStatus
    failed_items: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversionJob(BaseModel):
    """Persisted state of one conversion run."""

    job_id: str
    status: JobStatus = JobStatus.CREATED
    cursor: int = 0
    total: int | None = None
    output_offset: int | None = None
    channel_open: bool = False
    emitted_ids: list[str] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
    error: str | None = None
    failed_position: int | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_STATUSES

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def snapshot(self) -> ProgressSnapshot:
        if self.status == JobStatus.DONE:
            status = SnapshotStatus.DONE
        elif self.status in {JobStatus.FAILED, JobStatus.CANCELLED}:
            status = SnapshotStatus.FAILED
        else:
            status = SnapshotStatus.PROCESSING

        return ProgressSnapshot(
            processed=self.cursor,
            total=self.total or 0,
            status=status,
            failed_items=len(self.failures),
        )


class ConversionReport(BaseModel):
    """Final conversion summary returned by convert_export."""

    job_id: str
    status: JobStatus
    total: int
    succeeded: int
    failed: int
    output: Path | None = None
    failures: list[str] = Field(default_factory=list)
