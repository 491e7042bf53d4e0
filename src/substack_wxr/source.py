"""Substack export ingestion with offset-based access."""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import Protocol, Sequence

from substack_wxr.models import SourceItem

logger = logging.getLogger(__name__)

POSTS_CSV = "posts.csv"
POSTS_DIR = "posts"

_TRUE_VALUES = {"true", "t", "1", "yes"}


class SourceCollection(Protocol):
    """Ordered source items with a stable total, readable by offset."""

    def count(self) -> int | None: ...

    def read(self, offset: int, limit: int) -> Sequence[SourceItem]: ...


class ListSource:
    """In-memory source collection."""

    def __init__(self, items: Sequence[SourceItem]) -> None:
        self._items = list(items)

    def count(self) -> int | None:
        return len(self._items)

    def read(self, offset: int, limit: int) -> Sequence[SourceItem]:
        return self._items[offset : offset + limit]


def _decode(data: bytes, name: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("%s is not valid UTF-8 (%s at byte %d); replacing undecodable bytes", name, exc.reason, exc.start)
        return data.decode("utf-8", errors="replace")


class _Archive(Protocol):
    def read_text(self, name: str) -> str | None: ...


class _DirectoryArchive:
    def __init__(self, root: Path) -> None:
        self._root = root

    def read_text(self, name: str) -> str | None:
        path = self._root / name
        if not path.is_file():
            return None
        return _decode(path.read_bytes(), name)


class _ZipArchive:
    def __init__(self, path: Path, prefix: str) -> None:
        self._path = path
        self._prefix = prefix

    def read_text(self, name: str) -> str | None:
        member = f"{self._prefix}{name}"
        with zipfile.ZipFile(self._path) as archive:
            try:
                data = archive.read(member)
            except KeyError:
                return None
        return _decode(data, member)


def _zip_prefix(path: Path) -> str:
    with zipfile.ZipFile(path) as archive:
        candidates = sorted(
            (name for name in archive.namelist() if PurePosixPath(name).name == POSTS_CSV),
            key=len,
        )
    if not candidates:
        raise ValueError(f"No {POSTS_CSV} found in export archive: {path}")

    parent = str(PurePosixPath(candidates[0]).parent)
    return "" if parent == "." else f"{parent}/"


def _open_archive(path: Path) -> _Archive:
    if path.is_dir():
        return _DirectoryArchive(path)
    if path.is_file() and zipfile.is_zipfile(path):
        return _ZipArchive(path, _zip_prefix(path))
    raise ValueError(f"Export not found or not a directory/zip: {path}")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_bool(value: str | None, default: bool) -> bool:
    cleaned = _clean(value)
    if cleaned is None:
        return default
    return cleaned.lower() in _TRUE_VALUES


class SubstackExport:
    """Posts listed in a Substack export's posts.csv.

    Post bodies live in `posts/<post_id>.html` and are only read when the
    item is requested.
    """

    def __init__(self, rows: Sequence[dict[str, str]], archive: _Archive, *, author: str | None = None) -> None:
        self._rows = list(rows)
        self._archive = archive
        self._author = author

    @classmethod
    def from_path(cls, path: Path, *, author: str | None = None) -> "SubstackExport":
        """Load the post index from an export directory or zip file."""

        archive = _open_archive(path)
        raw_csv = archive.read_text(POSTS_CSV)
        if raw_csv is None:
            raise ValueError(f"No {POSTS_CSV} found in export: {path}")

        rows = list(csv.DictReader(io.StringIO(raw_csv)))
        logger.info("Loaded %d post(s) from %s", len(rows), path)
        return cls(rows, archive, author=author)

    def count(self) -> int | None:
        return len(self._rows)

    def read(self, offset: int, limit: int) -> Sequence[SourceItem]:
        return [self._to_item(row) for row in self._rows[offset : offset + limit]]

    def _to_item(self, row: dict[str, str]) -> SourceItem:
        source_id = (row.get("post_id") or "").strip()
        body_html = self._archive.read_text(f"{POSTS_DIR}/{source_id}.html") if source_id else None
        if source_id and body_html is None:
            logger.debug("No body file for post %s", source_id)

        return SourceItem(
            source_id=source_id,
            title=_clean(row.get("title")),
            subtitle=_clean(row.get("subtitle")),
            body_html=body_html,
            published_at=_clean(row.get("post_date")),
            email_sent_at=_clean(row.get("email_sent_at")),
            author=self._author,
            is_published=_parse_bool(row.get("is_published"), default=True),
            post_type=_clean(row.get("type")) or "newsletter",
            audience=_clean(row.get("audience")),
            podcast_url=_clean(row.get("podcast_url")),
        )
