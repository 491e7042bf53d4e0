"""Map Substack source items onto the WXR item shape."""

from __future__ import annotations

import re
import zlib
from datetime import datetime, timezone

from dateutil.parser import isoparse

from substack_wxr.config import ConverterConfig
from substack_wxr.errors import SchemaError
from substack_wxr.models import PostMeta, SourceComment, SourceItem, WxrComment, WxrItem, WxrTerm

UNTITLED_PLACEHOLDER = "(untitled)"

_SUBSTACK_ID_RE = re.compile(r"^(?P<number>\d+)(?:\.(?P<slug>.+))?$")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_STRIP_RE.sub("-", value.lower()).strip("-")


def parse_source_date(raw: str | None, field: str) -> datetime | None:
    """Parse an ISO-8601 export date; naive values are taken as UTC."""

    if raw is None:
        return None
    try:
        parsed = isoparse(raw)
    except ValueError as exc:
        raise SchemaError(f"Unparseable {field} {raw!r}: {exc}") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _numeric_id(source_id: str) -> int:
    match = _SUBSTACK_ID_RE.match(source_id)
    if match:
        return int(match.group("number"))
    # Stable across runs so that a re-run of the same export keeps ids.
    return zlib.crc32(source_id.encode("utf-8", errors="surrogatepass")) or 1


def _post_name(item: SourceItem) -> str | None:
    match = _SUBSTACK_ID_RE.match(item.source_id)
    if match and match.group("slug"):
        return slugify(match.group("slug")) or None
    if item.title:
        return slugify(item.title) or None
    return None


def _map_comments(comments: tuple[SourceComment, ...]) -> list[WxrComment]:
    ids: dict[str, int] = {}
    for index, comment in enumerate(comments, start=1):
        ids[comment.comment_id] = int(comment.comment_id) if comment.comment_id.isdecimal() else index

    mapped: list[WxrComment] = []
    for comment in comments:
        mapped.append(
            WxrComment(
                comment_id=ids[comment.comment_id],
                author=comment.author,
                author_email=comment.author_email,
                author_url=comment.author_url,
                date=parse_source_date(comment.published_at, "comment date"),
                content=comment.body,
                approved="1" if comment.approved else "0",
                parent=ids.get(comment.parent_id, 0) if comment.parent_id else 0,
            )
        )
    return mapped


def _postmeta(item: SourceItem) -> list[PostMeta]:
    meta = [PostMeta(key="_substack_post_id", value=item.source_id)]
    if item.post_type:
        meta.append(PostMeta(key="_substack_post_type", value=item.post_type))
    if item.audience:
        meta.append(PostMeta(key="_substack_audience", value=item.audience))
    email_sent_at = parse_source_date(item.email_sent_at, "email_sent_at")
    if email_sent_at is not None:
        meta.append(PostMeta(key="_substack_email_sent_at", value=email_sent_at.isoformat()))
    if item.podcast_url:
        meta.append(PostMeta(key="_substack_podcast_url", value=item.podcast_url))
    for url in item.attachments:
        meta.append(PostMeta(key="_substack_attachment", value=url))
    return meta


def map_source_item(item: SourceItem, config: ConverterConfig, *, site_url: str | None = None) -> WxrItem:
    """Build the WXR item for one source item, raising SchemaError if it is unusable."""

    source_id = item.source_id.strip()
    if not source_id:
        raise SchemaError("Source item has no post id")

    post_name = _post_name(item)
    link = f"{site_url.rstrip('/')}/p/{post_name}" if site_url and post_name else None

    return WxrItem(
        post_id=_numeric_id(source_id),
        title=item.title or UNTITLED_PLACEHOLDER,
        status="publish" if item.is_published else "draft",
        guid=link or f"substack:{source_id}",
        link=link,
        creator=item.author or config.author_login,
        content=item.body_html,
        excerpt=item.subtitle,
        post_date=parse_source_date(item.published_at, "post_date"),
        post_name=post_name,
        comment_status=config.default_comment_status.value,
        terms=[WxrTerm(domain="post_tag", nicename=slugify(tag), name=tag) for tag in item.tags if tag.strip()],
        postmeta=_postmeta(item),
        comments=_map_comments(item.comments),
    )
