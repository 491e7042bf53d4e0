"""WXR 1.2 generation on top of the document builder."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime

from substack_wxr.document import DocumentBuilder
from substack_wxr.errors import SchemaError, StructuralError
from substack_wxr.models import ChannelMetadata, WxrAuthor, WxrComment, WxrItem

WXR_VERSION = "1.2"

RSS_ATTRIBUTES = {
    "version": "2.0",
    "xmlns:excerpt": "http://wordpress.org/export/1.2/excerpt/",
    "xmlns:content": "http://purl.org/rss/1.0/modules/content/",
    "xmlns:wfw": "http://wellformedweb.org/CommentAPI/",
    "xmlns:dc": "http://purl.org/dc/elements/1.1/",
    "xmlns:wp": "http://wordpress.org/export/1.2/",
}

CHANNEL_PATH = ("rss", "channel")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_rss_date(value: datetime) -> str:
    """RFC 2822 date in UTC, e.g. `Tue, 04 May 2021 16:03:52 +0000`."""

    return format_datetime(_as_utc(value))


def format_wp_date(value: datetime) -> str:
    """WordPress `Y-m-d H:i:s` date in UTC."""

    return _as_utc(value).strftime("%Y-%m-%d %H:%M:%S")


class WxrGenerator:
    """Emit a WXR document one channel header, item, and footer at a time."""

    def __init__(self, builder: DocumentBuilder) -> None:
        self._builder = builder

    @property
    def channel_open(self) -> bool:
        return self._builder.open_elements == CHANNEL_PATH

    def begin_channel(self, metadata: ChannelMetadata) -> None:
        builder = self._builder
        if builder.depth:
            raise StructuralError("Channel can only be opened at the document root")

        builder.declaration()
        builder.start("rss", RSS_ATTRIBUTES)
        builder.start("channel")
        builder.leaf("title", metadata.title)
        builder.leaf("link", metadata.link)
        builder.leaf("description", metadata.description)
        if metadata.pub_date is not None:
            builder.leaf("pubDate", format_rss_date(metadata.pub_date))
        builder.leaf("language", metadata.language)
        builder.leaf("wp:wxr_version", WXR_VERSION)
        builder.leaf("wp:base_site_url", metadata.base_site_url or metadata.link)
        builder.leaf("wp:base_blog_url", metadata.base_blog_url or metadata.link)

        for author in metadata.authors:
            self._write_author(author)

        builder.leaf("generator", metadata.generator)

    def resume(self) -> None:
        """Check that the builder is positioned inside an already open channel."""

        if not self.channel_open:
            raise StructuralError(
                f"Cannot resume: expected open elements {CHANNEL_PATH}, got {self._builder.open_elements}"
            )

    def write_item(self, item: WxrItem) -> None:
        _validate_item(item)
        if not self.channel_open:
            raise StructuralError("Items must be written inside an open channel")

        with self._builder.element("item") as element:
            element.leaf("title", item.title)
            if item.link:
                element.leaf("link", item.link)
            if item.post_date is not None:
                element.leaf("pubDate", format_rss_date(item.post_date))
            if item.creator:
                element.leaf("dc:creator", item.creator, cdata=True)
            if item.guid:
                element.leaf("guid", item.guid, attributes={"isPermaLink": "false"})
            if item.description:
                element.leaf("description", item.description)
            element.leaf("content:encoded", item.content or "", cdata=True)
            element.leaf("excerpt:encoded", item.excerpt or "", cdata=True)
            element.leaf("wp:post_id", str(item.post_id))
            if item.post_date is not None:
                element.leaf("wp:post_date", format_wp_date(item.post_date), cdata=True)
                element.leaf("wp:post_date_gmt", format_wp_date(item.post_date), cdata=True)
            element.leaf("wp:comment_status", item.comment_status, cdata=True)
            element.leaf("wp:ping_status", item.ping_status, cdata=True)
            if item.post_name:
                element.leaf("wp:post_name", item.post_name, cdata=True)
            element.leaf("wp:status", item.status, cdata=True)
            element.leaf("wp:post_parent", str(item.post_parent))
            element.leaf("wp:menu_order", str(item.menu_order))
            element.leaf("wp:post_type", item.post_type, cdata=True)
            element.leaf("wp:post_password", item.post_password, cdata=True)
            element.leaf("wp:is_sticky", "1" if item.is_sticky else "0")

            for term in item.terms:
                element.leaf(
                    "category",
                    term.name,
                    cdata=True,
                    attributes={"domain": term.domain, "nicename": term.nicename},
                )

            for meta in item.postmeta:
                with element.element("wp:postmeta") as meta_element:
                    meta_element.leaf("wp:meta_key", meta.key, cdata=True)
                    meta_element.leaf("wp:meta_value", meta.value, cdata=True)

            for comment in item.comments:
                self._write_comment(comment)

    def end_channel(self) -> None:
        if not self.channel_open:
            raise StructuralError("No open channel to end")
        self._builder.close_element("channel")
        self._builder.close_element("rss")
        self._builder.finalize()

    def _write_author(self, author: WxrAuthor) -> None:
        with self._builder.element("wp:author") as element:
            element.leaf("wp:author_id", str(author.author_id))
            element.leaf("wp:author_login", author.login, cdata=True)
            element.leaf("wp:author_email", author.email, cdata=True)
            element.leaf("wp:author_display_name", author.display_name or author.login, cdata=True)
            element.leaf("wp:author_first_name", author.first_name, cdata=True)
            element.leaf("wp:author_last_name", author.last_name, cdata=True)

    def _write_comment(self, comment: WxrComment) -> None:
        with self._builder.element("wp:comment") as element:
            element.leaf("wp:comment_id", str(comment.comment_id))
            element.leaf("wp:comment_author", comment.author, cdata=True)
            element.leaf("wp:comment_author_email", comment.author_email, cdata=True)
            element.leaf("wp:comment_author_url", comment.author_url)
            if comment.date is not None:
                element.leaf("wp:comment_date", format_wp_date(comment.date), cdata=True)
                element.leaf("wp:comment_date_gmt", format_wp_date(comment.date), cdata=True)
            element.leaf("wp:comment_content", comment.content, cdata=True)
            element.leaf("wp:comment_approved", comment.approved, cdata=True)
            element.leaf("wp:comment_type", comment.comment_type, cdata=True)
            element.leaf("wp:comment_parent", str(comment.parent))


def _validate_item(item: WxrItem) -> None:
    missing = [
        name
        for name, value in (("post_id", item.post_id), ("title", item.title), ("status", item.status))
        if value is None
    ]
    if missing:
        raise SchemaError(f"WXR item is missing required field(s): {', '.join(missing)}")
