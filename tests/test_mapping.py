from datetime import datetime, timezone

import pytest

from substack_wxr.config import CommentStatus, ConverterConfig
from substack_wxr.errors import SchemaError
from substack_wxr.mapping import UNTITLED_PLACEHOLDER, map_source_item, slugify
from substack_wxr.models import SourceComment, SourceItem


def test_substack_post_id_gives_numeric_id_and_slug() -> None:
    item = SourceItem(
        source_id="123456.my-first-post",
        title="My First Post",
        body_html="<p>Hi</p>",
        published_at="2021-05-04T16:03:52.131Z",
        tags=("Long Reads", " "),
    )
    mapped = map_source_item(item, ConverterConfig(), site_url="https://example.substack.com/")

    assert mapped.post_id == 123456
    assert mapped.post_name == "my-first-post"
    assert mapped.link == "https://example.substack.com/p/my-first-post"
    assert mapped.guid == mapped.link
    assert mapped.status == "publish"
    assert mapped.post_date == datetime(2021, 5, 4, 16, 3, 52, 131000, tzinfo=timezone.utc)
    assert [(term.domain, term.nicename, term.name) for term in mapped.terms] == [
        ("post_tag", "long-reads", "Long Reads")
    ]


def test_non_numeric_id_maps_to_stable_id_and_keeps_source_id_in_meta() -> None:
    item = SourceItem(source_id="draft-abc", title="Draft", is_published=False)
    first = map_source_item(item, ConverterConfig())
    second = map_source_item(item, ConverterConfig())

    assert first.post_id == second.post_id
    assert first.post_id > 0
    assert first.status == "draft"
    assert first.guid == "substack:draft-abc"
    assert first.postmeta[0].key == "_substack_post_id"
    assert first.postmeta[0].value == "draft-abc"


def test_missing_title_gets_placeholder_and_author_falls_back_to_config() -> None:
    mapped = map_source_item(SourceItem(source_id="1"), ConverterConfig(author_login="editor"))

    assert mapped.title == UNTITLED_PLACEHOLDER
    assert mapped.creator == "editor"
    assert mapped.content is None


def test_substack_fields_become_postmeta() -> None:
    item = SourceItem(
        source_id="7.podcast",
        post_type="podcast",
        audience="only_paid",
        email_sent_at="2021-05-04T16:05:00Z",
        podcast_url="https://cdn.example.com/ep.mp3",
        attachments=("https://cdn.example.com/a.png", "https://cdn.example.com/b.png"),
    )
    meta = [(entry.key, entry.value) for entry in map_source_item(item, ConverterConfig()).postmeta]

    assert ("_substack_post_type", "podcast") in meta
    assert ("_substack_audience", "only_paid") in meta
    assert ("_substack_email_sent_at", "2021-05-04T16:05:00+00:00") in meta
    assert ("_substack_podcast_url", "https://cdn.example.com/ep.mp3") in meta
    assert [value for key, value in meta if key == "_substack_attachment"] == [
        "https://cdn.example.com/a.png",
        "https://cdn.example.com/b.png",
    ]


def test_comments_keep_order_and_parent_links() -> None:
    item = SourceItem(
        source_id="9",
        comments=(
            SourceComment(comment_id="c1", author="Bob", body="Top"),
            SourceComment(comment_id="c2", author="Carol", body="Reply", parent_id="c1", approved=False),
        ),
    )
    mapped = map_source_item(item, ConverterConfig(default_comment_status=CommentStatus.CLOSED))

    assert [comment.comment_id for comment in mapped.comments] == [1, 2]
    assert mapped.comments[1].parent == 1
    assert mapped.comments[1].approved == "0"
    assert mapped.comment_status == "closed"


def test_non_ascii_digit_comment_ids_fall_back_to_position() -> None:
    item = SourceItem(
        source_id="9",
        comments=(
            SourceComment(comment_id="\u00b2", author="Bob", body="Top"),
            SourceComment(comment_id="77", author="Carol", body="Reply", parent_id="\u00b2"),
        ),
    )

    mapped = map_source_item(item, ConverterConfig())

    assert [comment.comment_id for comment in mapped.comments] == [1, 77]
    assert mapped.comments[1].parent == 1


def test_empty_source_id_raises_schema_error() -> None:
    with pytest.raises(SchemaError, match="no post id"):
        map_source_item(SourceItem(source_id="  ", title="Orphan"), ConverterConfig())


def test_unparseable_date_raises_schema_error() -> None:
    with pytest.raises(SchemaError, match="post_date"):
        map_source_item(SourceItem(source_id="3", published_at="last tuesday"), ConverterConfig())


def test_slugify() -> None:
    assert slugify("  Hello, World! ") == "hello-world"
    assert slugify("---") == ""
