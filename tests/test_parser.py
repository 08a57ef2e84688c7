from datetime import datetime, timezone

import pytest

from blog_content.importing import ContentStatus, MarkdownContentParser, generate_slug, is_valid_slug
from blog_content.importing.parser import parse_date


def test_parse_full_frontmatter():
    parser = MarkdownContentParser()
    text = (
        "---\n"
        "title: Hello World\n"
        "slug: hello-world\n"
        "summary: Short intro\n"
        "tags: [python, testing, python]\n"
        "categories: [Tech, Misc]\n"
        "status: published\n"
        "featured: true\n"
        "pinned: true\n"
        "allowComment: false\n"
        "weight: 7\n"
        "date: 2024-03-01T10:00:00Z\n"
        "keywords: a, b\n"
        "ogImage: /img/og.png\n"
        "---\n"
        "Body text here.\n"
    )
    outcome = parser.parse(text, "hello.md")

    assert outcome.is_valid
    assert outcome.warnings == []
    data = outcome.data
    assert data.title == "Hello World"
    assert data.slug == "hello-world"
    assert data.summary == "Short intro"
    assert data.tags == ("python", "testing")
    assert data.category == "Tech"
    assert data.status == ContentStatus.PUBLISHED
    assert data.is_featured and data.is_top
    assert data.allow_comment is False
    assert data.weight == 7
    assert data.meta_keywords == ("a", "b")
    assert data.social_image == "/img/og.png"
    assert data.published_at == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert data.created_at == data.published_at
    assert data.content == "Body text here.\n"
    assert data.reading_time == 1


def test_title_falls_back_to_heading_then_filename():
    parser = MarkdownContentParser()

    outcome = parser.parse("# From Heading\n\nText", "file.md")
    assert outcome.data.title == "From Heading"

    outcome = parser.parse("Just some text without a heading.", "my-first-post.md")
    assert outcome.is_valid
    assert outcome.data.title == "my-first-post"
    assert "No summary found, one will be generated" in outcome.warnings
    assert "No slug found, one will be generated" in outcome.warnings


def test_empty_body_is_an_error():
    parser = MarkdownContentParser()
    outcome = parser.parse("---\ntitle: Only Matter\n---\n   \n", "post.md")
    assert not outcome.is_valid
    assert "content is empty" in outcome.errors
    assert outcome.data is None


def test_invalid_frontmatter_is_reported():
    parser = MarkdownContentParser()
    outcome = parser.parse("---\ntitle: [unclosed\n---\nBody", "bad.md")
    assert not outcome.is_valid
    assert outcome.errors[0].startswith("Failed to parse file")

    outcome = parser.parse("---\n- just\n- a list\n---\nBody", "list.md")
    assert not outcome.is_valid


def test_status_from_published_flag_and_unknown_status():
    parser = MarkdownContentParser()
    assert parser.parse("---\npublished: true\n---\nx", "a.md").data.status == ContentStatus.PUBLISHED
    assert parser.parse("---\nstatus: weird\n---\nx", "a.md").data.status == ContentStatus.DRAFT


def test_generate_summary_strips_markdown():
    parser = MarkdownContentParser()
    body = "# Title\n\nSome **bold** and *italic* with [a link](http://x) and `code`.\n```\nskipped()\n```"
    assert parser.generate_summary(body) == "Title\n\nSome bold and italic with a link and code."

    long_body = "word " * 100
    summary = parser.generate_summary(long_body)
    assert summary.endswith("...")
    assert len(summary) == 203


def test_reading_time():
    parser = MarkdownContentParser()
    assert parser.reading_time("") == 0
    assert parser.reading_time("one two three") == 1
    assert parser.reading_time("w " * 401) == 3


def test_extension_and_file_name_decoding():
    parser = MarkdownContentParser()
    assert parser.is_supported_extension("a.md")
    assert parser.is_supported_extension("b.MARKDOWN")
    assert not parser.is_supported_extension("c.txt")

    mangled = "文章.md".encode("utf-8").decode("latin-1")
    assert parser.decode_file_name(mangled) == "文章.md"
    assert parser.decode_file_name("文章.md") == "文章.md"


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        ("2023-05-06", datetime(2023, 5, 6, tzinfo=timezone.utc)),
        ("2023-05-06T08:00:00+02:00", datetime(2023, 5, 6, 6, 0, tzinfo=timezone.utc)),
        ("not a date", None),
        (True, None),
        (None, None),
    ],
)
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_slugs():
    assert generate_slug("Hello, World!  Again") == "hello-world-again"
    assert generate_slug("x" * 150) == "x" * 100
    assert generate_slug("你好").startswith("article-")
    assert generate_slug("", fallback_prefix="tag").startswith("tag-")
    assert is_valid_slug("abc-123")
    assert not is_valid_slug("Abc")
    assert not is_valid_slug("")
