from datetime import datetime, timezone

import pytest

from blog_content.importing import (
    ArticleImporter,
    ContentConflictError,
    ContentStatus,
    ImportConfig,
    ImportStatus,
    InMemoryContentRepository,
    InMemoryJobStore,
    ProgressTracker,
    RawFile,
    SqlAlchemyContentRepository,
)
from blog_content.importing.models import ContentData


def make_sql_repo(tmp_path):
    db_path = tmp_path / "test.db"
    return SqlAlchemyContentRepository(f"sqlite+pysqlite:///{db_path}")


def content(title, **kwargs):
    kwargs.setdefault("summary", None)
    kwargs.setdefault("status", ContentStatus.DRAFT)
    kwargs.setdefault("author_id", "user-1")
    return ContentData(title=title, content=f"{title} body", **kwargs)


def test_sqlalchemy_repository_roundtrip(tmp_path):
    repo = make_sql_repo(tmp_path)
    repo.add_user("user-1", "alice")
    assert repo.user_exists("user-1")
    assert not repo.user_exists("user-2")

    category_id = repo.find_or_create_category("Tech")
    assert repo.find_or_create_category("Tech") == category_id

    tag_ids = repo.create_or_find_tags(["python", "sql", "python"])
    assert len(tag_ids) == 2
    assert repo.create_or_find_tags(["sql"]) == [tag_ids[1]]

    published = datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
    record = repo.create_content(
        content(
            "Hello World",
            category_id=category_id,
            tag_ids=tag_ids,
            meta_keywords=["k1", "k2"],
            status=ContentStatus.PUBLISHED,
            published_at=published,
            weight=5,
        )
    )
    assert record.slug == "hello-world"

    fetched = repo.get_content(record.id)
    assert fetched.title == "Hello World"
    assert fetched.status == ContentStatus.PUBLISHED
    assert fetched.published_at == published
    assert fetched.meta_keywords == ["k1", "k2"]
    assert sorted(fetched.tag_ids) == sorted(tag_ids)
    assert fetched.weight == 5

    assert repo.find_content_by_slug_or_title("hello-world", "other").id == record.id
    assert repo.find_content_by_slug_or_title(None, "Hello World").id == record.id
    assert repo.find_content_by_slug_or_title("nope", "nope") is None

    updated = repo.update_content(record.id, content("Hello World", tag_ids=[tag_ids[0]], summary="new"))
    assert updated.summary == "new"
    assert repo.get_content(record.id).tag_ids == [tag_ids[0]]


def test_sqlalchemy_slugs_and_conflicts(tmp_path):
    repo = make_sql_repo(tmp_path)
    first = repo.create_content(content("Same Title"))
    second = repo.create_content(content("Same Title"))
    assert (first.slug, second.slug) == ("same-title", "same-title-2")

    with pytest.raises(ContentConflictError):
        repo.create_content(content("Other", slug="same-title"))
    with pytest.raises(ContentConflictError):
        repo.update_content(second.id, content("Same Title", slug="same-title"))
    with pytest.raises(ValueError):
        repo.update_content("missing", content("x"))
    assert len(repo.list_contents()) == 2


def test_in_memory_repository_slugs_and_copies():
    repo = InMemoryContentRepository()
    first = repo.create_content(content("Post"))
    second = repo.create_content(content("Post"))
    assert second.slug == "post-2"

    with pytest.raises(ContentConflictError):
        repo.create_content(content("Another", slug="post"))

    first.title = "mutated"
    assert repo.get_content(first.id).title == "Post"
    assert repo.find_or_create_category("A") == repo.find_or_create_category("A")


def test_importer_against_sqlite(tmp_path):
    repo = make_sql_repo(tmp_path)
    repo.add_user("user-1")
    importer = ArticleImporter(repo, ProgressTracker(InMemoryJobStore()))
    files = [
        RawFile(f"post-{i}.md", f"---\ntitle: Post {i}\ntags: [shared, t{i}]\ncategory: Notes\n---\nBody {i}\n".encode("utf-8"))
        for i in range(8)
    ]

    response = importer.start(files, "user-1", ImportConfig(default_tags=["imported"]))
    job = importer.wait(response.job_id, timeout=30)

    assert job.status == ImportStatus.COMPLETED
    assert job.success_count == 8
    contents = repo.list_contents()
    assert len(contents) == 8
    assert len({c.category_id for c in contents}) == 1
    assert all(len(c.tag_ids) == 3 for c in contents)
