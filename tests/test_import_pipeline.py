import threading
import time

import pytest

from blog_content.importing import (
    ArticleImporter,
    AuthorNotFoundError,
    ContentConflictError,
    ContentStatus,
    ImportConfig,
    ImportStatus,
    ImportValidationError,
    InMemoryContentRepository,
    InMemoryJobStore,
    ProgressTracker,
    RawFile,
)
from blog_content.importing.progress import CANCELLED_MESSAGE


def md(name: str, text: str) -> RawFile:
    return RawFile(name, text.encode("utf-8"))


def article(title: str, extra: str = "") -> str:
    return f"---\ntitle: {title}\n{extra}---\nBody of {title}.\n"


def make_importer(repo=None, tracker=None, **kwargs):
    repo = repo if repo is not None else InMemoryContentRepository()
    repo.add_user("author-1")
    tracker = tracker if tracker is not None else ProgressTracker(InMemoryJobStore())
    return ArticleImporter(repo, tracker, **kwargs), repo


def run_job(importer, files, config=None):
    response = importer.start(files, "author-1", config)
    job = importer.wait(response.job_id, timeout=10)
    assert job is not None
    return job


class SlowRepository(InMemoryContentRepository):
    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._counter_lock = threading.Lock()

    def find_content_by_slug_or_title(self, slug, title):
        with self._counter_lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return super().find_content_by_slug_or_title(slug, title)
        finally:
            with self._counter_lock:
                self.active -= 1


class GatedRepository(InMemoryContentRepository):
    def __init__(self):
        super().__init__()
        self.gate = threading.Event()

    def create_content(self, data):
        self.gate.wait(timeout=5)
        return super().create_content(data)


class ConflictingRepository(InMemoryContentRepository):
    def create_content(self, data):
        raise ContentConflictError(f"Slug already in use: {data.slug}")


class RecordingTracker(ProgressTracker):
    def __init__(self, store):
        super().__init__(store)
        self.snapshots = []

    def update_after_file(self, job_id, processed, total, counters, start_time):
        job = super().update_after_file(job_id, processed, total, counters, start_time)
        if job is not None:
            self.snapshots.append((job.processed_files, job.progress_percent, job.estimated_remaining_ms))
        return job


class BrokenTracker(ProgressTracker):
    def is_active(self, job_id):
        raise RuntimeError("progress store unavailable")


def test_happy_path_imports_every_file():
    importer, repo = make_importer()
    files = [md(f"post-{i}.md", article(f"Post {i}")) for i in range(3)]

    response = importer.start(files, "author-1")
    assert response.status == ImportStatus.PENDING
    assert response.total_files == 3

    job = importer.wait(response.job_id, timeout=10)
    assert job.status == ImportStatus.COMPLETED
    assert (job.success_count, job.failure_count, job.skipped_count) == (3, 0, 0)
    assert job.processed_files == 3
    assert job.progress_percent == 100
    assert [r.file_path for r in job.results] == ["post-0.md", "post-1.md", "post-2.md"]

    stored = sorted(a.title for a in repo.articles.values())
    assert stored == ["Post 0", "Post 1", "Post 2"]
    first = repo.get_content(job.results[0].content_id)
    assert first.author_id == "author-1"
    assert first.summary == "Body of Post 0."
    assert first.slug == "post-0"
    assert first.status == ContentStatus.DRAFT


def test_partial_failures_are_isolated():
    importer, repo = make_importer()
    files = [
        md("good.md", article("Good")),
        md("empty-body.md", "---\ntitle: Nothing\n---\n"),
        md("notes.txt", article("Text")),
        RawFile("broken.md", b"\xff\xfe\xfd"),
        RawFile("zero.md", b""),
    ]
    job = run_job(importer, files)

    assert job.status == ImportStatus.COMPLETED
    assert (job.success_count, job.failure_count, job.skipped_count) == (1, 4, 0)
    errors = {r.file_path: r.error for r in job.results}
    assert errors["good.md"] is None
    assert errors["empty-body.md"] == "content is empty"
    assert errors["notes.txt"].startswith("Unsupported file type")
    assert errors["broken.md"] == "Invalid file encoding, files must be UTF-8"
    assert errors["zero.md"] == "File is empty"
    assert len(repo.articles) == 1


def test_every_result_has_exactly_one_outcome():
    importer, _ = make_importer()
    files = [md("a.md", article("A")), md("a-again.md", article("A")), md("bad.md", "---\ntitle: x\n---\n")]
    importer.import_sync([files[0]], "author-1")
    job = run_job(importer, files)

    for result in job.results:
        outcomes = [result.success, result.skipped, result.error is not None]
        assert outcomes.count(True) == 1
    assert job.success_count + job.failure_count + job.skipped_count == job.total_files


def test_duplicates_are_skipped_unless_overwriting():
    importer, repo = make_importer()
    files = [md("hello.md", article("Hello"))]
    first = run_job(importer, files)
    content_id = first.results[0].content_id

    second = run_job(importer, files)
    assert (second.success_count, second.skipped_count) == (0, 1)
    assert second.results[0].warnings == ["Content already exists, skipped (title: Hello)"]
    assert len(repo.articles) == 1

    changed = [md("hello.md", "---\ntitle: Hello\n---\nRewritten body.\n")]
    third = run_job(importer, changed, ImportConfig(overwrite_existing=True))
    assert third.success_count == 1
    assert third.results[0].content_id == content_id
    assert repo.get_content(content_id).content == "Rewritten body.\n"
    assert len(repo.articles) == 1


def test_title_comes_from_file_name_when_missing():
    importer, repo = make_importer()
    job = run_job(importer, [md("my-first-post.md", "Just a body without any heading.\n")])
    assert job.success_count == 1
    assert job.results[0].title == "my-first-post"
    assert "No slug found, one will be generated" in job.results[0].warnings
    assert repo.get_content(job.results[0].content_id).slug == "my-first-post"


def test_publish_date_out_of_range_fails_the_file():
    importer, repo = make_importer()
    job = run_job(importer, [md("old.md", article("Old", "date: 1999-12-31\n"))])
    assert job.failure_count == 1
    assert "Publish date cannot be earlier than 2000-01-01" in job.results[0].error
    assert not repo.articles


def test_defaults_and_auto_publish():
    importer, repo = make_importer()
    files = [
        md("tagged.md", article("Tagged", "tags: [a, x]\n")),
        md("own-category.md", article("Own", "category: Own\n")),
    ]
    config = ImportConfig(default_category="Blog", default_tags=["x", "y"], auto_publish=True)
    job = run_job(importer, files, config)
    assert job.success_count == 2

    by_title = {a.title: a for a in repo.articles.values()}
    tagged, own = by_title["Tagged"], by_title["Own"]
    assert tagged.status == ContentStatus.PUBLISHED
    assert tagged.published_at is not None
    tag_names = [repo.tags[t].name for t in tagged.tag_ids]
    assert tag_names == ["a", "x", "y"]
    assert repo.categories[tagged.category_id].name == "Blog"
    assert repo.categories[own.category_id].name == "Own"


def test_invalid_files_are_reported_when_not_skipping():
    importer, repo = make_importer()
    files = [md("bad.md", "---\ntitle: Bad\n---\n"), md("good.md", article("Good"))]
    job = run_job(importer, files, ImportConfig(skip_invalid_files=False))
    assert job.status == ImportStatus.COMPLETED
    assert job.results[0].error == "content is empty"
    assert job.results[1].success
    assert len(repo.articles) == 1


def test_conflicts_become_file_errors():
    importer, _ = make_importer(repo=ConflictingRepository())
    job = run_job(importer, [md("taken.md", article("Taken", "slug: taken\n"))])
    assert job.status == ImportStatus.COMPLETED
    assert job.results[0].error == "Slug already in use: taken"


def test_concurrency_is_bounded():
    repo = SlowRepository()
    importer, _ = make_importer(repo=repo)
    files = [md(f"p{i}.md", article(f"P{i}")) for i in range(12)]
    job = run_job(importer, files)
    assert job.success_count == 12
    assert 1 < repo.peak <= 3


def test_progress_is_monotonic_and_eta_non_negative():
    tracker = RecordingTracker(InMemoryJobStore())
    importer, _ = make_importer(tracker=tracker, batch_size=2)
    files = [md(f"p{i}.md", article(f"P{i}")) for i in range(7)]
    run_job(importer, files)

    processed = [s[0] for s in tracker.snapshots]
    percents = [s[1] for s in tracker.snapshots]
    assert processed == sorted(processed)
    assert percents == sorted(percents)
    assert processed[-1] == 7
    assert all(s[2] >= 0 for s in tracker.snapshots)


def test_cancel_stops_at_the_next_batch():
    repo = GatedRepository()
    tracker = ProgressTracker(InMemoryJobStore())
    importer, _ = make_importer(repo=repo, tracker=tracker)
    files = [md(f"p{i}.md", article(f"P{i}")) for i in range(12)]
    response = importer.start(files, "author-1")

    deadline = time.monotonic() + 5
    while not tracker.is_active(response.job_id) and time.monotonic() < deadline:
        time.sleep(0.01)

    assert importer.cancel(response.job_id) is True
    repo.gate.set()
    job = importer.wait(response.job_id, timeout=10)

    assert job.status == ImportStatus.FAILED
    assert job.error == CANCELLED_MESSAGE
    assert job.results is None
    assert len(repo.articles) == 5
    assert importer.cancel(response.job_id) is False


def test_loop_errors_fail_the_job():
    importer, _ = make_importer(tracker=BrokenTracker(InMemoryJobStore()))
    job = run_job(importer, [md("a.md", article("A"))])
    assert job.status == ImportStatus.FAILED
    assert job.error == "progress store unavailable"


def test_preflight_errors_create_no_job():
    store = InMemoryJobStore()
    importer, _ = make_importer(tracker=ProgressTracker(store))

    with pytest.raises(AuthorNotFoundError):
        importer.start([md("a.md", article("A"))], "ghost")
    with pytest.raises(ImportValidationError) as exc_info:
        importer.start([], "author-1")
    assert exc_info.value.reasons == ["No files provided for import"]
    with pytest.raises(ImportValidationError):
        importer.start([md("a.md", article("A"))], "author-1", ImportConfig(default_tags=[str(i) for i in range(11)]))

    assert store.keys("") == []


def test_import_sync_keeps_input_order():
    importer, _ = make_importer()
    files = [md("b.md", article("B")), md("a.md", "---\ntitle: A\n---\n"), md("c.md", article("C"))]
    summary = importer.import_sync(files, "author-1")
    assert [r.file_path for r in summary.results] == ["b.md", "a.md", "c.md"]
    assert (summary.success_count, summary.failure_count) == (2, 1)
    assert summary.duration_ms >= 0


def test_import_sync_raises_when_processing_stops_early(monkeypatch):
    importer, _ = make_importer()
    monkeypatch.setattr(importer, "_process_files", lambda *args, **kwargs: None)
    with pytest.raises(RuntimeError):
        importer.import_sync([md("a.md", article("A"))], "author-1")


def test_file_type_is_checked_before_size():
    importer, _ = make_importer()
    summary = importer.import_sync([RawFile("empty.txt", b""), RawFile("empty.md", b"")], "author-1")
    assert summary.results[0].error.startswith("Unsupported file type")
    assert summary.results[1].error == "File is empty"


def test_check_files_persists_nothing():
    importer, repo = make_importer()
    report = importer.check_files(
        [
            md("ok.md", article("Ok")),
            md("empty.md", "---\ntitle: E\n---\n"),
            RawFile("zero.md", b""),
            md("notes.txt", article("Notes")),
        ]
    )
    assert (report.total_files, report.valid_files, report.invalid_files) == (4, 1, 3)
    assert report.results[0].title == "Ok" and report.results[0].has_content
    assert report.results[1].errors == ["content is empty"]
    assert report.results[2].errors == ["File is empty"]
    assert report.results[3].errors == ["Unsupported file type, only .md and .markdown files are accepted"]
    assert not repo.articles

    with pytest.raises(ImportValidationError):
        importer.check_files([])


def test_statistics_and_cleanup():
    importer, _ = make_importer()
    job = run_job(importer, [md("a.md", article("A")), md("b.md", "---\ntitle: B\n---\n")])
    stats = importer.get_statistics(job.id)
    assert stats.total_files == 2
    assert stats.success_rate == 50.0
    assert importer.get_statistics("missing") is None
    assert importer.cleanup_expired() == 0
