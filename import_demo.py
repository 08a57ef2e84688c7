"""
Example: import a directory of Markdown files into a SQLite database.

Usage:
    python3 import_demo.py --source ./posts --author-id local-user --default-tags imported,demo
"""

import argparse
import logging
from pathlib import Path

from blog_content.importing import (
    ArticleImporter,
    ImportConfig,
    ImportValidationError,
    InMemoryJobStore,
    ProgressTracker,
    RawFile,
    SqlAlchemyContentRepository,
)


def setup_logging(level: int = logging.INFO):
    log_dir = Path("./logs")
    log_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "import.log", encoding="utf-8"),
        ],
        force=True,
    )


def collect_files(source: Path):
    paths = sorted(p for p in source.rglob("*") if p.suffix.lower() in (".md", ".markdown"))
    return [RawFile(original_name=p.name, data=p.read_bytes()) for p in paths]


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--source", required=True, type=Path, help="Directory containing Markdown files")
    parser.add_argument("--author-id", default="local-user", help="Author the articles are attributed to")
    parser.add_argument("--db", default=Path("./data/blog_content.db"), type=Path, help="SQLite DB path")
    parser.add_argument("--default-category", default=None, help="Category for files without one")
    parser.add_argument("--default-tags", default="", help="Comma separated tags added to every article")
    parser.add_argument("--auto-publish", action="store_true", help="Publish every imported article")
    parser.add_argument("--overwrite", action="store_true", help="Update articles that already exist")
    parser.add_argument("--validate-only", action="store_true", help="Parse and report without saving")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not args.source.is_dir():
        raise FileNotFoundError(f"Source directory not found: {args.source}")
    args.db.parent.mkdir(parents=True, exist_ok=True)

    repo = SqlAlchemyContentRepository(f"sqlite+pysqlite:///{args.db}")
    repo.add_user(args.author_id)
    importer = ArticleImporter(repository=repo, tracker=ProgressTracker(InMemoryJobStore()))
    files = collect_files(args.source)

    if args.validate_only:
        report = importer.check_files(files)
        for check in report.results:
            status = "ok" if check.is_valid else "; ".join(check.errors)
            print(f"{check.filename}: {status}")
        print(f"{report.valid_files}/{report.total_files} valid")
        return

    config = ImportConfig.from_raw(
        {
            "default_category": args.default_category,
            "default_tags": args.default_tags,
            "auto_publish": args.auto_publish,
            "overwrite_existing": args.overwrite,
        }
    )
    try:
        response = importer.start(files, args.author_id, config)
    except ImportValidationError as exc:
        for reason in exc.reasons:
            logging.error(reason)
        raise SystemExit(1)

    job = importer.wait(response.job_id)
    for result in job.results or []:
        if result.success:
            print(f"imported  {result.file_path} -> {result.content_id}")
        elif result.skipped:
            print(f"skipped   {result.file_path}: {'; '.join(result.warnings)}")
        else:
            print(f"failed    {result.file_path}: {result.error}")
    print(
        f"Job {job.id} {job.status.value}: {job.success_count} imported, "
        f"{job.failure_count} failed, {job.skipped_count} skipped"
    )


if __name__ == "__main__":
    main()
