from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .errors import ContentConflictError, FileValidationError, ImportValidationError, JobNotFoundError
from .models import (
    ArticleRecord,
    ContentData,
    ContentStatus,
    FileCheck,
    FileCheckReport,
    ImportConfig,
    ImportCounters,
    ImportJob,
    ImportResult,
    ImportStatistics,
    ImportStatus,
    ImportSummary,
    ParsedContent,
    RawFile,
    StartImportResponse,
)
from .parser import MarkdownContentParser
from .progress import ProgressTracker
from .repository import ContentRepository
from .runners import JobRunner, ThreadJobRunner
from .validation import ImportValidator

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_MAX_CONCURRENCY = 3
UNSUPPORTED_TYPE_MESSAGE = "Unsupported file type, only .md and .markdown files are accepted"


class ArticleImporter:
    """
    Drives an import job: synchronous preflight in `start`, then background
    execution over fixed-size batches with a bounded worker pool inside each
    batch. Every file ends up as exactly one `ImportResult`; a failing file
    never aborts the job, only errors of the loop itself do.

    The importer holds no job state of its own. Progress, counters and the
    terminal status live in the `ProgressTracker`.
    """

    def __init__(
        self,
        repository: ContentRepository,
        tracker: ProgressTracker,
        parser: Optional[MarkdownContentParser] = None,
        validator: Optional[ImportValidator] = None,
        runner: Optional[JobRunner] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.repo = repository
        self.tracker = tracker
        self.parser = parser or MarkdownContentParser()
        self.validator = validator or ImportValidator(repository)
        self.runner = runner or ThreadJobRunner()
        self.batch_size = max(1, batch_size)
        self.max_concurrency = max(1, max_concurrency)

    # region Caller surface
    def start(self, files: Sequence[RawFile], author_id: str, config: Optional[ImportConfig] = None) -> StartImportResponse:
        config = config or ImportConfig()
        self._preflight(files, author_id, config)

        job_id = self.tracker.generate_job_id()
        self.tracker.initialize(job_id, len(files))
        logger.info("Starting import job %s: %d file(s), author %s", job_id, len(files), author_id)

        self.runner.launch(self, job_id, list(files), author_id, config)
        return StartImportResponse(job_id=job_id, status=ImportStatus.PENDING, total_files=len(files))

    def import_sync(self, files: Sequence[RawFile], author_id: str, config: Optional[ImportConfig] = None) -> ImportSummary:
        """Run the whole pipeline in the calling thread, without job tracking."""
        config = config or ImportConfig()
        self._preflight(files, author_id, config)
        summary = self._process_files(list(files), author_id, config, job_id=None)
        if summary is None:
            raise RuntimeError("Synchronous import stopped before all files were processed")
        return summary

    def get_progress(self, job_id: str) -> Optional[ImportJob]:
        return self.tracker.get(job_id)

    def require_job(self, job_id: str) -> ImportJob:
        job = self.tracker.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Import job not found: {job_id}")
        return job

    def cancel(self, job_id: str) -> bool:
        return self.tracker.cancel(job_id)

    def get_statistics(self, job_id: str) -> Optional[ImportStatistics]:
        return self.tracker.statistics(job_id)

    def cleanup_expired(self) -> int:
        return self.tracker.cleanup_expired()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ImportJob]:
        self.runner.wait(job_id, timeout=timeout)
        return self.tracker.get(job_id)

    def check_files(self, files: Sequence[RawFile]) -> FileCheckReport:
        """Parse files without persisting anything and report what would fail."""
        if not files:
            raise ImportValidationError("No files provided for validation", ["No files provided for validation"])

        checks: List[FileCheck] = []
        for file in files:
            filename = self.parser.decode_file_name(file.original_name)
            if not self.parser.is_supported_extension(filename):
                checks.append(FileCheck(filename=filename, is_valid=False, errors=[UNSUPPORTED_TYPE_MESSAGE]))
                continue
            errors = self.validator.validate_single_file(file)
            if errors:
                checks.append(FileCheck(filename=filename, is_valid=False, errors=errors))
                continue
            outcome = self.parser.parse(file.data.decode("utf-8-sig"), filename)
            checks.append(
                FileCheck(
                    filename=filename,
                    is_valid=outcome.is_valid,
                    errors=outcome.errors,
                    warnings=outcome.warnings,
                    title=outcome.data.title if outcome.data else None,
                    has_content=bool(outcome.data and outcome.data.content.strip()),
                )
            )

        valid = sum(1 for c in checks if c.is_valid)
        return FileCheckReport(total_files=len(files), valid_files=valid, invalid_files=len(files) - valid, results=checks)

    # endregion

    def execute(self, job_id: str, files: List[RawFile], author_id: str, config: ImportConfig) -> None:
        """
        Background body of a job. Any exception escaping the batch loop marks
        the job FAILED so its state always matches what actually happened.
        """
        try:
            self.tracker.mark_processing(job_id)
            summary = self._process_files(files, author_id, config, job_id=job_id)
            if summary is None:
                logger.info("Import job %s stopped after cancellation", job_id)
                return
            logger.info(
                "Import job %s finished: %d succeeded, %d failed, %d skipped",
                job_id,
                summary.success_count,
                summary.failure_count,
                summary.skipped_count,
            )
            self.tracker.complete(job_id, summary.results)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Import job %s aborted", job_id)
            self.tracker.fail(job_id, str(exc) or exc.__class__.__name__)

    def _preflight(self, files: Sequence[RawFile], author_id: str, config: ImportConfig) -> None:
        errors = self.validator.validate_import_config(config) or self.validator.validate_config_limits(config)
        if errors:
            raise ImportValidationError("Invalid import configuration", errors)
        errors = self.validator.validate_files(files)
        if errors:
            raise ImportValidationError("File validation failed", errors)
        self.validator.validate_author(author_id)

    def _process_files(
        self,
        files: List[RawFile],
        author_id: str,
        config: ImportConfig,
        job_id: Optional[str],
    ) -> Optional[ImportSummary]:
        """
        Returns None when the job stopped being PROCESSING (cancelled) before
        all batches ran.
        """
        total = len(files)
        start_time = self.tracker.now_ms()
        results: Dict[int, ImportResult] = {}
        counters = ImportCounters()
        processed = 0
        processed_lock = threading.Lock()

        def processed_so_far() -> int:
            with processed_lock:
                return processed

        for batch_start in range(0, total, self.batch_size):
            if job_id and not self.tracker.is_active(job_id):
                return None

            batch = files[batch_start:batch_start + self.batch_size]
            workers = min(self.max_concurrency, len(batch))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="import-file") as pool:
                futures = {
                    pool.submit(self._run_file, file, author_id, config, job_id, total, processed_so_far): batch_start + offset
                    for offset, file in enumerate(batch)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    result = future.result()
                    results[index] = result
                    counters.record(result)
                    with processed_lock:
                        processed += 1
                        done = processed
                    if job_id:
                        self.tracker.update_after_file(job_id, done, total, counters, start_time)

            logger.debug("Batch %d-%d of %d done", batch_start + 1, batch_start + len(batch), total)

        return ImportSummary(
            total_files=total,
            success_count=counters.success_count,
            failure_count=counters.failure_count,
            skipped_count=counters.skipped_count,
            results=[results[i] for i in range(total)],
            start_time=start_time,
            end_time=self.tracker.now_ms(),
        )

    def _run_file(self, file: RawFile, author_id: str, config: ImportConfig, job_id, total, processed_so_far) -> ImportResult:
        file_path = self.parser.decode_file_name(file.original_name or "")
        if job_id:
            self.tracker.update_current_file(job_id, file_path, processed_so_far(), total)
        try:
            return self._process_file(file, file_path, author_id, config)
        except FileValidationError as exc:
            logger.warning("Invalid file %s: %s", file_path, exc)
            return self.validator.create_error_result(file_path, str(exc))
        except ContentConflictError as exc:
            logger.warning("Conflict while saving %s: %s", file_path, exc)
            return self.validator.create_error_result(file_path, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to import %s", file_path)
            return self.validator.create_error_result(file_path, str(exc) or exc.__class__.__name__)

    def _process_file(self, file: RawFile, file_path: str, author_id: str, config: ImportConfig) -> ImportResult:
        if not self.parser.is_supported_extension(file_path):
            return self.validator.create_error_result(file_path, UNSUPPORTED_TYPE_MESSAGE)

        errors = self.validator.validate_single_file(file)
        if errors:
            return self.validator.create_error_result(file_path, "; ".join(errors))

        outcome = self.parser.parse(file.data.decode("utf-8-sig"), file_path)
        if not outcome.is_valid:
            if config.skip_invalid_files:
                return self.validator.create_error_result(file_path, "; ".join(outcome.errors), outcome.warnings)
            raise FileValidationError("; ".join(outcome.errors), outcome.errors)

        parsed = outcome.data
        errors = self.validator.validate_parsed_data(parsed) + self.validator.validate_dates(parsed)
        if errors:
            return self.validator.create_error_result(file_path, "; ".join(errors), outcome.warnings)

        decision = self.validator.validate_file_for_import(parsed, config, file_path)
        if not decision.can_import:
            return decision.result

        record = self._save_content(parsed, author_id, config, decision.existing)
        logger.debug("Imported %s as content %s", file_path, record.id)
        return ImportResult(
            file_path=file_path,
            success=True,
            content_id=record.id,
            title=record.title,
            warnings=outcome.warnings,
        )

    def _save_content(
        self,
        parsed: ParsedContent,
        author_id: str,
        config: ImportConfig,
        existing: Optional[ArticleRecord],
    ) -> ArticleRecord:
        category_name = parsed.category or config.default_category
        category_id = self.repo.find_or_create_category(category_name) if category_name else None

        tag_names: List[str] = []
        for name in list(parsed.tags) + list(config.default_tags):
            if name not in tag_names:
                tag_names.append(name)
        tag_ids = self.repo.create_or_find_tags(tag_names) if tag_names else []

        status = ContentStatus.PUBLISHED if config.auto_publish else parsed.status
        published_at = parsed.published_at
        if status == ContentStatus.PUBLISHED and published_at is None:
            published_at = datetime.now(timezone.utc)

        data = ContentData(
            title=parsed.title,
            content=parsed.content,
            summary=parsed.summary or self.parser.generate_summary(parsed.content),
            status=status,
            slug=parsed.slug,
            author_id=author_id,
            category_id=category_id,
            tag_ids=tag_ids,
            cover_image=parsed.cover_image,
            meta_description=parsed.meta_description,
            meta_keywords=list(parsed.meta_keywords),
            social_image=parsed.social_image,
            is_featured=parsed.is_featured,
            is_top=parsed.is_top,
            allow_comment=parsed.allow_comment,
            reading_time=parsed.reading_time,
            weight=parsed.weight,
            published_at=published_at,
            created_at=parsed.created_at,
            updated_at=parsed.updated_at,
        )

        if existing is not None:
            return self.repo.update_content(existing.id, data)
        return self.repo.create_content(data)
