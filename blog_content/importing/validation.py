from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from .errors import AuthorNotFoundError
from .models import ArticleRecord, ImportConfig, ImportMode, ImportResult, ParsedContent, RawFile
from .repository import ContentRepository
from .slugs import SLUG_PATTERN

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILE_COUNT = 100

MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 1_000_000
MAX_SUMMARY_LENGTH = 500
MAX_TAG_COUNT = 10
MAX_TAG_LENGTH = 50
MAX_CATEGORY_LENGTH = 100
MIN_WEIGHT, MAX_WEIGHT = 0, 1000

MAX_DEFAULT_TAGS = 10
MAX_DEFAULT_CATEGORY_LENGTH = 50

EARLIEST_PUBLISH_DATE = datetime(2000, 1, 1, tzinfo=timezone.utc)
MAX_PUBLISH_AHEAD = timedelta(days=365)


@dataclass
class ImportDecision:
    can_import: bool
    existing: Optional[ArticleRecord] = None
    result: Optional[ImportResult] = None


class ImportValidator:
    """
    Checks used by the importer. Everything except `validate_author` and
    `validate_file_for_import` is pure and returns a list of error strings
    (empty when valid) rather than raising.
    """

    def __init__(self, repository: ContentRepository):
        self.repo = repository

    # region Preconditions
    def validate_import_config(self, config: ImportConfig) -> List[str]:
        errors: List[str] = []
        if config.default_category is not None and not isinstance(config.default_category, str):
            errors.append("default_category must be a string")
        if not isinstance(config.default_tags, (list, tuple)):
            errors.append("default_tags must be a list of strings")
        elif not all(isinstance(tag, str) for tag in config.default_tags):
            errors.append("default_tags must only contain strings")
        for name in ("auto_publish", "overwrite_existing", "skip_invalid_files"):
            if not isinstance(getattr(config, name), bool):
                errors.append(f"{name} must be a boolean")
        if not isinstance(config.import_mode, ImportMode):
            try:
                ImportMode(config.import_mode)
            except ValueError:
                errors.append("import_mode must be 'strict' or 'loose'")
        return errors

    def validate_config_limits(self, config: ImportConfig) -> List[str]:
        errors: List[str] = []
        if len(config.default_tags or []) > MAX_DEFAULT_TAGS:
            errors.append(f"At most {MAX_DEFAULT_TAGS} default tags are allowed")
        if config.default_category and len(config.default_category) > MAX_DEFAULT_CATEGORY_LENGTH:
            errors.append(f"Default category must be at most {MAX_DEFAULT_CATEGORY_LENGTH} characters")
        return errors

    def validate_files(self, files: Sequence[RawFile]) -> List[str]:
        errors: List[str] = []
        if not files:
            errors.append("No files provided for import")
            return errors
        for file in files:
            if file.size > MAX_FILE_SIZE:
                errors.append(f"File {file.original_name} exceeds the size limit (10MB)")
        if len(files) > MAX_FILE_COUNT:
            errors.append(f"Too many files, at most {MAX_FILE_COUNT} are allowed per import")
        return errors

    def validate_single_file(self, file: RawFile) -> List[str]:
        errors: List[str] = []
        if not file.data:
            errors.append("File is empty")
        if not file.original_name:
            errors.append("File name is empty")
        if file.data:
            try:
                file.data.decode("utf-8")
            except UnicodeDecodeError:
                errors.append("Invalid file encoding, files must be UTF-8")
        return errors

    def validate_author(self, author_id: str) -> None:
        if not author_id or not self.repo.user_exists(author_id):
            raise AuthorNotFoundError(author_id)

    # endregion

    # region Parsed content
    def validate_parsed_data(self, data: ParsedContent) -> List[str]:
        errors: List[str] = []
        if len(data.title) > MAX_TITLE_LENGTH:
            errors.append(f"Title is too long, at most {MAX_TITLE_LENGTH} characters")
        if len(data.content) > MAX_CONTENT_LENGTH:
            errors.append("Content is too long, at most 1MB")
        if data.summary and len(data.summary) > MAX_SUMMARY_LENGTH:
            errors.append(f"Summary is too long, at most {MAX_SUMMARY_LENGTH} characters")
        if data.slug and not SLUG_PATTERN.match(data.slug):
            errors.append("Invalid slug, only lowercase letters, digits and hyphens are allowed")
        if len(data.tags) > MAX_TAG_COUNT:
            errors.append(f"Too many tags, at most {MAX_TAG_COUNT}")
        for tag in data.tags:
            if len(tag) > MAX_TAG_LENGTH:
                errors.append(f'Tag "{tag}" is too long, at most {MAX_TAG_LENGTH} characters')
        if data.category and len(data.category) > MAX_CATEGORY_LENGTH:
            errors.append(f"Category name is too long, at most {MAX_CATEGORY_LENGTH} characters")
        if not MIN_WEIGHT <= data.weight <= MAX_WEIGHT:
            errors.append(f"Weight must be between {MIN_WEIGHT} and {MAX_WEIGHT}")
        return errors

    def validate_dates(self, data: ParsedContent, now: Optional[datetime] = None) -> List[str]:
        errors: List[str] = []
        now = now or datetime.now(timezone.utc)

        if data.published_at:
            if data.published_at < EARLIEST_PUBLISH_DATE:
                errors.append("Publish date cannot be earlier than 2000-01-01")
            if data.published_at > now + MAX_PUBLISH_AHEAD:
                errors.append("Publish date cannot be more than one year in the future")
        if data.created_at and data.created_at > now:
            errors.append("Creation date cannot be in the future")
        if data.updated_at and data.updated_at > now:
            errors.append("Update date cannot be in the future")
        if data.created_at and data.updated_at and data.updated_at < data.created_at:
            errors.append("Update date cannot be earlier than creation date")
        return errors

    # endregion

    def validate_file_for_import(self, data: ParsedContent, config: ImportConfig, file_path: str) -> ImportDecision:
        existing = self.repo.find_content_by_slug_or_title(data.slug, data.title)
        if existing and not config.overwrite_existing:
            logger.info("Skipping %s, content already exists as %s", file_path, existing.id)
            return ImportDecision(
                can_import=False,
                result=self.create_skipped_result(file_path, f"Content already exists, skipped (title: {data.title})"),
            )
        return ImportDecision(can_import=True, existing=existing)

    def create_error_result(self, file_path: str, error: str, warnings: Optional[List[str]] = None) -> ImportResult:
        return ImportResult(file_path=file_path, success=False, error=error, warnings=list(warnings or []))

    def create_skipped_result(self, file_path: str, reason: str) -> ImportResult:
        # Skips carry their reason as a warning; `error` stays reserved for failures.
        return ImportResult(file_path=file_path, success=False, skipped=True, warnings=[reason])
