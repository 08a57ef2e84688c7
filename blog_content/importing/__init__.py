"""
Import subsystem exports.
"""

from .errors import (
    ArticleImportError,
    AuthorNotFoundError,
    ContentConflictError,
    FileValidationError,
    ImportValidationError,
    JobNotFoundError,
)
from .importer import ArticleImporter
from .job_queue import RQImportQueue, RQJobRunner, WorkerConfig, build_importer, run_import_job
from .job_store import InMemoryJobStore, JobStore, RedisJobStore
from .models import (
    ArticleRecord,
    ContentStatus,
    FileCheck,
    FileCheckReport,
    ImportConfig,
    ImportJob,
    ImportMode,
    ImportResult,
    ImportStatistics,
    ImportStatus,
    ImportSummary,
    ParsedContent,
    RawFile,
    StartImportResponse,
)
from .parser import ContentParser, MarkdownContentParser
from .progress import ProgressTracker
from .repository import ContentRepository, InMemoryContentRepository, SqlAlchemyContentRepository
from .runners import JobRunner, ThreadJobRunner
from .slugs import generate_slug, is_valid_slug
from .validation import ImportValidator

__all__ = [
    "ArticleImportError",
    "ArticleImporter",
    "ArticleRecord",
    "AuthorNotFoundError",
    "ContentConflictError",
    "ContentParser",
    "ContentRepository",
    "ContentStatus",
    "FileCheck",
    "FileCheckReport",
    "FileValidationError",
    "ImportConfig",
    "ImportJob",
    "ImportMode",
    "ImportResult",
    "ImportStatistics",
    "ImportStatus",
    "ImportSummary",
    "ImportValidationError",
    "ImportValidator",
    "InMemoryContentRepository",
    "InMemoryJobStore",
    "JobNotFoundError",
    "JobRunner",
    "JobStore",
    "MarkdownContentParser",
    "ParsedContent",
    "ProgressTracker",
    "RQImportQueue",
    "RQJobRunner",
    "RawFile",
    "RedisJobStore",
    "SqlAlchemyContentRepository",
    "StartImportResponse",
    "ThreadJobRunner",
    "WorkerConfig",
    "build_importer",
    "generate_slug",
    "is_valid_slug",
    "run_import_job",
]
