from __future__ import annotations

from typing import Iterable, List, Optional


class ArticleImportError(Exception):
    """Base class for import pipeline errors."""


class ImportValidationError(ArticleImportError):
    """
    Raised before a job is created when the config, the file batch or the
    author precondition is not met. `reasons` carries every individual failure.
    """

    def __init__(self, message: str, reasons: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.reasons: List[str] = list(reasons or [])


class AuthorNotFoundError(ImportValidationError):
    def __init__(self, author_id: str):
        super().__init__(f"Author not found: {author_id}", [f"User {author_id} does not exist"])
        self.author_id = author_id


class FileValidationError(ArticleImportError):
    """A single file failed validation while invalid files are not being skipped."""

    def __init__(self, message: str, reasons: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.reasons: List[str] = list(reasons or [])


class ContentConflictError(ArticleImportError):
    """Uniqueness violation while writing content (usually a slug collision)."""


class JobNotFoundError(ArticleImportError):
    pass
