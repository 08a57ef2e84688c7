from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timezone
from pathlib import PurePath
from typing import Any, Iterable, List, Optional, Tuple

import yaml

from .models import ContentStatus, Frontmatter, ParsedContent, ValidationOutcome

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".md", ".markdown")
MAX_SUMMARY_LENGTH = 200
WORDS_PER_MINUTE = 200

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?", re.DOTALL | re.MULTILINE)
_HEADING_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_WORD_RE = re.compile(r"\S+")


class ContentParser:
    """
    Abstract content parser. Implementations must be pure: no I/O, no shared
    mutable state, so a single instance can serve concurrent workers.
    """

    def parse(self, content: str, file_path: str) -> ValidationOutcome:
        raise NotImplementedError

    def is_supported_extension(self, filename: str) -> bool:
        raise NotImplementedError


class MarkdownContentParser(ContentParser):
    """
    Markdown + YAML frontmatter parser.

    The frontmatter block is read with PyYAML and mapped onto `Frontmatter`;
    field synonyms (`description`/`excerpt` for the summary, `cover`/`image`
    for the cover image, ...) are resolved here so downstream code only sees
    a normalized `ParsedContent`.
    """

    def parse(self, content: str, file_path: str) -> ValidationOutcome:
        errors: List[str] = []
        warnings: List[str] = []

        try:
            matter, body = self.split_frontmatter(content)
        except ValueError as exc:
            logger.warning("Failed to parse frontmatter of %s: %s", file_path, exc)
            return ValidationOutcome(is_valid=False, errors=[f"Failed to parse file: {exc}"], warnings=warnings)

        title = self._extract_title(matter, body, file_path)
        if not title:
            errors.append("missing title")
        if not body.strip():
            errors.append("content is empty")
        if errors:
            return ValidationOutcome(is_valid=False, errors=errors, warnings=warnings)

        data = ParsedContent(
            title=title,
            content=body,
            summary=_first_string(matter.summary, matter.description, matter.excerpt),
            slug=matter.slug if isinstance(matter.slug, str) else None,
            tags=_normalize_list(matter.tags),
            category=_first_category(matter.categories, matter.category),
            cover_image=_first_string(matter.cover_image, matter.cover, matter.image),
            meta_description=_first_string(matter.meta_description, matter.description),
            social_image=_first_string(matter.social_image, matter.og_image),
            meta_keywords=_normalize_list(matter.keywords or matter.meta_keywords),
            status=_normalize_status(matter.status, matter.published),
            is_featured=bool(matter.featured or matter.is_featured),
            is_top=bool(matter.top or matter.is_top or matter.pinned),
            allow_comment=matter.allow_comment is not False,
            reading_time=self.reading_time(body),
            weight=_to_int(matter.weight),
            published_at=parse_date(matter.date or matter.published_at),
            created_at=parse_date(matter.created_at or matter.date),
            updated_at=parse_date(matter.updated_at),
        )

        if not data.summary:
            warnings.append("No summary found, one will be generated")
        if not data.slug:
            warnings.append("No slug found, one will be generated")

        return ValidationOutcome(is_valid=True, errors=errors, warnings=warnings, data=data)

    def split_frontmatter(self, content: str) -> Tuple[Frontmatter, str]:
        """
        Return the frontmatter and the remaining body. Files without a leading
        `---` block get an empty frontmatter. Raises ValueError when the block
        is not valid YAML or not a mapping.
        """
        text = content.lstrip("\ufeff")
        match = _FRONTMATTER_RE.match(text)
        if not match:
            return Frontmatter(), text

        try:
            raw = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            raise ValueError(f"invalid frontmatter: {exc}") from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError("frontmatter must be a key/value mapping")
        return Frontmatter.from_mapping(raw), text[match.end():]

    def is_supported_extension(self, filename: str) -> bool:
        return PurePath(filename or "").suffix.lower() in SUPPORTED_EXTENSIONS

    def decode_file_name(self, original_name: str) -> str:
        """
        Multipart uploads frequently deliver UTF-8 file names decoded as
        latin-1. Re-decode them; names that are already proper Unicode (or not
        valid UTF-8 bytes) are returned unchanged.
        """
        try:
            return original_name.encode("latin-1").decode("utf-8")
        except (UnicodeEncodeError, UnicodeDecodeError):
            return original_name

    def generate_summary(self, content: str, max_length: int = MAX_SUMMARY_LENGTH) -> str:
        text = re.sub(r"```[\s\S]*?```", "", content)
        text = re.sub(r"#{1,6}\s+", "", text)
        text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
        text = re.sub(r"\*(.+?)\*", r"\1", text)
        text = re.sub(r"\[(.+?)\]\(.+?\)", r"\1", text)
        text = re.sub(r"`(.+?)`", r"\1", text)
        text = text.strip()
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text

    def reading_time(self, body: str) -> int:
        words = len(_WORD_RE.findall(body))
        if words == 0:
            return 0
        return max(1, math.ceil(words / WORDS_PER_MINUTE))

    def _extract_title(self, matter: Frontmatter, body: str, file_path: str) -> Optional[str]:
        if isinstance(matter.title, str) and matter.title.strip():
            return matter.title.strip()
        heading = _HEADING_RE.search(body)
        if heading:
            return heading.group(1).strip()
        stem = PurePath(file_path or "").stem
        return stem or None


def parse_date(value: Any) -> Optional[datetime]:
    """
    Accepts epoch milliseconds, ISO-8601 strings and date/datetime values.
    Anything unparseable becomes None. Naive values are taken as UTC.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _first_string(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str):
            return candidate
    return None


def _first_category(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        if isinstance(candidate, (list, tuple)):
            names = _normalize_list(candidate)
            if names:
                return names[0]
    return None


def _normalize_list(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        return ()

    seen = []
    for item in items:
        name = str(item).strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


def _normalize_status(status: Any, published: Any) -> ContentStatus:
    if isinstance(status, str):
        try:
            return ContentStatus(status)
        except ValueError:
            pass
    if published is True or published == "true":
        return ContentStatus.PUBLISHED
    return ContentStatus.DRAFT


def _to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
