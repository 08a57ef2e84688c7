from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ImportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED)


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ImportMode(str, Enum):
    STRICT = "strict"
    LOOSE = "loose"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return default


@dataclass
class ImportConfig:
    default_category: Optional[str] = None
    default_tags: List[str] = field(default_factory=list)
    auto_publish: bool = False
    overwrite_existing: bool = False
    import_mode: ImportMode = ImportMode.LOOSE
    skip_invalid_files: bool = True

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "ImportConfig":
        """
        Build a config from loosely typed input (form fields, JSON bodies).
        Tags may come as a comma separated string, booleans as "true"/"false".
        Missing values fall back to the defaults above.
        """
        raw = raw or {}
        category = raw.get("default_category", raw.get("defaultCategory"))
        if isinstance(category, str):
            category = category.strip() or None

        tags = raw.get("default_tags", raw.get("defaultTags"))
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        elif isinstance(tags, (list, tuple)):
            tags = [str(t).strip() for t in tags if str(t).strip()]
        else:
            tags = []

        mode = raw.get("import_mode", raw.get("importMode"))
        if mode is None or (isinstance(mode, str) and not mode.strip()):
            import_mode = ImportMode.LOOSE
        else:
            # Unknown modes are kept as given so validation can reject them.
            try:
                import_mode = ImportMode(str(mode).strip().lower())
            except ValueError:
                import_mode = mode

        return cls(
            default_category=category,
            default_tags=tags,
            auto_publish=_parse_bool(raw.get("auto_publish", raw.get("autoPublish")), False),
            overwrite_existing=_parse_bool(raw.get("overwrite_existing", raw.get("overwriteExisting")), False),
            import_mode=import_mode,
            skip_invalid_files=_parse_bool(raw.get("skip_invalid_files", raw.get("skipInvalidFiles")), True),
        )


@dataclass
class RawFile:
    original_name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data or b"")


# Frontmatter key -> Frontmatter attribute. Anything else lands in `extra`.
FRONTMATTER_KEYS: Dict[str, str] = {
    "title": "title",
    "summary": "summary",
    "description": "description",
    "excerpt": "excerpt",
    "slug": "slug",
    "tags": "tags",
    "categories": "categories",
    "category": "category",
    "coverImage": "cover_image",
    "cover": "cover",
    "image": "image",
    "date": "date",
    "publishedAt": "published_at",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "status": "status",
    "published": "published",
    "featured": "featured",
    "isFeatured": "is_featured",
    "top": "top",
    "isTop": "is_top",
    "pinned": "pinned",
    "allowComment": "allow_comment",
    "metaDescription": "meta_description",
    "keywords": "keywords",
    "metaKeywords": "meta_keywords",
    "socialImage": "social_image",
    "ogImage": "og_image",
    "readingTime": "reading_time",
    "weight": "weight",
}


@dataclass
class Frontmatter:
    """
    Raw frontmatter values for the keys the importer understands. Values are
    kept as YAML produced them; the parser does the type normalization.
    """

    title: Any = None
    summary: Any = None
    description: Any = None
    excerpt: Any = None
    slug: Any = None
    tags: Any = None
    categories: Any = None
    category: Any = None
    cover_image: Any = None
    cover: Any = None
    image: Any = None
    date: Any = None
    published_at: Any = None
    created_at: Any = None
    updated_at: Any = None
    status: Any = None
    published: Any = None
    featured: Any = None
    is_featured: Any = None
    top: Any = None
    is_top: Any = None
    pinned: Any = None
    allow_comment: Any = None
    meta_description: Any = None
    keywords: Any = None
    meta_keywords: Any = None
    social_image: Any = None
    og_image: Any = None
    reading_time: Any = None
    weight: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Any]) -> "Frontmatter":
        matter = cls()
        for key, value in data.items():
            attr = FRONTMATTER_KEYS.get(str(key))
            if attr:
                setattr(matter, attr, value)
            else:
                matter.extra[str(key)] = value
        return matter


@dataclass(frozen=True)
class ParsedContent:
    title: str
    content: str
    summary: Optional[str] = None
    slug: Optional[str] = None
    tags: Tuple[str, ...] = ()
    category: Optional[str] = None
    cover_image: Optional[str] = None
    meta_description: Optional[str] = None
    social_image: Optional[str] = None
    meta_keywords: Tuple[str, ...] = ()
    status: ContentStatus = ContentStatus.DRAFT
    is_featured: bool = False
    is_top: bool = False
    allow_comment: bool = True
    reading_time: int = 0
    weight: int = 0
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ValidationOutcome:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Optional[ParsedContent] = None


@dataclass
class ImportResult:
    file_path: str
    success: bool
    skipped: bool = False
    content_id: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportResult":
        return cls(
            file_path=data["file_path"],
            success=bool(data.get("success")),
            skipped=bool(data.get("skipped")),
            content_id=data.get("content_id"),
            title=data.get("title"),
            error=data.get("error"),
            warnings=list(data.get("warnings") or []),
        )


@dataclass
class ImportCounters:
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0

    def record(self, result: ImportResult) -> None:
        if result.success:
            self.success_count += 1
        elif result.skipped:
            self.skipped_count += 1
        else:
            self.failure_count += 1


@dataclass
class ImportJob:
    id: str
    status: ImportStatus
    total_files: int
    start_time: int
    processed_files: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    current_file: Optional[str] = None
    progress_percent: int = 0
    estimated_remaining_ms: Optional[int] = 0
    error: Optional[str] = None
    results: Optional[List[ImportResult]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ImportJob":
        results = data.get("results")
        return cls(
            id=data["id"],
            status=ImportStatus(data["status"]),
            total_files=int(data["total_files"]),
            start_time=int(data["start_time"]),
            processed_files=int(data.get("processed_files") or 0),
            success_count=int(data.get("success_count") or 0),
            failure_count=int(data.get("failure_count") or 0),
            skipped_count=int(data.get("skipped_count") or 0),
            current_file=data.get("current_file"),
            progress_percent=int(data.get("progress_percent") or 0),
            estimated_remaining_ms=data.get("estimated_remaining_ms"),
            error=data.get("error"),
            results=[ImportResult.from_dict(r) for r in results] if results is not None else None,
        )


@dataclass
class ImportStatistics:
    total_files: int
    processed_files: int
    success_rate: float
    average_processing_time_ms: int


@dataclass
class StartImportResponse:
    job_id: str
    status: ImportStatus
    total_files: int
    message: str = "Import job started, poll the job id for progress"


@dataclass
class ImportSummary:
    total_files: int
    success_count: int
    failure_count: int
    skipped_count: int
    results: List[ImportResult]
    start_time: int
    end_time: int

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time


@dataclass
class FileCheck:
    filename: str
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    title: Optional[str] = None
    has_content: bool = False


@dataclass
class FileCheckReport:
    total_files: int
    valid_files: int
    invalid_files: int
    results: List[FileCheck] = field(default_factory=list)


# Persistence-side records returned by the content repository.


@dataclass
class UserRecord:
    id: str
    username: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class CategoryRecord:
    id: str
    name: str
    slug: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class TagRecord:
    id: str
    name: str
    slug: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class ContentData:
    """Create/update payload assembled by the importer."""

    title: str
    content: str
    summary: Optional[str]
    status: ContentStatus
    slug: Optional[str] = None
    author_id: Optional[str] = None
    category_id: Optional[str] = None
    tag_ids: List[str] = field(default_factory=list)
    cover_image: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: List[str] = field(default_factory=list)
    social_image: Optional[str] = None
    is_featured: bool = False
    is_top: bool = False
    allow_comment: bool = True
    reading_time: int = 0
    weight: int = 0
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ArticleRecord:
    id: str
    author_id: str
    title: str
    slug: str
    content: str
    summary: Optional[str]
    status: ContentStatus
    category_id: Optional[str] = None
    tag_ids: List[str] = field(default_factory=list)
    cover_image: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: List[str] = field(default_factory=list)
    social_image: Optional[str] = None
    is_featured: bool = False
    is_top: bool = False
    allow_comment: bool = True
    reading_time: int = 0
    weight: int = 0
    published_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
