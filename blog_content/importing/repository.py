from __future__ import annotations

import json
import threading
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text, create_engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import ContentConflictError
from .models import ArticleRecord, CategoryRecord, ContentData, ContentStatus, TagRecord, UserRecord
from .slugs import generate_slug

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _unique_names(names: Iterable[str]) -> List[str]:
    unique: List[str] = []
    for name in names:
        cleaned = (name or "").strip()
        if cleaned and cleaned not in unique:
            unique.append(cleaned)
    return unique


class UserModel(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True)
    username = Column(String, unique=True)
    created_at = Column(DateTime(timezone=True))


class CategoryModel(Base):
    __tablename__ = "categories"
    id = Column(String, primary_key=True)
    name = Column(String, unique=True, index=True)
    slug = Column(String, unique=True)
    created_at = Column(DateTime(timezone=True))


class TagModel(Base):
    __tablename__ = "tags"
    id = Column(String, primary_key=True)
    name = Column(String, unique=True, index=True)
    slug = Column(String, unique=True)
    created_at = Column(DateTime(timezone=True))


class ArticleModel(Base):
    __tablename__ = "articles"
    id = Column(String, primary_key=True)
    author_id = Column(String, index=True)
    title = Column(String, index=True)
    slug = Column(String, unique=True, index=True)
    content = Column(Text)
    summary = Column(String)
    status = Column(Enum(ContentStatus))
    category_id = Column(String)
    cover_image = Column(String)
    meta_description = Column(String)
    meta_keywords_json = Column(String)
    social_image = Column(String)
    is_featured = Column(Boolean, default=False)
    is_top = Column(Boolean, default=False)
    allow_comment = Column(Boolean, default=True)
    reading_time = Column(Integer)
    weight = Column(Integer)
    published_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))


class ArticleTagModel(Base):
    __tablename__ = "article_tags"
    article_id = Column(String, primary_key=True)
    tag_id = Column(String, primary_key=True)


class ContentRepository:
    """
    Persistence boundary used by the import pipeline: author lookup,
    category/tag resolution and article create/update/lookup. Calls come
    from several worker threads at once, so implementations must be
    thread-safe.
    """

    # Author lookup
    def user_exists(self, user_id: str) -> bool:
        raise NotImplementedError

    # Taxonomy resolution
    def find_or_create_category(self, name: str) -> str:
        raise NotImplementedError

    def create_or_find_tags(self, names: Iterable[str]) -> List[str]:
        raise NotImplementedError

    # Content persistence
    def create_content(self, data: ContentData) -> ArticleRecord:
        raise NotImplementedError

    def update_content(self, content_id: str, data: ContentData) -> ArticleRecord:
        raise NotImplementedError

    def find_content_by_slug_or_title(self, slug: Optional[str], title: str) -> Optional[ArticleRecord]:
        raise NotImplementedError

    def get_content(self, content_id: str) -> Optional[ArticleRecord]:
        raise NotImplementedError


class InMemoryContentRepository(ContentRepository):
    """
    Dict-backed repository for local runs and tests. Keeps copies of the
    dataclasses so callers cannot mutate stored state.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.categories: Dict[str, CategoryRecord] = {}
        self.tags: Dict[str, TagRecord] = {}
        self.articles: Dict[str, ArticleRecord] = {}
        self._lock = threading.RLock()

    def _clone(self, obj):
        return deepcopy(obj)

    def add_user(self, user_id: str, username: Optional[str] = None) -> UserRecord:
        user = UserRecord(id=user_id, username=username or user_id)
        with self._lock:
            self.users[user_id] = self._clone(user)
        return user

    def user_exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self.users

    def find_or_create_category(self, name: str) -> str:
        with self._lock:
            for category in self.categories.values():
                if category.name == name:
                    return category.id
            category = CategoryRecord(id=_new_id(), name=name, slug=generate_slug(name, fallback_prefix="category"))
            self.categories[category.id] = category
            return category.id

    def create_or_find_tags(self, names: Iterable[str]) -> List[str]:
        tag_ids: List[str] = []
        with self._lock:
            by_name = {tag.name: tag.id for tag in self.tags.values()}
            for name in _unique_names(names):
                tag_id = by_name.get(name)
                if tag_id is None:
                    tag = TagRecord(id=_new_id(), name=name, slug=generate_slug(name, fallback_prefix="tag"))
                    self.tags[tag.id] = tag
                    by_name[name] = tag_id = tag.id
                tag_ids.append(tag_id)
        return tag_ids

    def create_content(self, data: ContentData) -> ArticleRecord:
        with self._lock:
            if data.slug:
                if self._slug_taken(data.slug):
                    raise ContentConflictError(f"Slug already in use: {data.slug}")
                slug = data.slug
            else:
                slug = self._unique_slug(generate_slug(data.title))
            now = _utcnow()
            record = ArticleRecord(
                id=_new_id(),
                author_id=data.author_id or "",
                title=data.title,
                slug=slug,
                content=data.content,
                summary=data.summary,
                status=data.status,
                category_id=data.category_id,
                tag_ids=list(data.tag_ids),
                cover_image=data.cover_image,
                meta_description=data.meta_description,
                meta_keywords=list(data.meta_keywords),
                social_image=data.social_image,
                is_featured=data.is_featured,
                is_top=data.is_top,
                allow_comment=data.allow_comment,
                reading_time=data.reading_time,
                weight=data.weight,
                published_at=data.published_at,
                created_at=data.created_at or now,
                updated_at=data.updated_at or now,
            )
            self.articles[record.id] = record
            return self._clone(record)

    def update_content(self, content_id: str, data: ContentData) -> ArticleRecord:
        with self._lock:
            record = self.articles.get(content_id)
            if not record:
                raise ValueError(f"Content {content_id} not found")
            if data.slug and data.slug != record.slug:
                if self._slug_taken(data.slug):
                    raise ContentConflictError(f"Slug already in use: {data.slug}")
                record.slug = data.slug
            record.title = data.title
            record.content = data.content
            record.summary = data.summary
            record.status = data.status
            record.category_id = data.category_id
            record.tag_ids = list(data.tag_ids)
            record.cover_image = data.cover_image
            record.meta_description = data.meta_description
            record.meta_keywords = list(data.meta_keywords)
            record.social_image = data.social_image
            record.is_featured = data.is_featured
            record.is_top = data.is_top
            record.allow_comment = data.allow_comment
            record.reading_time = data.reading_time
            record.weight = data.weight
            record.published_at = data.published_at
            if data.created_at:
                record.created_at = data.created_at
            record.updated_at = data.updated_at or _utcnow()
            return self._clone(record)

    def find_content_by_slug_or_title(self, slug: Optional[str], title: str) -> Optional[ArticleRecord]:
        with self._lock:
            if slug:
                for record in self.articles.values():
                    if record.slug == slug:
                        return self._clone(record)
            for record in self.articles.values():
                if record.title == title:
                    return self._clone(record)
        return None

    def get_content(self, content_id: str) -> Optional[ArticleRecord]:
        with self._lock:
            record = self.articles.get(content_id)
            return self._clone(record) if record else None

    def _slug_taken(self, slug: str) -> bool:
        return any(record.slug == slug for record in self.articles.values())

    def _unique_slug(self, base: str) -> str:
        slug, suffix = base, 2
        while self._slug_taken(slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug


class SqlAlchemyContentRepository(ContentRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    Each call opens its own session, so an instance can be shared by the
    import worker threads.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    # region Users
    def add_user(self, user_id: str, username: Optional[str] = None) -> UserRecord:
        user = UserRecord(id=user_id, username=username or user_id)
        with self._session() as session:
            session.merge(UserModel(id=user.id, username=user.username, created_at=user.created_at))
            session.commit()
        return user

    def user_exists(self, user_id: str) -> bool:
        with self._session() as session:
            return session.get(UserModel, user_id) is not None

    # endregion

    # region Taxonomy
    def find_or_create_category(self, name: str) -> str:
        stmt = select(CategoryModel).where(CategoryModel.name == name)
        with self._session() as session:
            existing = session.execute(stmt).scalars().first()
            if existing:
                return existing.id
            model = CategoryModel(
                id=_new_id(),
                name=name,
                slug=generate_slug(name, fallback_prefix="category"),
                created_at=_utcnow(),
            )
            session.add(model)
            try:
                session.commit()
                return model.id
            except IntegrityError:
                # Another worker created it between our select and insert.
                session.rollback()
                existing = session.execute(stmt).scalars().first()
                if not existing:
                    raise
                return existing.id

    def create_or_find_tags(self, names: Iterable[str]) -> List[str]:
        tag_ids: List[str] = []
        with self._session() as session:
            for name in _unique_names(names):
                stmt = select(TagModel).where(TagModel.name == name)
                existing = session.execute(stmt).scalars().first()
                if existing:
                    tag_ids.append(existing.id)
                    continue
                model = TagModel(id=_new_id(), name=name, slug=generate_slug(name, fallback_prefix="tag"), created_at=_utcnow())
                session.add(model)
                try:
                    session.commit()
                    tag_ids.append(model.id)
                except IntegrityError:
                    session.rollback()
                    existing = session.execute(stmt).scalars().first()
                    if not existing:
                        raise
                    tag_ids.append(existing.id)
        return tag_ids

    # endregion

    # region Content
    def create_content(self, data: ContentData) -> ArticleRecord:
        now = _utcnow()
        with self._session() as session:
            if data.slug:
                slug = data.slug
            else:
                slug = self._unique_slug(session, generate_slug(data.title))
            model = ArticleModel(
                id=_new_id(),
                author_id=data.author_id,
                slug=slug,
                created_at=data.created_at or now,
            )
            self._apply(model, data, now)
            session.add(model)
            for tag_id in data.tag_ids:
                session.add(ArticleTagModel(article_id=model.id, tag_id=tag_id))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ContentConflictError(f"Slug already in use: {slug}") from exc
            return self._to_record(model, list(data.tag_ids))

    def update_content(self, content_id: str, data: ContentData) -> ArticleRecord:
        now = _utcnow()
        with self._session() as session:
            model = session.get(ArticleModel, content_id)
            if not model:
                raise ValueError(f"Content {content_id} not found")
            if data.slug:
                model.slug = data.slug
            if data.created_at:
                model.created_at = data.created_at
            self._apply(model, data, now)
            try:
                # The delete autoflushes the pending slug change.
                session.execute(delete(ArticleTagModel).where(ArticleTagModel.article_id == content_id))
                for tag_id in data.tag_ids:
                    session.add(ArticleTagModel(article_id=content_id, tag_id=tag_id))
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ContentConflictError(f"Slug already in use: {data.slug}") from exc
            return self._to_record(model, list(data.tag_ids))

    def find_content_by_slug_or_title(self, slug: Optional[str], title: str) -> Optional[ArticleRecord]:
        with self._session() as session:
            model = None
            if slug:
                model = session.execute(select(ArticleModel).where(ArticleModel.slug == slug)).scalars().first()
            if model is None:
                model = session.execute(select(ArticleModel).where(ArticleModel.title == title)).scalars().first()
            if model is None:
                return None
            return self._to_record(model, self._tag_ids(session, model.id))

    def get_content(self, content_id: str) -> Optional[ArticleRecord]:
        with self._session() as session:
            model = session.get(ArticleModel, content_id)
            if not model:
                return None
            return self._to_record(model, self._tag_ids(session, model.id))

    def list_contents(self) -> List[ArticleRecord]:
        with self._session() as session:
            models = session.execute(select(ArticleModel)).scalars().all()
            return [self._to_record(m, self._tag_ids(session, m.id)) for m in models]

    # endregion

    def _apply(self, model: ArticleModel, data: ContentData, now: datetime) -> None:
        model.title = data.title
        model.content = data.content
        model.summary = data.summary
        model.status = data.status
        model.category_id = data.category_id
        model.cover_image = data.cover_image
        model.meta_description = data.meta_description
        model.meta_keywords_json = json.dumps(list(data.meta_keywords), ensure_ascii=False)
        model.social_image = data.social_image
        model.is_featured = data.is_featured
        model.is_top = data.is_top
        model.allow_comment = data.allow_comment
        model.reading_time = data.reading_time
        model.weight = data.weight
        model.published_at = data.published_at
        model.updated_at = data.updated_at or now

    def _unique_slug(self, session: Session, base: str) -> str:
        slug, suffix = base, 2
        while session.execute(select(ArticleModel.id).where(ArticleModel.slug == slug)).first():
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def _tag_ids(self, session: Session, article_id: str) -> List[str]:
        stmt = select(ArticleTagModel.tag_id).where(ArticleTagModel.article_id == article_id)
        return list(session.execute(stmt).scalars().all())

    def _to_record(self, model: ArticleModel, tag_ids: List[str]) -> ArticleRecord:
        return ArticleRecord(
            id=model.id,
            author_id=model.author_id or "",
            title=model.title,
            slug=model.slug,
            content=model.content,
            summary=model.summary,
            status=model.status,
            category_id=model.category_id,
            tag_ids=tag_ids,
            cover_image=model.cover_image,
            meta_description=model.meta_description,
            meta_keywords=json.loads(model.meta_keywords_json or "[]"),
            social_image=model.social_image,
            is_featured=bool(model.is_featured),
            is_top=bool(model.is_top),
            allow_comment=bool(model.allow_comment),
            reading_time=int(model.reading_time or 0),
            weight=int(model.weight or 0),
            published_at=_as_utc(model.published_at),
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )
