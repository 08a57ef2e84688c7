from __future__ import annotations

import os
from functools import lru_cache

from blog_content.importing import (
    ArticleImporter,
    ContentRepository,
    InMemoryJobStore,
    JobRunner,
    ProgressTracker,
    RedisJobStore,
    RQImportQueue,
    RQJobRunner,
    SqlAlchemyContentRepository,
    ThreadJobRunner,
    WorkerConfig,
)


def _database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite+pysqlite:///./data/blog_content.db")


def _redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def get_worker_config() -> WorkerConfig:
    return WorkerConfig(
        database_url=_database_url(),
        redis_url=_redis_url(),
        batch_size=int(os.getenv("IMPORT_BATCH_SIZE", "5")),
        max_concurrency=int(os.getenv("IMPORT_MAX_CONCURRENCY", "3")),
        retention_seconds=int(os.getenv("IMPORT_RETENTION_SECONDS", "3600")),
    )


@lru_cache(maxsize=1)
def get_repo() -> ContentRepository:
    return SqlAlchemyContentRepository(_database_url())


@lru_cache(maxsize=1)
def get_tracker() -> ProgressTracker:
    config = get_worker_config()
    if os.getenv("JOB_STORE", "memory").lower() == "redis":
        store = RedisJobStore(config.redis_url)
    else:
        store = InMemoryJobStore()
    return ProgressTracker(store, retention_seconds=config.retention_seconds)


@lru_cache(maxsize=1)
def get_runner() -> JobRunner:
    if os.getenv("IMPORT_RUNNER", "thread").lower() == "rq":
        config = get_worker_config()
        return RQJobRunner(RQImportQueue(config.redis_url), config)
    return ThreadJobRunner()


@lru_cache(maxsize=1)
def get_importer() -> ArticleImporter:
    config = get_worker_config()
    return ArticleImporter(
        repository=get_repo(),
        tracker=get_tracker(),
        runner=get_runner(),
        batch_size=config.batch_size,
        max_concurrency=config.max_concurrency,
    )
