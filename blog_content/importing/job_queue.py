from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from redis import Redis
from rq import Queue, Worker

from .importer import DEFAULT_BATCH_SIZE, DEFAULT_MAX_CONCURRENCY, ArticleImporter
from .job_store import RedisJobStore
from .models import ImportConfig, RawFile
from .progress import DEFAULT_RETENTION_SECONDS, ProgressTracker
from .repository import SqlAlchemyContentRepository
from .runners import JobRunner

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    database_url: str
    redis_url: str = "redis://localhost:6379/0"
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    retention_seconds: int = DEFAULT_RETENTION_SECONDS


def build_importer(config: WorkerConfig, runner: Optional[JobRunner] = None) -> ArticleImporter:
    repo = SqlAlchemyContentRepository(config.database_url)
    tracker = ProgressTracker(RedisJobStore(config.redis_url), retention_seconds=config.retention_seconds)
    return ArticleImporter(
        repository=repo,
        tracker=tracker,
        runner=runner,
        batch_size=config.batch_size,
        max_concurrency=config.max_concurrency,
    )


def run_import_job(
    job_id: str,
    files: List[RawFile],
    author_id: str,
    import_config: ImportConfig,
    worker_config: WorkerConfig,
) -> None:
    """
    RQ task entrypoint. The job record was created by the web process; the
    worker only executes it against the shared database and Redis store.
    """
    importer = build_importer(worker_config)
    importer.execute(job_id, files, author_id, import_config)


class RQImportQueue:
    """
    Redis-backed import queue using RQ. Workers are started by calling
    `work()` in a dedicated process.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "import-jobs"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue_import_job(
        self,
        job_id: str,
        files: List[RawFile],
        author_id: str,
        import_config: ImportConfig,
        worker_config: WorkerConfig,
    ):
        """
        Enqueue an import job. RQ job_id is set to the import job id for idempotency.
        """
        return self.queue.enqueue(
            run_import_job,
            job_id,
            files,
            author_id,
            import_config,
            worker_config,
            job_id=job_id,
            retry=None,
        )

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)


class RQJobRunner(JobRunner):
    """
    Hands job execution to RQ workers. `wait` is not supported across
    processes; poll the progress store instead.
    """

    def __init__(self, queue: RQImportQueue, worker_config: WorkerConfig):
        self.queue = queue
        self.worker_config = worker_config

    def launch(self, importer, job_id, files, author_id, config) -> None:
        logger.info("Enqueueing import job %s on %s", job_id, self.queue.queue.name)
        self.queue.enqueue_import_job(job_id, files, author_id, config, self.worker_config)
