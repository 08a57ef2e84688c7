from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING, Dict, List, Optional

from .models import ImportConfig, RawFile

if TYPE_CHECKING:
    from .importer import ArticleImporter

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Decides where `ArticleImporter.execute` runs once a job has been created.
    `launch` must return without waiting for the import to finish.
    """

    def launch(
        self,
        importer: "ArticleImporter",
        job_id: str,
        files: List[RawFile],
        author_id: str,
        config: ImportConfig,
    ) -> None:
        raise NotImplementedError

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the job's execution returns. False on timeout or unknown job."""
        return False


class ThreadJobRunner(JobRunner):
    """
    Runs each job on a background thread of a shared pool, decoupled from
    the request that started it. Jobs are independent; the pool size only
    bounds how many imports execute at the same time.
    """

    MAX_TRACKED = 100

    def __init__(self, max_jobs: int = 4):
        self.executor = ThreadPoolExecutor(max_workers=max_jobs, thread_name_prefix="import-job")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def launch(self, importer, job_id, files, author_id, config) -> None:
        future = self.executor.submit(importer.execute, job_id, files, author_id, config)
        future.add_done_callback(lambda f: self._report(job_id, f))
        with self._lock:
            if len(self._futures) >= self.MAX_TRACKED:
                for done_id in [k for k, f in self._futures.items() if f.done()]:
                    del self._futures[done_id]
            self._futures[job_id] = future

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return False
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def _report(self, job_id: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Import job %s runner crashed: %s", job_id, exc)
