from __future__ import annotations

import json
import logging
import math
import random
import string
import threading
import time
from typing import Callable, Dict, List, Optional

from .job_store import JobStore
from .models import ImportCounters, ImportJob, ImportResult, ImportStatistics, ImportStatus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600
KEY_PREFIX = "import_progress_"
CANCELLED_MESSAGE = "Import job cancelled by user"

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ProgressTracker:
    """
    Owns the mutable state of import jobs. Every change is a
    read-modify-write against the job store, serialized by a per-job lock so
    concurrent workers of the same job never lose updates. Jobs that reached
    COMPLETED or FAILED are frozen: later updates are ignored.
    """

    def __init__(
        self,
        store: JobStore,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def generate_job_id(self) -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"import_{self.now_ms()}_{suffix}"

    # region Lifecycle
    def initialize(self, job_id: str, total_files: int) -> ImportJob:
        logger.info("Initializing import job %s with %d file(s)", job_id, total_files)
        job = ImportJob(
            id=job_id,
            status=ImportStatus.PENDING,
            total_files=total_files,
            start_time=self.now_ms(),
        )
        with self._lock_for(job_id):
            self._save(job)
        return job

    def mark_processing(self, job_id: str) -> Optional[ImportJob]:
        def apply(job: ImportJob) -> None:
            if job.status == ImportStatus.PENDING:
                job.status = ImportStatus.PROCESSING

        return self._mutate(job_id, apply)

    def update_current_file(self, job_id: str, file_name: str, processed: int, total: int) -> Optional[ImportJob]:
        def apply(job: ImportJob) -> None:
            job.current_file = file_name
            job.processed_files = max(job.processed_files, processed)
            job.progress_percent = max(job.progress_percent, _percent(job.processed_files, total))

        return self._mutate(job_id, apply)

    def update_after_file(
        self,
        job_id: str,
        processed: int,
        total: int,
        counters: ImportCounters,
        start_time: int,
    ) -> Optional[ImportJob]:
        eta = self.estimate_remaining_ms(start_time, processed, total)

        def apply(job: ImportJob) -> None:
            job.processed_files = max(job.processed_files, processed)
            job.success_count = max(job.success_count, counters.success_count)
            job.failure_count = max(job.failure_count, counters.failure_count)
            job.skipped_count = max(job.skipped_count, counters.skipped_count)
            job.progress_percent = max(job.progress_percent, _percent(job.processed_files, total))
            job.estimated_remaining_ms = eta

        return self._mutate(job_id, apply)

    def complete(self, job_id: str, results: List[ImportResult]) -> Optional[ImportJob]:
        def apply(job: ImportJob) -> None:
            if job.status != ImportStatus.PROCESSING:
                logger.warning("Cannot complete import job %s from status %s", job_id, job.status.value)
                return
            job.status = ImportStatus.COMPLETED
            job.progress_percent = 100
            job.estimated_remaining_ms = 0
            job.current_file = None
            job.results = list(results)

        return self._mutate(job_id, apply)

    def fail(self, job_id: str, error: str) -> Optional[ImportJob]:
        def apply(job: ImportJob) -> None:
            job.status = ImportStatus.FAILED
            job.error = error

        logger.error("Import job %s failed: %s", job_id, error)
        return self._mutate(job_id, apply)

    def cancel(self, job_id: str) -> bool:
        cancelled = False

        def apply(job: ImportJob) -> None:
            nonlocal cancelled
            if job.status == ImportStatus.PROCESSING:
                job.status = ImportStatus.FAILED
                job.error = CANCELLED_MESSAGE
                cancelled = True

        self._mutate(job_id, apply)
        if cancelled:
            logger.info("Import job %s cancelled", job_id)
        return cancelled

    # endregion

    # region Queries
    def get(self, job_id: str) -> Optional[ImportJob]:
        raw = self.store.get(self._key(job_id))
        if raw is None:
            return None
        return ImportJob.from_dict(json.loads(raw))

    def is_active(self, job_id: str) -> bool:
        job = self.get(job_id)
        return bool(job and job.status == ImportStatus.PROCESSING)

    def statistics(self, job_id: str) -> Optional[ImportStatistics]:
        job = self.get(job_id)
        if not job:
            return None
        success_rate = job.success_count / job.total_files * 100 if job.total_files > 0 else 0.0
        elapsed = self.now_ms() - job.start_time
        average = elapsed / job.processed_files if job.processed_files > 0 else 0
        return ImportStatistics(
            total_files=job.total_files,
            processed_files=job.processed_files,
            success_rate=_round_half_up(success_rate * 100) / 100,
            average_processing_time_ms=_round_half_up(average),
        )

    def estimate_remaining_ms(self, start_time: int, processed: int, total: int) -> int:
        if processed <= 0:
            return 0
        elapsed = max(0, self.now_ms() - start_time)
        return max(0, _round_half_up(elapsed / processed * (total - processed)))

    # endregion

    def cleanup_expired(self) -> int:
        """Evict jobs that started longer ago than the retention window."""
        cutoff = self.now_ms() - self.retention_seconds * 1000
        evicted = 0
        for key in self.store.keys(KEY_PREFIX):
            job_id = key[len(KEY_PREFIX):]
            job = self.get(job_id)
            if job is None or job.start_time < cutoff:
                self.store.delete(key)
                with self._locks_guard:
                    self._locks.pop(job_id, None)
                evicted += 1
        if evicted:
            logger.info("Evicted %d expired import job(s)", evicted)
        return evicted

    def _mutate(self, job_id: str, apply: Callable[[ImportJob], None]) -> Optional[ImportJob]:
        with self._lock_for(job_id):
            job = self.get(job_id)
            if job is None:
                logger.warning("Import job %s not found, update dropped", job_id)
                return None
            if job.status.is_terminal:
                logger.debug("Import job %s is %s, ignoring update", job_id, job.status.value)
                return job
            apply(job)
            self._save(job)
            return job

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.Lock()
            return lock

    def _save(self, job: ImportJob) -> None:
        payload = json.dumps(job.to_dict(), ensure_ascii=False).encode("utf-8")
        self.store.set(self._key(job.id), payload, self.retention_seconds)

    def _key(self, job_id: str) -> str:
        return f"{KEY_PREFIX}{job_id}"


def _percent(processed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, _round_half_up(processed / total * 100))


def _round_half_up(value: float) -> int:
    # Halves round up (12.5 -> 13), unlike round() which rounds to even.
    return math.floor(value + 0.5)
