"""In-memory registry of batch jobs awaiting their results.

A job is registered with the number of batches it was split into. Workers
report one ``BatchResult`` per batch, in any order and possibly more than
once. The report that brings the number of distinct batch indices up to the
expected count aggregates the job and releases its waiter. Waiters always get
an ``AggregatedResult`` back, whether the job completed, timed out, was never
registered or was interrupted, and the job is evicted once its waiter returns.

Locking is two-level: a registry lock guards the job-id map for the brief
insert/lookup/remove operations, and every job carries its own lock for the
record-and-check-complete step so unrelated jobs never contend.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .models import AggregatedResult, BatchResult, ResultStatus, StopRanges

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobSnapshot:
    job_id: str
    expected_batches: int
    received_batches: int
    age_seconds: float


@dataclass(slots=True)
class _Job:
    job_id: str
    expected_batches: int
    created_at: float = field(default_factory=time.monotonic)
    results: Dict[int, BatchResult] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)
    done: threading.Event = field(default_factory=threading.Event)
    outcome: Optional[AggregatedResult] = None
    interrupted: bool = False


class JobStore:
    def __init__(self) -> None:
        self._jobs: Dict[str, _Job] = {}
        self._registry_lock = threading.Lock()

    def __contains__(self, job_id: object) -> bool:
        with self._registry_lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._jobs)

    def create_job(self, job_id: str, expected_batches: int) -> None:
        if expected_batches < 1:
            raise ValueError(f"Job {job_id} must expect at least one batch, got {expected_batches}.")
        with self._registry_lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists.")
            self._jobs[job_id] = _Job(job_id=job_id, expected_batches=expected_batches)
        logger.info(f"Created job {job_id} with {expected_batches} batches")

    def add_batch_result(self, result: BatchResult) -> bool:
        """Record a batch result. Returns False when the report was dropped.

        Reports for unknown jobs (never created, already evicted) and for
        indices outside the job's range are dropped. A redelivered report for
        an index that already arrived replaces the earlier one.
        """
        job = self._get(result.job_id)
        if job is None:
            logger.warning(f"Received result for unknown job: {result.job_id} (batch {result.batch_index})")
            return False
        if not 0 <= result.batch_index < job.expected_batches:
            logger.warning(
                f"Dropping batch {result.batch_index} for job {result.job_id}: "
                f"expected indices 0..{job.expected_batches - 1}"
            )
            return False

        with job.lock:
            if job.done.is_set():
                logger.debug(f"Job {job.job_id} already released, ignoring batch {result.batch_index}")
                return False
            job.results[result.batch_index] = result
            received = len(job.results)
            logger.info(
                f"Received batch {result.batch_index} result for job {job.job_id} "
                f"({received}/{job.expected_batches}, success={result.success}, "
                f"{len(result.geometry or [])} geometry points)"
            )
            if received < job.expected_batches:
                return True
            job.outcome = aggregate_results(job.job_id, job.results)
            job.done.set()

        outcome = job.outcome
        logger.info(
            f"Job {job.job_id} completed with status {outcome.status.value}: "
            f"{len(outcome.stop_ids)} stops, {len(outcome.geometry or [])} geometry points"
        )
        return True

    def wait_for_result(self, job_id: str, timeout: float) -> AggregatedResult:
        """Block until the job completes or ``timeout`` seconds pass, then evict it."""
        job = self._get(job_id)
        if job is None:
            return AggregatedResult.terminal(ResultStatus.NOT_FOUND, "Job not found", job_id)

        try:
            if not job.done.wait(timeout):
                logger.warning(f"Job {job_id} timed out after {timeout:.1f} seconds")
                return AggregatedResult.terminal(ResultStatus.TIMEOUT, "Request timed out", job_id)
            if job.interrupted:
                logger.error(f"Job {job_id} was interrupted")
                return AggregatedResult.terminal(ResultStatus.INTERRUPTED, "Request was interrupted", job_id)
            if job.outcome is None:
                return AggregatedResult.terminal(ResultStatus.ERROR, "Job failed", job_id)
            return job.outcome
        finally:
            self._remove(job_id, job)

    def discard(self, job_id: str) -> None:
        """Evict a job without waiting for it, e.g. when its dispatch failed."""
        job = self._get(job_id)
        if job is not None:
            self._remove(job_id, job)

    def interrupt_all(self) -> int:
        """Release every pending waiter with an ``interrupted`` result."""
        with self._registry_lock:
            jobs = list(self._jobs.values())
        released = 0
        for job in jobs:
            with job.lock:
                if job.done.is_set():
                    continue
                job.interrupted = True
                job.done.set()
            released += 1
        if released:
            logger.warning(f"Interrupted {released} pending jobs")
        return released

    def pending_jobs(self) -> List[JobSnapshot]:
        now = time.monotonic()
        with self._registry_lock:
            jobs = list(self._jobs.values())
        snapshots = []
        for job in jobs:
            with job.lock:
                received = len(job.results)
            snapshots.append(
                JobSnapshot(
                    job_id=job.job_id,
                    expected_batches=job.expected_batches,
                    received_batches=received,
                    age_seconds=now - job.created_at,
                )
            )
        return snapshots

    def _get(self, job_id: str) -> Optional[_Job]:
        with self._registry_lock:
            return self._jobs.get(job_id)

    def _remove(self, job_id: str, job: _Job) -> None:
        with self._registry_lock:
            # A recreated job with the same id belongs to someone else.
            if self._jobs.get(job_id) is job:
                del self._jobs[job_id]
                logger.debug(f"Cleaned up job {job_id}")


def aggregate_results(job_id: str, results: Mapping[int, BatchResult]) -> AggregatedResult:
    """Merge batch results in ascending batch order into one route.

    Each batch's path starts where the previous batch ended, so once geometry
    has been emitted the first point of every following batch is a duplicate
    and is skipped. Per-stop geometry ranges are shifted by the number of
    points emitted before the batch, minus one when its first point was
    skipped. Failed batches keep their fallback stop order but contribute no
    distance or geometry.
    """
    stop_ids: List[str] = []
    geometry: List[List[float]] = []
    stop_ranges: StopRanges = {}
    failed: List[int] = []
    errors: List[str] = []
    total_distance = 0.0
    offset = 0

    for batch_index in sorted(results):
        result = results[batch_index]
        stop_ids.extend(result.stop_ids)

        if not result.success:
            logger.warning(f"Batch {batch_index} failed for job {job_id}: {result.error_message}")
            failed.append(batch_index)
            errors.append(f"batch {batch_index}: {result.error_message or 'unknown error'}")
            continue

        total_distance += result.distance_km
        points = result.geometry or []
        leading = not geometry
        skipped_first = not leading and len(points) > 1

        if leading:
            geometry.extend(points)
        elif skipped_first:
            geometry.extend(points[1:])

        for stop_id, (first, last) in (result.stop_ranges or {}).items():
            first, last = first + offset, last + offset
            if skipped_first:
                first, last = max(0, first - 1), max(0, last - 1)
            stop_ranges[stop_id] = (first, last)

        if leading:
            offset = len(points)
        elif skipped_first:
            offset += len(points) - 1

    if not failed:
        status = ResultStatus.SUCCESS
    elif len(failed) == len(results):
        status = ResultStatus.ERROR
    else:
        status = ResultStatus.PARTIAL_FAILURE

    logger.info(f"Aggregated {len(geometry)} geometry points and {len(stop_ranges)} mappings for job {job_id}")

    return AggregatedResult(
        stop_ids=stop_ids,
        total_distance_km=total_distance,
        status=status,
        geometry=geometry or None,
        stop_ranges=stop_ranges or None,
        failed_batches=failed,
        error_message="; ".join(errors) or None,
        job_id=job_id,
    )
