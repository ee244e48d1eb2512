"""Batch workers: route one batch per message and report into the job store."""

from __future__ import annotations

import logging
import threading
from typing import Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinate, Stop
from .batch_queue import BatchQueue
from .errors import CollaboratorError
from .job_store import JobStore
from .models import BatchMessage, BatchResult, TripPlan

logger = logging.getLogger(__name__)


class RoutingCollaborator(Protocol):
    def optimize(self, start: Coordinate, stops: Sequence[Stop]) -> TripPlan:
        ...


class BatchWorker:
    def __init__(self, optimizer: RoutingCollaborator, job_store: JobStore) -> None:
        self.optimizer = optimizer
        self.job_store = job_store

    def process(self, message: BatchMessage) -> BatchResult:
        """Route one batch and report it. Routing failures become failed results."""
        logger.info(
            f"Processing batch {message.batch_index}/{message.total_batches} for job {message.job_id} "
            f"({len(message.stops)} stops, attempt {message.delivery_attempt})"
        )
        result = self.route(message)
        self.job_store.add_batch_result(result)
        return result

    def route(self, message: BatchMessage) -> BatchResult:
        try:
            plan = self.optimizer.optimize(message.start, message.stops)
        except CollaboratorError as exc:
            logger.error(f"Failed to route batch {message.batch_index} for job {message.job_id}: {exc}")
            return BatchResult.failed(message, str(exc))

        known = set(message.stop_ids())
        if set(plan.stop_ids) != known or len(plan.stop_ids) != len(message.stops):
            logger.error(
                f"Routing engine returned {len(plan.stop_ids)} stops for batch {message.batch_index} "
                f"of job {message.job_id}, expected {len(message.stops)}"
            )
            return BatchResult.failed(message, "Routing engine returned a different set of stops.")

        logger.info(
            f"Completed batch {message.batch_index} for job {message.job_id}: "
            f"{plan.distance_km:.3f} km, {len(plan.geometry or [])} geometry points"
        )
        return BatchResult(
            job_id=message.job_id,
            batch_index=message.batch_index,
            stop_ids=list(plan.stop_ids),
            distance_km=plan.distance_km,
            geometry=plan.geometry,
            stop_ranges=plan.stop_ranges,
        )


class WorkerPool:
    """Threads that consume batch messages and hand them to a ``BatchWorker``.

    A message whose processing raises is handed back to the queue for
    redelivery. Once the queue refuses it, the batch is reported as failed.
    Routing failures never reach this point; they are already reported as
    failed batch results.
    """

    def __init__(
        self,
        batch_queue: BatchQueue,
        worker: BatchWorker,
        size: int | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.batch_queue = batch_queue
        self.worker = worker
        self.size = size if size is not None else settings.worker_count
        if self.size < 1:
            raise ValueError(f"Worker pool needs at least one worker, got {self.size}.")
        self.poll_interval = poll_interval
        self._threads: list[threading.Thread] = []
        self._stopping = threading.Event()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stopping.clear()
            self._threads = [
                threading.Thread(target=self._run, name=f"batch-worker-{index}", daemon=True)
                for index in range(self.size)
            ]
            for thread in self._threads:
                thread.start()
        logger.info(f"Started {self.size} batch workers")

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            self._stopping.set()
            for thread in self._threads:
                thread.join(timeout)
            self._threads = []
        logger.info("Stopped batch workers")

    def _run(self) -> None:
        while not self._stopping.is_set():
            message = self.batch_queue.consume(timeout=self.poll_interval)
            if message is None:
                continue
            try:
                self.worker.process(message)
            except Exception as exc:
                logger.exception(f"Unexpected error processing batch {message.batch_index} for job {message.job_id}")
                if not self.batch_queue.redeliver(message):
                    # Out of attempts, so the batch is reported as failed.
                    self.worker.job_store.add_batch_result(BatchResult.failed(message, str(exc)))
