"""Routing orchestration service."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from ...config import Settings, settings as default_settings
from ...models.domain import Coordinate, Stop
from .batch_queue import BatchQueue
from .dispatcher import Dispatcher
from .job_store import JobStore
from .models import AggregatedResult
from .osrm_client import OSRMClient
from .worker import BatchWorker, RoutingCollaborator, WorkerPool

logger = logging.getLogger(__name__)


class RouteOptimizationService:
    """Entry point for optimization requests.

    Small requests are sent to the routing engine in one call. Requests with
    more stops than ``batch_threshold`` are dispatched as batches and the
    caller waits for the job store to assemble the result.
    """

    def __init__(
        self,
        *,
        optimizer: RoutingCollaborator,
        dispatcher: Dispatcher,
        job_store: JobStore,
        batching_enabled: bool = True,
        batch_threshold: int = 50,
        job_timeout_seconds: float = 180.0,
    ) -> None:
        self.optimizer = optimizer
        self.dispatcher = dispatcher
        self.job_store = job_store
        self.batching_enabled = batching_enabled
        self.batch_threshold = batch_threshold
        self.job_timeout_seconds = job_timeout_seconds

    def uses_batches(self, stop_count: int) -> bool:
        return self.batching_enabled and stop_count > self.batch_threshold

    def optimize(self, start: Coordinate, stops: Sequence[Stop]) -> AggregatedResult:
        logger.info(f"Received optimization request for {len(stops)} stops")
        if self.uses_batches(len(stops)):
            job_id = self.submit(start, stops)
            return self.fetch(job_id)
        return self.optimize_directly(start, stops)

    def optimize_directly(self, start: Coordinate, stops: Sequence[Stop]) -> AggregatedResult:
        if not stops:
            logger.warning("No stops provided in request")
            return AggregatedResult(stop_ids=[], total_distance_km=0.0)
        plan = self.optimizer.optimize(start, stops)
        return AggregatedResult.from_trip(plan)

    def submit(self, start: Coordinate, stops: Sequence[Stop]) -> str:
        return self.dispatcher.submit(start, stops)

    def fetch(self, job_id: str, timeout: float | None = None) -> AggregatedResult:
        wait = timeout if timeout is not None else self.job_timeout_seconds
        return self.job_store.wait_for_result(job_id, wait)

    def batch_count(self, stop_count: int) -> int:
        return math.ceil(stop_count / self.dispatcher.batch_size)


@dataclass(slots=True)
class RoutingRuntime:
    """Everything one process needs to serve optimization requests."""

    service: RouteOptimizationService
    job_store: JobStore
    batch_queue: BatchQueue
    pool: WorkerPool

    def start(self) -> None:
        self.pool.start()

    def shutdown(self, timeout: float = 5.0) -> None:
        self.batch_queue.close()
        self.job_store.interrupt_all()
        self.pool.stop(timeout)


def build_runtime(
    config: Settings | None = None,
    optimizer: RoutingCollaborator | None = None,
) -> RoutingRuntime:
    config = config or default_settings
    optimizer = optimizer or OSRMClient(
        base_url=config.osrm_base_url,
        profile=config.osrm_profile,
        timeout=config.osrm_timeout_seconds,
        max_retries=config.osrm_max_retries,
        backoff_seconds=config.osrm_backoff_seconds,
    )
    job_store = JobStore()
    batch_queue = BatchQueue(
        max_size=config.queue_max_size,
        publish_timeout=config.publish_timeout_seconds,
        max_deliveries=config.max_deliveries,
    )
    dispatcher = Dispatcher(
        job_store,
        batch_queue,
        batch_size=config.batch_size,
        publish_max_retries=config.publish_max_retries,
        publish_backoff_seconds=config.publish_backoff_seconds,
    )
    pool = WorkerPool(batch_queue, BatchWorker(optimizer, job_store), size=config.worker_count)
    service = RouteOptimizationService(
        optimizer=optimizer,
        dispatcher=dispatcher,
        job_store=job_store,
        batching_enabled=config.batching_enabled,
        batch_threshold=config.batch_threshold,
        job_timeout_seconds=config.job_timeout_seconds,
    )
    return RoutingRuntime(service=service, job_store=job_store, batch_queue=batch_queue, pool=pool)
