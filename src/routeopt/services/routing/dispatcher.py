"""Split large optimization requests into batches and publish them."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Sequence

from ...config import settings
from ...models.domain import Coordinate, Stop
from .batch_queue import BatchPublisher
from .batching import create_batches
from .errors import DispatchError, PublishError
from .job_store import JobStore
from .models import BatchMessage
from .sorting import sort_nearest_neighbor

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        job_store: JobStore,
        publisher: BatchPublisher,
        batch_size: int | None = None,
        publish_max_retries: int | None = None,
        publish_backoff_seconds: float | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.job_store = job_store
        self.publisher = publisher
        self.batch_size = batch_size if batch_size is not None else settings.batch_size
        self.publish_max_retries = (
            publish_max_retries if publish_max_retries is not None else settings.publish_max_retries
        )
        self.publish_backoff_seconds = (
            publish_backoff_seconds if publish_backoff_seconds is not None else settings.publish_backoff_seconds
        )
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def submit(self, start: Coordinate, stops: Sequence[Stop]) -> str:
        """Register a job for ``stops`` and publish its batches. Returns the job id.

        Raises ``DispatchError`` if any batch cannot be published; the job is
        then evicted so batches already published are dropped on arrival.
        """
        if not stops:
            raise ValueError("At least one stop is required to dispatch a job.")

        job_id = self._id_factory()
        ordered = sort_nearest_neighbor(start, stops)
        batches = create_batches(start, ordered, self.batch_size)
        self.job_store.create_job(job_id, len(batches))

        logger.info(f"Submitting job {job_id} with {len(stops)} stops in {len(batches)} batches")

        for batch in batches:
            message = BatchMessage(
                job_id=job_id,
                batch_index=batch.index,
                total_batches=batch.total,
                stops=batch.stops,
                start=batch.anchor,
            )
            try:
                self._publish(message)
            except PublishError as exc:
                logger.error(f"Failed to publish batch {batch.index} for job {job_id}: {exc}")
                self.job_store.discard(job_id)
                raise DispatchError(
                    f"Could not publish batch {batch.index} of {batch.total} for job {job_id}: {exc}",
                    job_id=job_id,
                    batch_index=batch.index,
                ) from exc
            logger.debug(f"Sent batch {batch.index} for job {job_id}")

        return job_id

    def _publish(self, message: BatchMessage) -> None:
        attempt = 0
        while True:
            try:
                self.publisher.publish(message)
                return
            except PublishError:
                attempt += 1
                if attempt > self.publish_max_retries:
                    raise
                wait_time = self.publish_backoff_seconds * attempt
                logger.debug(
                    f"Publish of batch {message.batch_index} for job {message.job_id} failed, "
                    f"retrying in {wait_time:.2f}s (attempt {attempt}/{self.publish_max_retries})"
                )
                time.sleep(wait_time)
