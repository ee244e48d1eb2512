"""In-process batch queue with at-least-once delivery."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import replace
from typing import Optional, Protocol

from ...config import settings
from .errors import PublishError
from .models import BatchMessage

logger = logging.getLogger(__name__)


class BatchPublisher(Protocol):
    def publish(self, message: BatchMessage) -> None:
        ...


class BatchQueue:
    """FIFO topic of batch messages shared by the dispatcher and the worker pool.

    A message taken with ``consume`` is gone from the queue; a consumer that
    fails to handle it hands it back with ``redeliver`` until the message has
    been delivered ``max_deliveries`` times.
    """

    def __init__(
        self,
        max_size: int | None = None,
        publish_timeout: float | None = None,
        max_deliveries: int | None = None,
    ) -> None:
        self.max_size = max_size if max_size is not None else settings.queue_max_size
        self.publish_timeout = publish_timeout if publish_timeout is not None else settings.publish_timeout_seconds
        self.max_deliveries = max_deliveries if max_deliveries is not None else settings.max_deliveries
        self._queue: queue.Queue[BatchMessage] = queue.Queue(maxsize=self.max_size)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def publish(self, message: BatchMessage) -> None:
        if self.closed:
            raise PublishError("Batch queue is closed.")
        try:
            self._queue.put(message, timeout=self.publish_timeout)
        except queue.Full as exc:
            raise PublishError(
                f"Batch queue is full ({self.max_size} messages), "
                f"could not publish batch {message.batch_index} of job {message.job_id}"
            ) from exc

    def consume(self, timeout: float = 0.5) -> Optional[BatchMessage]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def redeliver(self, message: BatchMessage) -> bool:
        """Put a message back for another attempt. Returns False once it is dropped."""
        if message.delivery_attempt >= self.max_deliveries:
            logger.error(
                f"Dropping batch {message.batch_index} of job {message.job_id} "
                f"after {message.delivery_attempt} delivery attempts"
            )
            return False
        if self.closed:
            logger.warning(f"Batch queue closed, not redelivering batch {message.batch_index} of job {message.job_id}")
            return False
        retry = replace(message, delivery_attempt=message.delivery_attempt + 1)
        # Redelivery must not block a consumer thread on a full queue.
        try:
            self._queue.put_nowait(retry)
        except queue.Full:
            logger.error(f"Batch queue full, dropping redelivery of batch {message.batch_index} of job {message.job_id}")
            return False
        logger.warning(
            f"Redelivering batch {message.batch_index} of job {message.job_id} "
            f"(attempt {retry.delivery_attempt}/{self.max_deliveries})"
        )
        return True

    def close(self) -> None:
        self._closed.set()
