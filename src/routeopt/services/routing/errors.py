"""Exceptions raised by the routing services."""

from __future__ import annotations


class RoutingError(Exception):
    """Base class for routing service failures."""


class CollaboratorError(RoutingError):
    """The routing engine call failed or returned an unusable payload."""


class PublishError(RoutingError):
    """A single publish attempt onto the batch queue was rejected."""


class DispatchError(RoutingError):
    """A batch could not be handed to the batch queue, so the job can never complete."""

    def __init__(self, message: str, *, job_id: str, batch_index: int) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.batch_index = batch_index
