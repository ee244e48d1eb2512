"""Routing domain models shared by the dispatcher, workers and job store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ...models.domain import Coordinate, Stop

# [lat, lon] points, in path order
Geometry = List[List[float]]
# stop_id -> (first, last) index into a geometry array
StopRanges = Dict[str, Tuple[int, int]]


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    INTERRUPTED = "interrupted"
    ERROR = "error"


@dataclass(slots=True)
class TripPlan:
    """Optimized visiting order for one set of stops, as returned by the routing engine."""

    stop_ids: List[str]
    distance_km: float
    geometry: Optional[Geometry] = None
    stop_ranges: Optional[StopRanges] = None


@dataclass(frozen=True, slots=True)
class Batch:
    index: int
    total: int
    stops: Tuple[Stop, ...]
    anchor: Coordinate


@dataclass(frozen=True, slots=True)
class BatchMessage:
    """Payload published once per batch onto the batch queue."""

    job_id: str
    batch_index: int
    total_batches: int
    stops: Tuple[Stop, ...]
    start: Coordinate
    delivery_attempt: int = 1

    def stop_ids(self) -> List[str]:
        return [stop.stop_id for stop in self.stops]


@dataclass(frozen=True, slots=True)
class BatchResult:
    job_id: str
    batch_index: int
    stop_ids: List[str]
    distance_km: float
    geometry: Optional[Geometry] = None
    stop_ranges: Optional[StopRanges] = None
    success: bool = True
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, message: BatchMessage, error: str) -> "BatchResult":
        """Failure result that keeps the batch's unrouted order as a fallback."""
        return cls(
            job_id=message.job_id,
            batch_index=message.batch_index,
            stop_ids=message.stop_ids(),
            distance_km=0.0,
            success=False,
            error_message=error,
        )


@dataclass(slots=True)
class AggregatedResult:
    stop_ids: List[str]
    total_distance_km: float
    status: ResultStatus = ResultStatus.SUCCESS
    geometry: Optional[Geometry] = None
    stop_ranges: Optional[StopRanges] = None
    failed_batches: List[int] = field(default_factory=list)
    error_message: Optional[str] = None
    job_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (ResultStatus.SUCCESS, ResultStatus.PARTIAL_FAILURE)

    @classmethod
    def from_trip(cls, plan: TripPlan) -> "AggregatedResult":
        return cls(
            stop_ids=list(plan.stop_ids),
            total_distance_km=plan.distance_km,
            geometry=plan.geometry or None,
            stop_ranges=plan.stop_ranges or None,
        )

    @classmethod
    def terminal(cls, status: ResultStatus, message: str, job_id: str | None = None) -> "AggregatedResult":
        """Empty result describing why no route is available."""
        return cls(
            stop_ids=[],
            total_distance_km=0.0,
            status=status,
            error_message=message,
            job_id=job_id,
        )
