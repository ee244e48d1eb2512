"""Routing request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.domain import Coordinate, Stop


class StopModel(BaseModel):
    stop_id: str = Field(..., min_length=1, description="Caller-supplied stop identifier.")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @field_validator("stop_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # Numeric ids from clients are accepted and kept as strings.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_domain(self) -> Stop:
        return Stop(stop_id=self.stop_id, latitude=self.latitude, longitude=self.longitude)


class RouteRequest(BaseModel):
    start_latitude: float = Field(..., ge=-90, le=90)
    start_longitude: float = Field(..., ge=-180, le=180)
    stops: List[StopModel] = Field(..., min_length=1)

    @property
    def start(self) -> Coordinate:
        return (self.start_latitude, self.start_longitude)

    def domain_stops(self) -> list[Stop]:
        return [stop.to_domain() for stop in self.stops]


class JobSubmissionResponse(BaseModel):
    job_id: str
    total_batches: int
    stop_count: int


class RouteResponse(BaseModel):
    optimized_stop_ids: List[str]
    total_distance_km: float
    total_distance: str = Field(..., description="Distance rendered as '12,345 km'.")
    status: str
    job_id: Optional[str] = None
    failed_batches: List[int] = Field(default_factory=list)
    error_message: Optional[str] = None
    route_geometry: Optional[List[List[float]]] = Field(
        default=None, description="[lat, lon] points of the whole route."
    )
    stop_geometry_mapping: Optional[Dict[str, List[int]]] = Field(
        default=None, description="stop_id -> [first, last] index into route_geometry."
    )
