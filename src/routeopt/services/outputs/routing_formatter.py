"""Serializers for routing outputs."""

from __future__ import annotations

from ...schemas.routing import RouteResponse
from ..routing.models import AggregatedResult


def format_distance_km(distance_km: float) -> str:
    """Render a distance as ``"12,345 km"`` (three decimals, comma separator)."""
    return f"{distance_km:.3f} km".replace(".", ",")


def aggregated_result_to_response(result: AggregatedResult) -> RouteResponse:
    mapping = None
    if result.stop_ranges:
        mapping = {stop_id: [first, last] for stop_id, (first, last) in result.stop_ranges.items()}
    return RouteResponse(
        optimized_stop_ids=list(result.stop_ids),
        total_distance_km=round(result.total_distance_km, 3),
        total_distance=format_distance_km(result.total_distance_km),
        status=result.status.value,
        job_id=result.job_id,
        failed_batches=list(result.failed_batches),
        error_message=result.error_message,
        route_geometry=result.geometry,
        stop_geometry_mapping=mapping,
    )
