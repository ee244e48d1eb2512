"""Greedy nearest-neighbour ordering of stops."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Coordinate, Stop
from ..geospatial import haversine_km


def sort_nearest_neighbor(start: Coordinate, stops: Sequence[Stop]) -> list[Stop]:
    """Order stops by repeatedly visiting the closest remaining one.

    Distances are great-circle (Haversine). Ties go to the stop that appears
    first in ``stops``. Runs in O(n^2); it only pre-sorts stops so that each
    batch holds geographically close neighbours.
    """
    remaining = list(stops)
    ordered: list[Stop] = []
    current_lat, current_lon = start

    while remaining:
        nearest_index = 0
        nearest_distance = float("inf")
        for index, stop in enumerate(remaining):
            distance = haversine_km(current_lat, current_lon, stop.latitude, stop.longitude)
            if distance < nearest_distance:
                nearest_distance = distance
                nearest_index = index
        nearest = remaining.pop(nearest_index)
        ordered.append(nearest)
        current_lat, current_lon = nearest.latitude, nearest.longitude

    return ordered
