"""HTTP client for the OSRM trip service."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate, Stop
from .errors import CollaboratorError
from .models import Geometry, StopRanges, TripPlan

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url).rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        # One client per call: workers call this from several threads at once.
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
            transport=self._transport,
        )

    def optimize(self, start: Coordinate, stops: Sequence[Stop]) -> TripPlan:
        """Optimize the visiting order of ``stops`` for a trip starting at ``start``.

        Raises ``CollaboratorError`` when OSRM cannot be reached, rejects the
        request or answers with a payload that cannot be interpreted.
        """
        if not stops:
            return TripPlan(stop_ids=[], distance_km=0.0)
        data = self.trip(build_coordinate_list(start, stops))
        return parse_trip_response(data, stops)

    def trip(self, coordinates: Sequence[Coordinate]) -> dict:
        """Call the OSRM trip endpoint with the first coordinate fixed as the source.

        Args:
            coordinates: Sequence of (lat, lon) tuples, start point first

        Returns:
            Raw OSRM response with ``trips`` and ``waypoints``
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM trip.")

        # OSRM expects coordinates as "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {
            "source": "first",
            "roundtrip": "false",
            "overview": "full",
            "geometries": "polyline",
            "annotations": "distance",
            "steps": "false",
        }
        url = f"{self.base_url}/trip/v1/{self.profile}/{coordinate_str}"

        data = self._get_with_retries(url, params)
        if data.get("code") != "Ok":
            error_msg = data.get("message") or data.get("code") or "Unknown OSRM trip error"
            raise CollaboratorError(f"OSRM trip request failed: {error_msg}")
        return data

    def _get_with_retries(self, url: str, params: dict[str, str]) -> dict:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if 400 <= response.status_code < 500:
                        # OSRM reports bad input (NoTrips, InvalidQuery, ...) with 4xx and a JSON body.
                        raise CollaboratorError(
                            f"OSRM rejected trip request ({response.status_code}): {_error_message(response)}"
                        )
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise CollaboratorError("OSRM response is not a JSON object.")
                    return data
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise CollaboratorError(f"OSRM returned {e.response.status_code} after {attempt} attempts") from e
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM trip request timed out after {self.max_retries} retries: {e}")
                        raise CollaboratorError(f"OSRM trip request timed out: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM trip timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise CollaboratorError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                except ValueError as e:
                    # Body was not valid JSON.
                    raise CollaboratorError(f"OSRM returned an unreadable response: {e}") from e
                except httpx.HTTPError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise CollaboratorError(f"OSRM trip request failed: {e}") from e
                    time.sleep(self.backoff_seconds * attempt)
        finally:
            client.close()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("code") or body)
    return str(body)


def parse_trip_response(data: dict[str, Any], stops: Sequence[Stop]) -> TripPlan:
    """Translate an OSRM trip response back to the caller's stop ids.

    ``waypoints`` come back in input order (start first) and each carries its
    position in the optimized trip as ``waypoint_index``. Leg ``k`` of the
    trip ends at the stop in trip position ``k + 1``; the geometry range of a
    stop is the span of points of the leg that arrives at it.
    """
    try:
        trip = data["trips"][0]
        waypoints = data["waypoints"]
        if len(waypoints) != len(stops) + 1:
            raise CollaboratorError(
                f"OSRM returned {len(waypoints)} waypoints for {len(stops) + 1} coordinates."
            )
        distance_km = float(trip["distance"]) / 1000.0
        positions = sorted(range(len(stops)), key=lambda i: int(waypoints[i + 1]["waypoint_index"]))
        stop_ids = [stops[i].stop_id for i in positions]

        geometry: Geometry | None = None
        stop_ranges: StopRanges | None = None
        encoded = trip.get("geometry")
        if isinstance(encoded, str) and encoded:
            geometry = [[lat, lon] for lat, lon in decode_polyline(encoded)]
            stop_ranges = _leg_ranges(trip.get("legs"), stop_ids, len(geometry))
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise CollaboratorError(f"Malformed OSRM trip response: {exc!r}") from exc

    return TripPlan(stop_ids=stop_ids, distance_km=distance_km, geometry=geometry, stop_ranges=stop_ranges)


def _leg_ranges(legs: Any, stop_ids: Sequence[str], point_count: int) -> StopRanges | None:
    if not isinstance(legs, list) or len(legs) != len(stop_ids) or point_count == 0:
        return None
    ranges: StopRanges = {}
    offset = 0
    last_point = point_count - 1
    for stop_id, leg in zip(stop_ids, legs):
        annotation = leg.get("annotation") if isinstance(leg, dict) else None
        if not annotation or "distance" not in annotation:
            return None
        segments = len(annotation["distance"])
        ranges[stop_id] = (min(offset, last_point), min(offset + segments, last_point))
        offset += segments
    return ranges


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format (precision 5) for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        lat += ~(result >> 1) if (result & 1) else (result >> 1)

        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        lon += ~(result >> 1) if (result & 1) else (result >> 1)

        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


def build_coordinate_list(start: Coordinate, stops: Sequence[Stop]) -> list[Coordinate]:
    """Build the OSRM waypoint list: ``[start, *stops]`` as (lat, lon) tuples."""
    return [start, *(stop.coordinate for stop in stops)]


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal two-point route request."""
    base = (base_url or settings.osrm_base_url).rstrip("/")
    if not base:
        return False
    try:
        # Two points in Berlin; works on public and self-hosted instances.
        test_coords = "13.388860,52.517037;13.385983,52.496891"
        url = f"{base}/route/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
