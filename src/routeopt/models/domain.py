"""Domain models for stops and coordinates."""

from dataclasses import dataclass

# (latitude, longitude)
Coordinate = tuple[float, float]


@dataclass(frozen=True, slots=True)
class Stop:
    """A location to visit, identified by the caller-supplied id."""

    stop_id: str
    latitude: float
    longitude: float

    @property
    def coordinate(self) -> Coordinate:
        return (self.latitude, self.longitude)
