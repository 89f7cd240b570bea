"""
Static campus reference data: named zones, their map coordinates, and the
predicted routine path a student is expected to follow during a school day.
"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .types import Zone


UNKNOWN_ZONE = Zone(name="Unknown Region", coordinate=(50.0, 85.0), label="blind spot")

CAMPUS_ZONES: Tuple[Zone, ...] = (
    Zone(name="Dormitory B", coordinate=(15.0, 20.0), label="dorm"),
    Zone(name="Canteen 1", coordinate=(15.0, 60.0), label="canteen 1"),
    Zone(name="Canteen 2", coordinate=(30.0, 45.0), label="canteen 2"),
    Zone(name="Grade 11 Building", coordinate=(55.0, 35.0), label="classrooms"),
    Zone(name="Library", coordinate=(80.0, 25.0), label="library"),
    Zone(name="Playground Corner", coordinate=(85.0, 75.0), label="playground"),
)


@dataclass(frozen=True)
class PathStop:
    zone: str
    expected_at: Optional[time] = None


class PredictedPath:
    """
    Expected ordered sequence of zones for a routine day.

    When every stop has an expected time of day, the expected position for an
    event is the last stop already due at that time. Otherwise positions are
    tracked with a sequential cursor supplied by the caller.
    """

    def __init__(self, stops: Iterable[PathStop]):
        self.stops: Tuple[PathStop, ...] = tuple(stops)
        self.timed = bool(self.stops) and all(s.expected_at is not None for s in self.stops)

    @classmethod
    def from_zones(cls, zones: Sequence[str]) -> "PredictedPath":
        return cls(PathStop(zone=z) for z in zones)

    def zones(self) -> Tuple[str, ...]:
        return tuple(s.zone for s in self.stops)

    def __len__(self) -> int:
        return len(self.stops)

    def window(self) -> Optional[Tuple[time, time]]:
        """Expected check-in window: first to last stop time, for timed paths only."""
        if not self.timed:
            return None
        times = [s.expected_at for s in self.stops]
        return min(times), max(times)

    def expected_index(self, at: datetime, cursor: int = 0) -> int:
        if not self.stops:
            return 0
        if not self.timed:
            return max(0, min(cursor, len(self.stops) - 1))
        index = 0
        for i, stop in enumerate(self.stops):
            if stop.expected_at <= at.time():
                index = i
        return index

    def match_within(self, zone: str, index: int, tolerance: int) -> Optional[int]:
        """Index of the nearest stop named `zone` within `tolerance` of `index`, if any."""
        best: Optional[int] = None
        for i in range(max(0, index - tolerance), min(len(self.stops), index + tolerance + 1)):
            if self.stops[i].zone != zone:
                continue
            if best is None or abs(i - index) < abs(best - index):
                best = i
        return best


DEFAULT_PATH = PredictedPath(
    [
        PathStop("Dormitory B", time(7, 0)),
        PathStop("Canteen 2", time(7, 40)),
        PathStop("Grade 11 Building", time(8, 10)),
        PathStop("Canteen 1", time(18, 0)),
        PathStop("Dormitory B", time(19, 0)),
    ]
)


class ZoneModel:
    """Read-only zone table shared by every student's processing."""

    def __init__(
        self,
        zones: Iterable[Zone] = CAMPUS_ZONES,
        path: PredictedPath = DEFAULT_PATH,
        placeholder: Zone = UNKNOWN_ZONE,
    ):
        self._zones: Dict[str, Zone] = {z.name: z for z in zones}
        self._zones.setdefault(placeholder.name, placeholder)
        self.placeholder = placeholder
        self.path = path

    def resolve_zone(self, name: Optional[str]) -> Zone:
        if not name:
            return self.placeholder
        return self._zones.get(name.strip(), self.placeholder)

    def is_blind_spot(self, zone: Zone) -> bool:
        return zone.name == self.placeholder.name

    def predicted_path(self) -> Tuple[str, ...]:
        return self.path.zones()

    def zone_names(self) -> Tuple[str, ...]:
        return tuple(name for name in self._zones if name != self.placeholder.name)

    def __contains__(self, name: str) -> bool:
        return name in self._zones
