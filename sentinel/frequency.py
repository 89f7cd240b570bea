import copy
from dataclasses import dataclass
from typing import Dict, Iterable

from .config import DEFAULT_DWELL_SECONDS
from .types import LocationEvent
from .zones import ZoneModel


@dataclass
class ZoneStats:
    days_visited: int = 0
    visits: int = 0
    timed_visits: int = 0
    mean_dwell_seconds: float = 0.0


class FrequencyModel:
    """
    Historical visit frequency and dwell baseline for one student.

    Frequency is the share of observed days on which the zone was visited;
    it feeds both the heatmap weighting and the loitering baseline.
    """

    def __init__(self, zone_model: ZoneModel, default_dwell_seconds: float = DEFAULT_DWELL_SECONDS):
        self.zone_model = zone_model
        self.default_dwell_seconds = default_dwell_seconds
        self.days_observed = 0
        self._stats: Dict[str, ZoneStats] = {}

    def frequency(self, zone_name: str) -> float:
        zone = self.zone_model.resolve_zone(zone_name)
        if self.zone_model.is_blind_spot(zone) or self.days_observed == 0:
            return 0.0
        stats = self._stats.get(zone.name)
        if stats is None:
            return 0.0
        return min(1.0, stats.days_visited / self.days_observed)

    def baseline_dwell(self, zone_name: str) -> float:
        zone = self.zone_model.resolve_zone(zone_name)
        stats = self._stats.get(zone.name)
        if stats is None or stats.timed_visits == 0:
            return self.default_dwell_seconds
        return stats.mean_dwell_seconds

    def record_day(self, events: Iterable[LocationEvent]):
        """Fold one finalized day of stays into the history."""
        self.days_observed += 1
        seen = set()
        for event in events:
            zone = self.zone_model.resolve_zone(event.zone)
            if self.zone_model.is_blind_spot(zone):
                continue
            stats = self._stats.setdefault(zone.name, ZoneStats())
            stats.visits += 1
            if zone.name not in seen:
                stats.days_visited += 1
                seen.add(zone.name)
            if event.duration_seconds is not None:
                stats.timed_visits += 1
                # running mean
                stats.mean_dwell_seconds += (
                    event.duration_seconds - stats.mean_dwell_seconds
                ) / stats.timed_visits

    def seed(self, zone_name: str, frequency: float, dwell_seconds: float, days: int = 20):
        """
        Bootstrap a zone from prior history, e.g. an export of the previous term.

        `days` also raises the observed-day count so that frequencies of
        other zones stay comparable.
        """
        if not 0.0 <= frequency <= 1.0:
            raise ValueError(f"frequency must be in [0, 1], got {frequency}")
        zone = self.zone_model.resolve_zone(zone_name)
        if self.zone_model.is_blind_spot(zone):
            raise ValueError(f"Cannot seed the placeholder zone: {zone_name!r}")
        if days > self.days_observed:
            self._rescale(days)
        visited = round(frequency * self.days_observed)
        self._stats[zone.name] = ZoneStats(
            days_visited=visited,
            visits=visited,
            timed_visits=max(1, visited),
            mean_dwell_seconds=float(dwell_seconds),
        )

    def _rescale(self, days: int):
        """Stretch the observed horizon to `days`, keeping every zone's frequency."""
        if self.days_observed > 0:
            factor = days / self.days_observed
            for stats in self._stats.values():
                stats.days_visited = min(days, round(stats.days_visited * factor))
        self.days_observed = days

    def heatmap(self) -> Dict[str, float]:
        return {name: self.frequency(name) for name in self.zone_model.zone_names()}

    def snapshot(self) -> "FrequencyModel":
        clone = FrequencyModel(self.zone_model, self.default_dwell_seconds)
        clone.days_observed = self.days_observed
        clone._stats = copy.deepcopy(self._stats)
        return clone
