"""
Classification of one student's day of location events against the zone
table, the student's visit history, and the predicted routine path.

Each node gets exactly one status, evaluated in the order
missing -> loitering -> deviation -> normal; the first rule that matches wins.
Signal gaps longer than the check-in interval become inferred `missing`
nodes, so absence is flagged even though no event reports it.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from .config import CHECKIN_INTERVAL_SECONDS, LOITER_MULTIPLIER, PATH_TOLERANCE
from .frequency import FrequencyModel
from .types import LocationEvent, TrajectoryNode, TrajectoryStatus, Zone
from .zones import PredictedPath, ZoneModel


def _event_order(event: LocationEvent):
    duration = event.duration_seconds if event.duration_seconds is not None else -1.0
    return (event.timestamp, event.event_id or "", event.zone, duration)


class TrajectoryClassifier:
    def __init__(
        self,
        zone_model: ZoneModel,
        path: Optional[PredictedPath] = None,
        loiter_multiplier: float = LOITER_MULTIPLIER,
        checkin_interval_seconds: float = CHECKIN_INTERVAL_SECONDS,
        path_tolerance: int = PATH_TOLERANCE,
    ):
        self.zone_model = zone_model
        self.path = path if path is not None else zone_model.path
        self.loiter_multiplier = loiter_multiplier
        self.checkin_interval = timedelta(seconds=checkin_interval_seconds)
        self.path_tolerance = path_tolerance

    def classify(
        self,
        events: Iterable[LocationEvent],
        frequency: FrequencyModel,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> List[TrajectoryNode]:
        """
        Args:
            events: One day of location events, any order.
            frequency: The student's visit history as of the start of the day.
            window_start: Start of the expected check-in window, if known.
            window_end: End of the expected check-in window, if known.
        """
        ordered = sorted(events, key=_event_order)
        nodes: List[TrajectoryNode] = []
        cursor = 0
        last_seen = window_start
        open_ended = False

        for i, event in enumerate(ordered):
            node_id = event.event_id or f"t{i + 1}"
            if last_seen is not None:
                gap = self._gap_node(f"{node_id}-gap", last_seen, event.timestamp)
                if gap is not None:
                    nodes.append(gap)

            zone = self.zone_model.resolve_zone(event.zone)
            status, cursor = self._classify_event(event, zone, frequency, cursor)
            nodes.append(
                TrajectoryNode(
                    id=node_id,
                    time=event.timestamp,
                    zone=zone.name,
                    status=status,
                    duration_seconds=event.duration_seconds,
                    emotion=event.emotion,
                    zone_frequency=round(frequency.frequency(zone.name), 4),
                )
            )

            if event.duration_seconds is None:
                open_ended = True
                end = event.timestamp
            else:
                open_ended = False
                end = event.timestamp + timedelta(seconds=event.duration_seconds)
            last_seen = end if last_seen is None else max(last_seen, end)

        if not ordered:
            if window_start is None or window_end is None:
                return nodes
            gap = self._gap_node("day-gap", window_start, window_end)
            return [gap] if gap is not None else nodes

        if window_end is not None and last_seen is not None and not open_ended:
            gap = self._gap_node("end-gap", last_seen, window_end)
            if gap is not None:
                nodes.append(gap)
        return nodes

    def _classify_event(
        self,
        event: LocationEvent,
        zone: Zone,
        frequency: FrequencyModel,
        cursor: int,
    ) -> Tuple[TrajectoryStatus, int]:
        if self.zone_model.is_blind_spot(zone):
            return TrajectoryStatus.MISSING, cursor

        match = None
        if len(self.path):
            expected = self.path.expected_index(event.timestamp, cursor)
            match = self.path.match_within(zone.name, expected, self.path_tolerance)
        on_path = match is not None

        # an on-path stay is corroborated by the routine, however long it is
        if not on_path and event.duration_seconds is not None:
            limit = self.loiter_multiplier * frequency.baseline_dwell(zone.name)
            if event.duration_seconds > limit:
                return TrajectoryStatus.LOITERING, cursor

        if len(self.path) and not on_path:
            return TrajectoryStatus.DEVIATION, cursor
        return TrajectoryStatus.NORMAL, match if on_path else cursor

    def _gap_node(self, node_id: str, start: datetime, end: datetime) -> Optional[TrajectoryNode]:
        if end - start <= self.checkin_interval:
            return None
        placeholder = self.zone_model.placeholder
        return TrajectoryNode(
            id=node_id,
            time=start,
            zone=placeholder.name,
            status=TrajectoryStatus.MISSING,
            duration_seconds=(end - start).total_seconds(),
            emotion=None,
            zone_frequency=0.0,
            inferred=True,
        )


def anomalies(nodes: Iterable[TrajectoryNode]) -> List[TrajectoryNode]:
    return [n for n in nodes if n.status != TrajectoryStatus.NORMAL]
