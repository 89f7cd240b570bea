import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .alerts import classify_day, derive_risk_level
from .baseline import BaselineEstimator
from .config import EngineConfig
from .digest import ReportDigest, build_digest, opaque_subject_ref
from .frequency import FrequencyModel
from .ingestion import EventValidator, RejectionCounter, wall_clock
from .scoring import aggregate_details, fuse, sample_score, valid_samples
from .trajectory import TrajectoryClassifier, anomalies
from .types import (
    Baseline,
    DailyEmotionMetrics,
    LocationEvent,
    MetricDetails,
    ProfileStats,
    RecognitionSample,
    StudentProfile,
    StudentRecord,
    TrajectoryNode,
    TrajectoryStatus,
)
from .zones import PredictedPath, ZoneModel


logger = logging.getLogger(__name__)

FinalizedCallback = Callable[[str, DailyEmotionMetrics], None]


@dataclass(frozen=True)
class DayContext:
    """State captured when a day is first finalized; revisions reuse it."""

    baseline: Baseline
    previous: Optional[MetricDetails]
    frequency: FrequencyModel


@dataclass
class DayBuffer:
    day: date
    samples: Set[RecognitionSample] = field(default_factory=set)
    locations: Set[LocationEvent] = field(default_factory=set)
    folded: Set[RecognitionSample] = field(default_factory=set)
    context: Optional[DayContext] = None
    pending: bool = False

    @property
    def finalized(self) -> bool:
        return self.context is not None


class StudentState:
    """
    Everything owned by one student. Only touched while holding `lock`, so
    updates for the same student are serialized and different students never
    wait on each other.
    """

    def __init__(self, record: StudentRecord, config: EngineConfig, zone_model: ZoneModel):
        self.record = record
        self.lock = threading.Lock()
        self.baseline = BaselineEstimator(record.id, config.min_samples, config.baseline_alpha)
        self.frequency = FrequencyModel(zone_model, config.default_dwell_seconds)
        self.days: Dict[date, DayBuffer] = {}
        self.metrics: Dict[date, List[DailyEmotionMetrics]] = {}
        self.trajectories: Dict[date, List[Tuple[TrajectoryNode, ...]]] = {}

    def buffer(self, day: date) -> DayBuffer:
        buf = self.days.get(day)
        if buf is None:
            buf = self.days[day] = DayBuffer(day=day)
        return buf

    def latest(self, day: date) -> Optional[DailyEmotionMetrics]:
        revisions = self.metrics.get(day)
        return revisions[-1] if revisions else None

    def history(self) -> Tuple[DailyEmotionMetrics, ...]:
        return tuple(self.metrics[d][-1] for d in sorted(self.metrics))

    def previous_details(self, day: date) -> Optional[MetricDetails]:
        for d in sorted(self.metrics, reverse=True):
            if d >= day:
                continue
            latest = self.metrics[d][-1]
            if latest.sample_count > 0:
                return latest.details
        return None


class RiskEngine:
    """
    Ties together ingestion, per-student buffering, scoring, alerting and
    trajectory classification, and exposes a read-only query surface.

    Days are buffered until their end plus the late-arrival grace period has
    passed the watermark given to `advance()`. Data arriving for a day that
    is already final marks it pending; `recompute_day()` must be called to
    turn that into a new revision.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        zone_model: Optional[ZoneModel] = None,
        path: Optional[PredictedPath] = None,
        on_finalized: Optional[FinalizedCallback] = None,
    ):
        self.config = config or EngineConfig()
        self.zone_model = zone_model or ZoneModel()
        self.classifier = TrajectoryClassifier(
            self.zone_model,
            path=path,
            loiter_multiplier=self.config.loiter_multiplier,
            checkin_interval_seconds=self.config.checkin_interval_seconds,
            path_tolerance=self.config.path_tolerance,
        )
        self.on_finalized = on_finalized
        self._states: Dict[str, StudentState] = {}
        self._registry_lock = threading.Lock()
        self.validator = EventValidator(is_known_student=self._is_registered, counter=RejectionCounter())

    # ----------------------------
    # Registry
    # ----------------------------

    def register_student(self, record: StudentRecord):
        with self._registry_lock:
            state = self._states.get(record.id)
            if state is None:
                self._states[record.id] = StudentState(record, self.config, self.zone_model)
                logger.info(f"Registered student {record.id}")
                return
        with state.lock:
            state.record = record

    def students(self) -> Tuple[str, ...]:
        with self._registry_lock:
            return tuple(sorted(self._states))

    def seed_frequency(self, student_id: str, zone: str, frequency: float, dwell_seconds: float, days: int = 20):
        state = self._state(student_id)
        with state.lock:
            state.frequency.seed(zone, frequency, dwell_seconds, days)

    def reset_baseline(self, student_id: str):
        """Administrative reset of a student's baseline; history is kept."""
        state = self._state(student_id)
        with state.lock:
            state.baseline.reset()

    # ----------------------------
    # Ingestion
    # ----------------------------

    def ingest_sample(self, raw) -> bool:
        sample = self.validator.accept_sample(raw)
        if sample is None:
            return False
        state = self._state(sample.student_id)
        with state.lock:
            buf = state.buffer(sample.day)
            if sample in buf.samples:
                return True
            buf.samples.add(sample)
            if buf.finalized:
                buf.pending = True
                logger.info(f"Late sample for {sample.student_id} on {sample.day}; revision pending")
        return True

    def ingest_location(self, raw) -> bool:
        event = self.validator.accept_location(raw)
        if event is None:
            return False
        state = self._state(event.student_id)
        with state.lock:
            buf = state.buffer(event.day)
            if event in buf.locations:
                return True
            buf.locations.add(event)
            if buf.finalized:
                buf.pending = True
                logger.info(f"Late location for {event.student_id} on {event.day}; revision pending")
        return True

    def ingest_many(self, samples: Iterable = (), locations: Iterable = ()) -> int:
        accepted = 0
        for raw in samples:
            accepted += self.ingest_sample(raw)
        for raw in locations:
            accepted += self.ingest_location(raw)
        return accepted

    @property
    def rejections(self) -> RejectionCounter:
        return self.validator.rejections

    # ----------------------------
    # Finalization
    # ----------------------------

    def advance(self, watermark: datetime) -> List[Tuple[str, DailyEmotionMetrics]]:
        """Finalize every open day whose grace period has expired by `watermark`."""
        watermark = wall_clock(watermark)
        finalized: List[Tuple[str, DailyEmotionMetrics]] = []
        for state in self._all_states():
            with state.lock:
                due = [
                    d for d, buf in state.days.items()
                    if not buf.finalized and self._closes_at(d) <= watermark
                ]
                for day in sorted(due):
                    finalized.append((state.record.id, self._finalize(state, state.days[day])))
        self._notify(finalized)
        return finalized

    def finalize_day(self, student_id: str, day: date) -> DailyEmotionMetrics:
        """Close a day now, without waiting for the watermark."""
        state = self._state(student_id)
        with state.lock:
            buf = state.buffer(day)
            if buf.finalized:
                return state.latest(day)
            record = self._finalize(state, buf)
        self._notify([(student_id, record)])
        return record

    def recompute_day(self, student_id: str, day: date) -> DailyEmotionMetrics:
        """
        Re-derive a finalized day that received late data, as a new revision.
        A day with nothing new keeps its current record.
        """
        state = self._state(student_id)
        with state.lock:
            buf = state.days.get(day)
            if buf is None or not buf.finalized:
                raise KeyError(f"No finalized day {day} for student {student_id}")
            if not buf.pending:
                return state.latest(day)
            record = self._finalize(state, buf)
        self._notify([(student_id, record)])
        return record

    def recompute_pending(self) -> List[Tuple[str, DailyEmotionMetrics]]:
        revised: List[Tuple[str, DailyEmotionMetrics]] = []
        for state in self._all_states():
            with state.lock:
                for day in sorted(d for d, buf in state.days.items() if buf.finalized and buf.pending):
                    revised.append((state.record.id, self._finalize(state, state.days[day])))
        self._notify(revised)
        return revised

    def rederive(self, student_id: str, day: date) -> DailyEmotionMetrics:
        """Recompute a finalized day from its stored samples without recording anything."""
        state = self._state(student_id)
        with state.lock:
            buf = state.days.get(day)
            if buf is None or not buf.finalized:
                raise KeyError(f"No finalized day {day} for student {student_id}")
            revision = len(state.metrics.get(day, ()))
            return self._derive_metrics(buf, buf.context, revision)

    def _finalize(self, state: StudentState, buf: DayBuffer) -> DailyEmotionMetrics:
        first = not buf.finalized
        if first:
            buf.context = DayContext(
                baseline=state.baseline.snapshot(),
                previous=state.previous_details(buf.day),
                frequency=state.frequency.snapshot(),
            )
        revision = len(state.metrics.get(buf.day, ())) + 1
        record = self._derive_metrics(buf, buf.context, revision)
        window_start, window_end = self._check_in_window(buf.day)
        nodes = tuple(
            self.classifier.classify(buf.locations, buf.context.frequency, window_start, window_end)
        )

        state.metrics.setdefault(buf.day, []).append(record)
        state.trajectories.setdefault(buf.day, []).append(nodes)

        for sample in valid_samples(buf.samples):
            if sample in buf.folded:
                continue
            state.baseline.update(sample_score(sample, self.config.weights), sample.details)
            buf.folded.add(sample)
        if first:
            state.frequency.record_day(sorted(buf.locations, key=lambda e: (e.timestamp, e.event_id or "", e.zone)))
        buf.pending = False

        logger.info(
            f"Finalized {state.record.id} {buf.day} rev {revision}: "
            f"score={record.composite_score:.2f} alert={record.is_alert} "
            f"anomalies={len(anomalies(nodes))}"
        )
        return record

    def _derive_metrics(self, buf: DayBuffer, context: DayContext, revision: int) -> DailyEmotionMetrics:
        kept = valid_samples(buf.samples)
        details = aggregate_details(kept)
        composite = fuse(details, self.config.weights)
        decision = classify_day(
            composite,
            details,
            context.baseline,
            previous=context.previous,
            alert_threshold=self.config.alert_threshold,
            delta_threshold=self.config.delta_threshold,
        )
        return DailyEmotionMetrics(
            date=buf.day,
            composite_score=composite,
            baseline_score=context.baseline.value,
            details=details,
            is_alert=decision.is_alert,
            alert_reason=decision.reasons,
            revision=revision,
            sample_count=len(kept),
        )

    def _closes_at(self, day: date) -> datetime:
        return datetime.combine(day + timedelta(days=1), time.min) + self.config.late_grace

    def _check_in_window(self, day: date) -> Tuple[Optional[datetime], Optional[datetime]]:
        window = self.classifier.path.window()
        if window is None:
            return None, None
        start, end = window
        return datetime.combine(day, start), datetime.combine(day, end)

    def _notify(self, records: List[Tuple[str, DailyEmotionMetrics]]):
        if self.on_finalized is None:
            return
        for student_id, record in records:
            self.on_finalized(student_id, record)

    # ----------------------------
    # Queries (read-only)
    # ----------------------------

    def history(self, student_id: str) -> Tuple[DailyEmotionMetrics, ...]:
        state = self._state(student_id)
        with state.lock:
            return state.history()

    def revisions(self, student_id: str, day: date) -> Tuple[DailyEmotionMetrics, ...]:
        state = self._state(student_id)
        with state.lock:
            return tuple(state.metrics.get(day, ()))

    def baseline(self, student_id: str) -> Baseline:
        state = self._state(student_id)
        with state.lock:
            return state.baseline.snapshot()

    def trajectory(self, student_id: str, day: Optional[date] = None) -> Tuple[TrajectoryNode, ...]:
        state = self._state(student_id)
        with state.lock:
            return self._trajectory(state, day)

    def pending_revisions(self, student_id: str) -> Tuple[date, ...]:
        state = self._state(student_id)
        with state.lock:
            return tuple(sorted(d for d, buf in state.days.items() if buf.finalized and buf.pending))

    def heatmap(self, student_id: str) -> Dict[str, float]:
        state = self._state(student_id)
        with state.lock:
            return state.frequency.heatmap()

    def profile(self, student_id: str) -> StudentProfile:
        state = self._state(student_id)
        with state.lock:
            history = state.history()
            missing = sum(
                1
                for revisions in state.trajectories.values()
                for node in revisions[-1]
                if node.status == TrajectoryStatus.MISSING
            )
            stats = ProfileStats(
                valid_recognitions=state.baseline.sample_count,
                abnormal_days=sum(1 for m in history if m.is_alert),
                missing_count=missing,
            )
            today = anomalies(self._trajectory(state, None))
            return StudentProfile(
                record=state.record,
                risk_level=derive_risk_level(history, len(today), self.config.risk_window_days),
                stats=stats,
            )

    def digest(self, student_id: str, day: Optional[date] = None) -> ReportDigest:
        state = self._state(student_id)
        with state.lock:
            history = state.history()
            if day is not None:
                history = tuple(m for m in history if m.date <= day)
            nodes = self._trajectory(state, day)
            risk = derive_risk_level(history, len(anomalies(nodes)), self.config.risk_window_days)
            return build_digest(
                opaque_subject_ref(student_id, self.config.subject_salt),
                history,
                nodes,
                state.baseline.snapshot(),
                risk,
                window=self.config.digest_window_days,
            )

    # ----------------------------
    # Internal helpers
    # ----------------------------

    def _trajectory(self, state: StudentState, day: Optional[date]) -> Tuple[TrajectoryNode, ...]:
        if day is None:
            if not state.trajectories:
                return ()
            day = max(state.trajectories)
        revisions = state.trajectories.get(day)
        return revisions[-1] if revisions else ()

    def _is_registered(self, student_id: str) -> bool:
        with self._registry_lock:
            return student_id in self._states

    def _state(self, student_id: str) -> StudentState:
        with self._registry_lock:
            state = self._states.get(student_id)
        if state is None:
            raise KeyError(f"Unknown student: {student_id}")
        return state

    def _all_states(self) -> List[StudentState]:
        with self._registry_lock:
            return [self._states[k] for k in sorted(self._states)]
