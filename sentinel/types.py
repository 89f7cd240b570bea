from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple


Coordinate = Tuple[float, float]


class EmotionType(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    STRESS = "stress"
    AGITATION = "agitation"
    DEPRESSED = "depressed"


class TrajectoryStatus(str, Enum):
    NORMAL = "normal"
    MISSING = "missing"
    LOITERING = "loitering"
    DEVIATION = "deviation"


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class AlertReason(str, Enum):
    STRESS_OVERLOAD = "stress-overload"
    NEGATIVE_AFFECT_SPIKE = "negative-affect-spike"
    INSTABILITY_HIGH = "instability-high"
    AGGRESSION_RISING = "aggression-rising"


@dataclass(frozen=True)
class MetricDetails:
    stress: float = 0.0
    aggression: float = 0.0
    negative: float = 0.0
    instability: float = 0.0

    def as_dict(self) -> dict:
        return {
            "stress": self.stress,
            "aggression": self.aggression,
            "negative": self.negative,
            "instability": self.instability,
        }


@dataclass(frozen=True)
class RecognitionSample:
    student_id: str
    timestamp: datetime
    valid: bool
    stress: float
    aggression: float
    negative: float
    instability: float

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def details(self) -> MetricDetails:
        return MetricDetails(
            stress=self.stress,
            aggression=self.aggression,
            negative=self.negative,
            instability=self.instability,
        )


@dataclass(frozen=True)
class LocationEvent:
    student_id: str
    timestamp: datetime
    zone: str
    duration_seconds: Optional[float] = None  # None while the stay is ongoing
    emotion: EmotionType = EmotionType.NEUTRAL
    event_id: Optional[str] = None

    @property
    def day(self) -> date:
        return self.timestamp.date()


@dataclass(frozen=True)
class Baseline:
    student_id: str
    sample_count: int
    value: float
    stable: bool
    details: Optional[MetricDetails] = None


@dataclass(frozen=True)
class DailyEmotionMetrics:
    date: date
    composite_score: float
    baseline_score: float  # baseline value as it stood before this day
    details: MetricDetails
    is_alert: bool
    alert_reason: Tuple[AlertReason, ...] = ()
    revision: int = 1
    sample_count: int = 0


@dataclass(frozen=True)
class Zone:
    name: str
    coordinate: Coordinate
    label: str


@dataclass(frozen=True)
class TrajectoryNode:
    id: str
    time: datetime
    zone: str
    status: TrajectoryStatus
    duration_seconds: Optional[float]
    emotion: Optional[EmotionType]
    zone_frequency: float
    inferred: bool = False  # synthesized from a gap rather than observed


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    age: Optional[int] = None
    grade: Optional[str] = None
    class_name: Optional[str] = None


@dataclass(frozen=True)
class ProfileStats:
    valid_recognitions: int = 0
    abnormal_days: int = 0
    missing_count: int = 0


@dataclass(frozen=True)
class StudentProfile:
    record: StudentRecord
    risk_level: RiskLevel
    stats: ProfileStats = field(default_factory=ProfileStats)

    @property
    def id(self) -> str:
        return self.record.id
