import os
import logging
from dataclasses import dataclass, field
from datetime import timedelta


logger = logging.getLogger(__name__)


MIN_SAMPLES = 10  # valid recognitions before the personal baseline is trusted
ALERT_THRESHOLD = 60.0
DELTA_THRESHOLD = 25.0  # composite minus baseline, only once the baseline is stable
BASELINE_ALPHA = 0.1  # EWMA decay; a spike's weight falls to ~35% after 10 samples

LOITER_MULTIPLIER = 2.0
DEFAULT_DWELL_SECONDS = 1800.0
CHECKIN_INTERVAL_SECONDS = 1800.0
PATH_TOLERANCE = 1  # stops either side of the expected path position

LATE_GRACE = timedelta(hours=2)
RISK_WINDOW_DAYS = 7
DIGEST_WINDOW_DAYS = 5
NARRATIVE_TIMEOUT_SEC = 20.0


@dataclass(frozen=True)
class SubMetricWeights:
    stress: float = 0.35
    negative: float = 0.30
    instability: float = 0.20
    aggression: float = 0.15

    def __post_init__(self):
        values = (self.stress, self.negative, self.instability, self.aggression)
        if any(w < 0 for w in values):
            raise ValueError(f"Sub-metric weights must be non-negative: {values}")
        if abs(sum(values) - 1.0) > 1e-9:
            raise ValueError(f"Sub-metric weights must sum to 1, got {sum(values):.4f}")


@dataclass(frozen=True)
class EngineConfig:
    """
    Thresholds and weights, loaded once at startup and never mutated.
    """

    min_samples: int = MIN_SAMPLES
    alert_threshold: float = ALERT_THRESHOLD
    delta_threshold: float = DELTA_THRESHOLD
    baseline_alpha: float = BASELINE_ALPHA
    loiter_multiplier: float = LOITER_MULTIPLIER
    default_dwell_seconds: float = DEFAULT_DWELL_SECONDS
    checkin_interval_seconds: float = CHECKIN_INTERVAL_SECONDS
    path_tolerance: int = PATH_TOLERANCE
    late_grace: timedelta = LATE_GRACE
    risk_window_days: int = RISK_WINDOW_DAYS
    digest_window_days: int = DIGEST_WINDOW_DAYS
    narrative_timeout_sec: float = NARRATIVE_TIMEOUT_SEC
    subject_salt: str = ""
    weights: SubMetricWeights = field(default_factory=SubMetricWeights)

    def __post_init__(self):
        if self.min_samples < 1:
            raise ValueError("min_samples must be at least 1")
        if not 0.0 < self.baseline_alpha <= 1.0:
            raise ValueError("baseline_alpha must be in (0, 1]")
        if not 0.0 <= self.alert_threshold <= 100.0:
            raise ValueError("alert_threshold must be in [0, 100]")
        if self.delta_threshold <= 0:
            raise ValueError("delta_threshold must be positive")
        if self.loiter_multiplier <= 0:
            raise ValueError("loiter_multiplier must be positive")
        if self.checkin_interval_seconds <= 0:
            raise ValueError("checkin_interval_seconds must be positive")
        if self.path_tolerance < 0:
            raise ValueError("path_tolerance must be non-negative")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from SENTINEL_* environment variables, defaulting each one."""
        weights = SubMetricWeights(
            stress=float(os.getenv("SENTINEL_WEIGHT_STRESS", SubMetricWeights.stress)),
            negative=float(os.getenv("SENTINEL_WEIGHT_NEGATIVE", SubMetricWeights.negative)),
            instability=float(os.getenv("SENTINEL_WEIGHT_INSTABILITY", SubMetricWeights.instability)),
            aggression=float(os.getenv("SENTINEL_WEIGHT_AGGRESSION", SubMetricWeights.aggression)),
        )
        config = cls(
            min_samples=int(os.getenv("SENTINEL_MIN_SAMPLES", MIN_SAMPLES)),
            alert_threshold=float(os.getenv("SENTINEL_ALERT_THRESHOLD", ALERT_THRESHOLD)),
            delta_threshold=float(os.getenv("SENTINEL_DELTA_THRESHOLD", DELTA_THRESHOLD)),
            baseline_alpha=float(os.getenv("SENTINEL_BASELINE_ALPHA", BASELINE_ALPHA)),
            loiter_multiplier=float(os.getenv("SENTINEL_LOITER_MULTIPLIER", LOITER_MULTIPLIER)),
            checkin_interval_seconds=float(
                os.getenv("SENTINEL_CHECKIN_INTERVAL_SECONDS", CHECKIN_INTERVAL_SECONDS)
            ),
            late_grace=timedelta(
                seconds=float(os.getenv("SENTINEL_LATE_GRACE_SECONDS", LATE_GRACE.total_seconds()))
            ),
            subject_salt=os.getenv("SENTINEL_SUBJECT_SALT", ""),
            weights=weights,
        )
        if not config.subject_salt:
            logger.warning("SENTINEL_SUBJECT_SALT is not set; digest subject references are unsalted.")
        return config
