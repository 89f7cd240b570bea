import logging
from enum import Enum
from typing import Optional

from .config import BASELINE_ALPHA, MIN_SAMPLES
from .types import Baseline, MetricDetails


logger = logging.getLogger(__name__)


class BaselineState(str, Enum):
    COLLECTING = "collecting"
    STABLE = "stable"


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


class BaselineEstimator:
    """
    Rolling personal baseline for one student.

    Exponentially weighted; a single extreme day decays away. The estimator
    reports a value from the first sample on, but only counts as stable after
    `min_samples` valid recognitions; that transition is one-way until
    `reset()`.
    """

    def __init__(self, student_id: str, min_samples: int = MIN_SAMPLES, alpha: float = BASELINE_ALPHA):
        self.student_id = student_id
        self.min_samples = min_samples
        self.alpha = alpha
        self.sample_count = 0
        self.value = 0.0
        self._details: Optional[MetricDetails] = None
        self._stable = False

    @property
    def state(self) -> BaselineState:
        return BaselineState.STABLE if self._stable else BaselineState.COLLECTING

    @property
    def stable(self) -> bool:
        return self._stable

    def update(self, value: float, details: Optional[MetricDetails] = None):
        value = _clamp(value)
        if self.sample_count == 0:
            self.value = value
        else:
            self.value = _clamp(self.alpha * value + (1.0 - self.alpha) * self.value)

        if details is not None:
            self._details = self._blend_details(details)

        self.sample_count += 1
        if not self._stable and self.sample_count >= self.min_samples:
            self._stable = True
            logger.info(
                f"Baseline for {self.student_id} is stable after {self.sample_count} samples "
                f"(value={self.value:.2f})"
            )

    def reset(self):
        """Administrative reset; the only way back to COLLECTING."""
        logger.info(f"Baseline for {self.student_id} reset (had {self.sample_count} samples)")
        self.sample_count = 0
        self.value = 0.0
        self._details = None
        self._stable = False

    def snapshot(self) -> Baseline:
        return Baseline(
            student_id=self.student_id,
            sample_count=self.sample_count,
            value=round(self.value, 2),
            stable=self._stable,
            details=self._details,
        )

    def _blend_details(self, details: MetricDetails) -> MetricDetails:
        if self._details is None:
            return MetricDetails(
                stress=_clamp(details.stress),
                aggression=_clamp(details.aggression),
                negative=_clamp(details.negative),
                instability=_clamp(details.instability),
            )
        a = self.alpha
        prev = self._details
        return MetricDetails(
            stress=_clamp(a * details.stress + (1 - a) * prev.stress),
            aggression=_clamp(a * details.aggression + (1 - a) * prev.aggression),
            negative=_clamp(a * details.negative + (1 - a) * prev.negative),
            instability=_clamp(a * details.instability + (1 - a) * prev.instability),
        )
