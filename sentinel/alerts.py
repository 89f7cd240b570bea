from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .config import ALERT_THRESHOLD, DELTA_THRESHOLD, RISK_WINDOW_DAYS
from .types import AlertReason, Baseline, DailyEmotionMetrics, MetricDetails, RiskLevel


STRESS_OVERLOAD = 70.0
NEGATIVE_SPIKE_LEVEL = 60.0
NEGATIVE_SPIKE_RISE = 20.0
INSTABILITY_HIGH = 60.0
AGGRESSION_RISE = 15.0

CRITICAL_ALERT_DAYS = 5
HIGH_ALERT_DAYS = 3
HIGH_LATEST_SCORE = 80.0


@dataclass(frozen=True)
class AlertDecision:
    is_alert: bool
    reasons: Tuple[AlertReason, ...] = ()


def is_alert(
    composite: float,
    baseline: Baseline,
    alert_threshold: float = ALERT_THRESHOLD,
    delta_threshold: float = DELTA_THRESHOLD,
) -> bool:
    """
    Fixed threshold always applies; the baseline delta only once the
    baseline is stable.
    """
    if composite >= alert_threshold:
        return True
    return baseline.stable and (composite - baseline.value) >= delta_threshold


def alert_reasons(current: MetricDetails, previous: Optional[MetricDetails]) -> Tuple[AlertReason, ...]:
    """Every sub-condition that fires, in fixed priority order."""
    reasons = []
    if current.stress >= STRESS_OVERLOAD:
        reasons.append(AlertReason.STRESS_OVERLOAD)
    if (
        previous is not None
        and current.negative >= NEGATIVE_SPIKE_LEVEL
        and current.negative - previous.negative >= NEGATIVE_SPIKE_RISE
    ):
        reasons.append(AlertReason.NEGATIVE_AFFECT_SPIKE)
    if current.instability >= INSTABILITY_HIGH:
        reasons.append(AlertReason.INSTABILITY_HIGH)
    if previous is not None and current.aggression - previous.aggression >= AGGRESSION_RISE:
        reasons.append(AlertReason.AGGRESSION_RISING)
    return tuple(reasons)


def classify_day(
    composite: float,
    details: MetricDetails,
    baseline: Baseline,
    previous: Optional[MetricDetails] = None,
    alert_threshold: float = ALERT_THRESHOLD,
    delta_threshold: float = DELTA_THRESHOLD,
) -> AlertDecision:
    if not is_alert(composite, baseline, alert_threshold, delta_threshold):
        return AlertDecision(is_alert=False)
    return AlertDecision(is_alert=True, reasons=alert_reasons(details, previous))


def derive_risk_level(
    history: Sequence[DailyEmotionMetrics],
    anomaly_count: int = 0,
    window_days: int = RISK_WINDOW_DAYS,
) -> RiskLevel:
    """
    Risk label over the most recent finalized days. `anomaly_count` is the
    number of non-normal trajectory nodes on the current day.
    """
    recent = sorted(history, key=lambda m: m.date)[-window_days:] if window_days > 0 else []
    alert_days = sum(1 for m in recent if m.is_alert)
    latest = recent[-1] if recent else None

    if alert_days >= CRITICAL_ALERT_DAYS:
        return RiskLevel.CRITICAL
    if alert_days >= HIGH_ALERT_DAYS or (
        latest is not None and latest.is_alert and latest.composite_score >= HIGH_LATEST_SCORE
    ):
        return RiskLevel.HIGH
    if alert_days > 0 or anomaly_count > 0:
        return RiskLevel.MODERATE
    return RiskLevel.LOW
