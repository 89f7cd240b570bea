"""
Compact, identifier-free hand-off structure for the narrative generator.

The digest is the only view of a student the narrative side receives. It
carries an opaque subject reference instead of names or demographics; a
caller that wants those in the final report adds them downstream.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from .config import DIGEST_WINDOW_DAYS
from .trajectory import anomalies
from .types import Baseline, DailyEmotionMetrics, RiskLevel, TrajectoryNode


def opaque_subject_ref(student_id: str, salt: str = "") -> str:
    digest = hashlib.blake2b(f"{salt}:{student_id}".encode("utf-8"), digest_size=8)
    return digest.hexdigest()


@dataclass(frozen=True)
class ReportDigest:
    subject_ref: str
    recent_metrics: Tuple[DailyEmotionMetrics, ...]
    anomaly_nodes: Tuple[TrajectoryNode, ...]
    baseline_value: float
    baseline_stable: bool
    risk_level: RiskLevel

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready request body."""
        return {
            "subject": self.subject_ref,
            "riskLevel": self.risk_level.value,
            "baseline": {"value": self.baseline_value, "stable": self.baseline_stable},
            "recentMetrics": [
                {
                    "date": m.date.isoformat(),
                    "compositeScore": m.composite_score,
                    "baselineScore": m.baseline_score,
                    "details": m.details.as_dict(),
                    "isAlert": m.is_alert,
                    "alertReason": [r.value for r in m.alert_reason],
                }
                for m in self.recent_metrics
            ],
            "anomalies": [
                {
                    "time": n.time.strftime("%H:%M"),
                    "zone": n.zone,
                    "status": n.status.value,
                    "durationSeconds": n.duration_seconds,
                    "emotion": n.emotion.value if n.emotion is not None else None,
                    "frequency": n.zone_frequency,
                }
                for n in self.anomaly_nodes
            ],
        }


def build_digest(
    subject_ref: str,
    history: Sequence[DailyEmotionMetrics],
    trajectory: Iterable[TrajectoryNode],
    baseline: Baseline,
    risk_level: RiskLevel,
    window: Optional[int] = DIGEST_WINDOW_DAYS,
) -> ReportDigest:
    ordered = sorted(history, key=lambda m: m.date)
    if window is not None:
        ordered = ordered[-window:] if window > 0 else []
    return ReportDigest(
        subject_ref=subject_ref,
        recent_metrics=tuple(ordered),
        anomaly_nodes=tuple(anomalies(trajectory)),
        baseline_value=baseline.value,
        baseline_stable=baseline.stable,
        risk_level=risk_level,
    )
