"""
Campus Sentinel - behavioral risk scoring and trajectory anomaly detection.

Consumes per-student recognition samples and location events, and produces
daily composite scores against a personal baseline, alert reasons,
classified day trajectories, and a PII-free digest for narrative reports.
"""

from .config import EngineConfig, SubMetricWeights
from .engine import RiskEngine
from .types import (
    AlertReason,
    Baseline,
    DailyEmotionMetrics,
    EmotionType,
    LocationEvent,
    MetricDetails,
    RecognitionSample,
    RiskLevel,
    StudentProfile,
    StudentRecord,
    TrajectoryNode,
    TrajectoryStatus,
    Zone,
)
from .zones import PredictedPath, PathStop, ZoneModel

__version__ = "0.1.0"
__all__ = [
    "EngineConfig", "SubMetricWeights", "RiskEngine",
    "AlertReason", "Baseline", "DailyEmotionMetrics", "EmotionType",
    "LocationEvent", "MetricDetails", "RecognitionSample", "RiskLevel",
    "StudentProfile", "StudentRecord", "TrajectoryNode", "TrajectoryStatus", "Zone",
    "PredictedPath", "PathStop", "ZoneModel",
]
