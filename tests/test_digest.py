import dataclasses
from datetime import datetime

import pytest

from sentinel.digest import build_digest, opaque_subject_ref
from sentinel.types import Baseline, RiskLevel, TrajectoryNode, TrajectoryStatus


BASELINE = Baseline(student_id="20220831", sample_count=142, value=29.0, stable=True)


def node(node_id, status):
    return TrajectoryNode(
        id=node_id,
        time=datetime(2024, 10, 14, 12, 40),
        zone="Library",
        status=status,
        duration_seconds=3600.0,
        emotion=None,
        zone_frequency=0.2,
    )


def test_subject_ref_is_stable_and_opaque():
    ref = opaque_subject_ref("20220831", "salt")
    assert ref == opaque_subject_ref("20220831", "salt")
    assert ref != opaque_subject_ref("20220832", "salt")
    assert "20220831" not in ref
    assert len(ref) == 16


def test_digest_keeps_recent_window_and_anomalies(mock_history):
    nodes = [
        node("t1", TrajectoryStatus.NORMAL),
        node("t5", TrajectoryStatus.DEVIATION),
        node("t7", TrajectoryStatus.LOITERING),
    ]
    digest = build_digest("ref", list(reversed(mock_history)), nodes, BASELINE, RiskLevel.HIGH)

    assert [m.date.day for m in digest.recent_metrics] == [10, 11, 12, 13, 14]
    assert [n.id for n in digest.anomaly_nodes] == ["t5", "t7"]
    assert digest.baseline_stable


def test_payload_shape(mock_history):
    payload = build_digest("ref", mock_history, [node("t5", TrajectoryStatus.DEVIATION)], BASELINE, RiskLevel.HIGH).to_payload()
    assert set(payload) == {"subject", "riskLevel", "baseline", "recentMetrics", "anomalies"}
    last = payload["recentMetrics"][-1]
    assert last["date"] == "2024-10-14"
    assert last["alertReason"] == ["stress-overload", "instability-high", "aggression-rising"]
    assert payload["anomalies"][0] == {
        "time": "12:40",
        "zone": "Library",
        "status": "deviation",
        "durationSeconds": 3600.0,
        "emotion": None,
        "frequency": 0.2,
    }


def test_zero_window_keeps_no_metrics(mock_history):
    digest = build_digest("ref", mock_history, [], BASELINE, RiskLevel.LOW, window=0)
    assert digest.recent_metrics == ()


def test_digest_is_immutable(mock_history):
    digest = build_digest("ref", mock_history, [], BASELINE, RiskLevel.HIGH)
    with pytest.raises(dataclasses.FrozenInstanceError):
        digest.subject_ref = "other"
