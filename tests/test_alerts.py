from datetime import date

from sentinel.alerts import alert_reasons, classify_day, derive_risk_level, is_alert
from sentinel.types import AlertReason, Baseline, DailyEmotionMetrics, MetricDetails, RiskLevel


SO = AlertReason.STRESS_OVERLOAD
NAS = AlertReason.NEGATIVE_AFFECT_SPIKE
IH = AlertReason.INSTABILITY_HIGH
AR = AlertReason.AGGRESSION_RISING


def test_mock_series_alerts_on_expected_days(mock_history):
    alert_days = [i + 1 for i, m in enumerate(mock_history) if m.is_alert]
    assert alert_days == [6, 7, 9, 10, 13, 14]


def test_mock_series_reasons(mock_history):
    reasons = {i + 1: m.alert_reason for i, m in enumerate(mock_history) if m.is_alert}
    assert reasons == {
        6: (SO, NAS),
        7: (SO, IH),
        9: (SO, NAS, IH, AR),
        10: (SO, IH),
        13: (SO, NAS, IH),
        14: (SO, IH, AR),
    }


def test_non_alert_days_have_no_reasons(mock_history):
    for m in mock_history:
        if not m.is_alert:
            assert m.alert_reason == ()


def test_delta_rule_needs_stable_baseline():
    collecting = Baseline(student_id="S", sample_count=4, value=10.0, stable=False)
    stable = Baseline(student_id="S", sample_count=40, value=10.0, stable=True)
    assert not is_alert(50.0, collecting)
    assert is_alert(50.0, stable)
    assert is_alert(60.0, collecting)


def test_delta_below_threshold_does_not_fire():
    stable = Baseline(student_id="S", sample_count=40, value=27.0, stable=True)
    assert not is_alert(50.0, stable)


def test_rise_conditions_need_a_previous_bucket():
    current = MetricDetails(stress=50, aggression=50, negative=90, instability=10)
    assert alert_reasons(current, None) == ()
    previous = MetricDetails(stress=50, aggression=20, negative=50, instability=10)
    assert alert_reasons(current, previous) == (NAS, AR)


def test_reason_order_is_stable():
    current = MetricDetails(stress=95, aggression=60, negative=95, instability=95)
    previous = MetricDetails()
    decision = classify_day(95.0, current, Baseline("S", 0, 0.0, False), previous)
    assert decision.reasons == (SO, NAS, IH, AR)
    assert classify_day(95.0, current, Baseline("S", 0, 0.0, False), previous) == decision


def _day(n, score, alert):
    return DailyEmotionMetrics(
        date=date(2024, 10, n),
        composite_score=score,
        baseline_score=25.0,
        details=MetricDetails(),
        is_alert=alert,
    )


def test_risk_level_for_mock_history(mock_history):
    assert derive_risk_level(mock_history) == RiskLevel.HIGH


def test_risk_level_bands():
    assert derive_risk_level([]) == RiskLevel.LOW
    assert derive_risk_level([_day(1, 20, False)]) == RiskLevel.LOW
    assert derive_risk_level([_day(1, 20, False)], anomaly_count=2) == RiskLevel.MODERATE
    assert derive_risk_level([_day(1, 62, True), _day(2, 30, False)]) == RiskLevel.MODERATE
    assert derive_risk_level([_day(1, 30, False), _day(2, 85, True)]) == RiskLevel.HIGH
    assert derive_risk_level([_day(i, 70, True) for i in range(1, 6)]) == RiskLevel.CRITICAL


def test_risk_window_drops_old_alerts():
    history = [_day(i, 90, True) for i in range(1, 6)] + [_day(i, 20, False) for i in range(6, 13)]
    assert derive_risk_level(history) == RiskLevel.LOW
