from datetime import date, datetime

import pytest

from sentinel.frequency import FrequencyModel
from sentinel.types import (
    Baseline,
    DailyEmotionMetrics,
    EmotionType,
    LocationEvent,
    MetricDetails,
    StudentRecord,
)
from sentinel.zones import ZoneModel


# (composite, baseline, stress, aggression, negative, instability) for 10-01 .. 10-14
MOCK_SERIES = [
    (20, 25, 20, 10, 15, 10),
    (22, 25, 25, 10, 15, 12),
    (45, 26, 55, 15, 40, 30),
    (30, 25, 35, 10, 20, 20),
    (25, 25, 25, 10, 20, 15),
    (65, 26, 70, 20, 60, 50),
    (72, 26, 80, 25, 65, 60),
    (50, 27, 55, 15, 45, 40),
    (85, 27, 88, 30, 80, 75),
    (88, 28, 90, 35, 82, 80),
    (40, 28, 45, 15, 35, 30),
    (35, 28, 40, 12, 30, 25),
    (75, 29, 80, 20, 70, 65),
    (82, 29, 85, 40, 75, 70),
]

MOCK_DAY = date(2024, 10, 14)


def at(hour: int, minute: int, day: date = MOCK_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


@pytest.fixture
def mock_series():
    return [
        {
            "date": date(2024, 10, i + 1),
            "composite": composite,
            "baseline": Baseline(student_id="S-001", sample_count=142, value=float(baseline), stable=True),
            "details": MetricDetails(stress=s, aggression=a, negative=n, instability=ins),
        }
        for i, (composite, baseline, s, a, n, ins) in enumerate(MOCK_SERIES)
    ]


@pytest.fixture
def zone_model():
    return ZoneModel()


@pytest.fixture
def seeded_frequency(zone_model):
    model = FrequencyModel(zone_model)
    model.seed("Dormitory B", 0.95, 2400)
    model.seed("Canteen 2", 0.85, 1500)
    model.seed("Grade 11 Building", 0.98, 12600)
    model.seed("Canteen 1", 0.80, 1800)
    model.seed("Library", 0.20, 2700)
    model.seed("Playground Corner", 0.10, 1800)
    return model


@pytest.fixture
def mock_trajectory_events():
    rows = [
        ("t1", at(7, 15), "Dormitory B", 1800, EmotionType.NEUTRAL),
        ("t2", at(7, 50), "Canteen 2", 1200, EmotionType.HAPPY),
        ("t3", at(8, 15), "Grade 11 Building", 12600, EmotionType.STRESS),
        ("t4", at(11, 50), "Unknown Region (missing)", 2700, EmotionType.NEUTRAL),
        ("t5", at(12, 40), "Library", 3600, EmotionType.STRESS),
        ("t6", at(14, 0), "Grade 11 Building", 10800, EmotionType.AGITATION),
        ("t7", at(17, 10), "Playground Corner", 4800, EmotionType.DEPRESSED),
        ("t8", at(18, 40), "Canteen 1", 1800, EmotionType.NEUTRAL),
        ("t9", at(19, 20), "Dormitory B", None, EmotionType.NEUTRAL),
    ]
    return [
        LocationEvent(
            student_id="S-001",
            timestamp=ts,
            zone=zone,
            duration_seconds=duration,
            emotion=emotion,
            event_id=event_id,
        )
        for event_id, ts, zone, duration, emotion in rows
    ]


@pytest.fixture
def mock_history(mock_series):
    from sentinel.alerts import classify_day

    history = []
    previous = None
    for day in mock_series:
        decision = classify_day(day["composite"], day["details"], day["baseline"], previous)
        history.append(
            DailyEmotionMetrics(
                date=day["date"],
                composite_score=float(day["composite"]),
                baseline_score=day["baseline"].value,
                details=day["details"],
                is_alert=decision.is_alert,
                alert_reason=decision.reasons,
                sample_count=10,
            )
        )
        previous = day["details"]
    return history


@pytest.fixture
def student():
    return StudentRecord(id="20220831", name="Chen Zixuan", age=16, grade="Grade 11", class_name="Class 3")


@pytest.fixture
def make_row():
    """Raw recognition row builder, in the shape of an upstream export."""

    def build(student_id: str, ts: datetime, value: float, valid: bool = True, **overrides) -> dict:
        row = {
            "student_id": student_id,
            "timestamp": ts.isoformat(),
            "validity": valid,
            "stress": value,
            "aggression": value,
            "negative": value,
            "instability": value,
        }
        row.update(overrides)
        return row

    return build
