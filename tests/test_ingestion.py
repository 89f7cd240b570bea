from datetime import datetime

import pytest

from sentinel.ingestion import (
    EventValidator,
    RejectionCounter,
    load_locations_csv,
    load_samples_csv,
    parse_duration,
)
from sentinel.types import EmotionType, RecognitionSample


@pytest.mark.parametrize(
    "text,seconds",
    [
        ("3h 30min", 12600.0),
        ("45min", 2700.0),
        ("90s", 90.0),
        ("1.5 hours", 5400.0),
        ("2 hrs 5 mins", 7500.0),
        ("600", 600.0),
        (600, 600.0),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", [None, "", "ongoing", "至今", float("nan")])
def test_parse_duration_ongoing(text):
    assert parse_duration(text) is None


@pytest.mark.parametrize("text", ["soon", "3h later"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def recognition(**overrides):
    row = {
        "studentId": "S-001",
        "timestamp": "2024-10-01T09:00:00",
        "validity": True,
        "stress": 40,
        "aggression": 10,
        "negative": 30,
        "instability": 20,
    }
    row.update(overrides)
    return row


class TestEventValidator:
    def test_accepts_camel_case_export(self):
        sample = EventValidator().accept_sample(recognition())
        assert sample == RecognitionSample(
            student_id="S-001",
            timestamp=datetime(2024, 10, 1, 9, 0),
            valid=True,
            stress=40.0,
            aggression=10.0,
            negative=30.0,
            instability=20.0,
        )

    def test_accepts_dataclass_input(self):
        sample = EventValidator().accept_sample(recognition())
        assert EventValidator().accept_sample(sample) == sample

    def test_keeps_wall_clock_time(self):
        sample = EventValidator().accept_sample(recognition(timestamp="2024-10-01T23:30:00+08:00"))
        assert sample.timestamp == datetime(2024, 10, 1, 23, 30)
        assert sample.timestamp.tzinfo is None

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            ({"stress": 120}, "invalid-stress"),
            ({"negative": -1}, "invalid-negative"),
            ({"instability": float("nan")}, "invalid-instability"),
            ({"timestamp": "not-a-date"}, "invalid-timestamp"),
            ({"studentId": ""}, "invalid-student_id"),
            ({"aggression": None}, "invalid-aggression"),
        ],
    )
    def test_rejects_malformed_samples(self, overrides, reason):
        validator = EventValidator()
        assert validator.accept_sample(recognition(**overrides)) is None
        assert validator.rejections.counts() == {reason: 1}

    def test_missing_fields(self):
        validator = EventValidator()
        row = recognition()
        del row["studentId"]
        assert validator.accept_sample(row) is None
        row = recognition()
        del row["stress"]
        assert validator.accept_sample(row) is None
        assert validator.rejections.counts() == {"missing-student_id": 1, "missing-stress": 1}

    def test_unsupported_type(self):
        validator = EventValidator()
        assert validator.accept_sample(["S-001", 40]) is None
        assert validator.rejections.counts() == {"unsupported-type": 1}

    def test_unknown_student(self):
        validator = EventValidator(is_known_student=lambda sid: sid == "S-001")
        assert validator.accept_sample(recognition(studentId="S-002")) is None
        assert validator.accept_sample(recognition()) is not None
        assert validator.rejections.counts() == {"unknown-student": 1}

    def test_location_event(self):
        event = EventValidator().accept_location(
            {
                "studentId": "S-001",
                "timestamp": "2024-10-14T08:15:00",
                "zone": "Grade 11 Building",
                "durationSeconds": "3h 30min",
                "emotion": " Stress ",
                "eventId": "t3",
            }
        )
        assert event.duration_seconds == 12600.0
        assert event.emotion == EmotionType.STRESS
        assert event.event_id == "t3"

    def test_location_defaults(self):
        event = EventValidator().accept_location(
            {"studentId": "S-001", "timestamp": "2024-10-14T19:20:00", "zone": None, "emotion": ""}
        )
        assert event.zone == ""
        assert event.duration_seconds is None
        assert event.emotion == EmotionType.NEUTRAL

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            ({"emotion": "furious"}, "invalid-emotion"),
            ({"durationSeconds": "-5"}, "invalid-duration_seconds"),
            ({"durationSeconds": "a while"}, "invalid-duration_seconds"),
        ],
    )
    def test_rejects_malformed_locations(self, overrides, reason):
        validator = EventValidator()
        row = {"studentId": "S-001", "timestamp": "2024-10-14T08:15:00", "zone": "Library"}
        row.update(overrides)
        assert validator.accept_location(row) is None
        assert validator.rejections.counts() == {reason: 1}


def test_rejection_counter_keeps_recent_tail():
    counter = RejectionCounter(keep_recent=3)
    for i in range(5):
        counter.record("recognition", "invalid-stress", f"row {i}")
    assert counter.total == 5
    assert [r.detail for r in counter.recent()] == ["row 2", "row 3", "row 4"]


def test_load_csv_exports(tmp_path):
    samples = tmp_path / "samples.csv"
    samples.write_text(
        "student_id,timestamp,validity,stress,aggression,negative,instability\n"
        "20220831,2024-10-01T09:00:00,True,40,10,30,20\n"
        "20220831,2024-10-01T09:05:00,True,abc,10,30,20\n",
        encoding="utf-8",
    )
    locations = tmp_path / "locations.csv"
    locations.write_text(
        "student_id,timestamp,zone,duration_seconds,emotion,event_id\n"
        "20220831,2024-10-14T07:15:00,Dormitory B,30min,neutral,t1\n"
        "20220831,2024-10-14T19:20:00,Dormitory B,,,t9\n",
        encoding="utf-8",
    )

    validator = EventValidator()
    accepted = [validator.accept_sample(row) for row in load_samples_csv(str(samples))]
    assert [s.student_id if s else None for s in accepted] == ["20220831", None]
    assert validator.rejections.counts() == {"invalid-stress": 1}

    events = [validator.accept_location(row) for row in load_locations_csv(str(locations))]
    assert [e.duration_seconds for e in events] == [1800.0, None]
    assert events[1].emotion == EmotionType.NEUTRAL
