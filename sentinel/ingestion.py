import dataclasses
import logging
import re
import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterator, List, Mapping, Optional, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .types import EmotionType, LocationEvent, RecognitionSample


logger = logging.getLogger(__name__)

ONGOING_MARKERS = {"", "ongoing", "now", "present", "至今"}
_DURATION_TOKEN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|minutes?|mins?|m|seconds?|secs?|s)", re.I
)

# pydantic reports locations by alias when the input used one
_FIELD_NAMES = {
    "studentId": "student_id",
    "validity": "valid",
    "durationSeconds": "duration_seconds",
    "eventId": "event_id",
}


def parse_duration(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Dashboard-style durations ("3h 30min", "45min", "90s") or plain seconds.
    Returns None for ongoing stays; raises ValueError on anything else.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return None
        return float(value)
    text = value.strip()
    if text.lower() in ONGOING_MARKERS:
        return None
    try:
        return float(text)
    except ValueError:
        pass
    tokens = _DURATION_TOKEN.findall(text)
    if not tokens or _DURATION_TOKEN.sub("", text).strip():
        raise ValueError(f"Unrecognised duration: {value!r}")
    seconds = 0.0
    for amount, unit in tokens:
        unit = unit.lower()
        if unit.startswith("h"):
            seconds += float(amount) * 3600
        elif unit.startswith("m"):
            seconds += float(amount) * 60
        else:
            seconds += float(amount)
    return seconds


def wall_clock(value: datetime) -> datetime:
    # Keep the source wall-clock time; day buckets are campus-local.
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


class RawRecognitionEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    student_id: str = Field(..., alias="studentId", min_length=1)
    timestamp: datetime
    valid: bool = Field(True, alias="validity")
    stress: float = Field(..., ge=0, le=100, allow_inf_nan=False)
    aggression: float = Field(..., ge=0, le=100, allow_inf_nan=False)
    negative: float = Field(..., ge=0, le=100, allow_inf_nan=False)
    instability: float = Field(..., ge=0, le=100, allow_inf_nan=False)

    @field_validator("student_id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        return str(value) if isinstance(value, int) else value

    def to_sample(self) -> RecognitionSample:
        return RecognitionSample(
            student_id=self.student_id,
            timestamp=wall_clock(self.timestamp),
            valid=self.valid,
            stress=self.stress,
            aggression=self.aggression,
            negative=self.negative,
            instability=self.instability,
        )


class RawLocationEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    student_id: str = Field(..., alias="studentId", min_length=1)
    timestamp: datetime
    zone: Optional[str] = None
    duration_seconds: Optional[float] = Field(None, alias="durationSeconds", ge=0, allow_inf_nan=False)
    emotion: EmotionType = EmotionType.NEUTRAL
    event_id: Optional[str] = Field(None, alias="eventId")

    @field_validator("student_id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        return parse_duration(value)

    @field_validator("emotion", mode="before")
    @classmethod
    def _default_emotion(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return EmotionType.NEUTRAL
        return value.strip().lower() if isinstance(value, str) else value

    def to_event(self) -> LocationEvent:
        return LocationEvent(
            student_id=self.student_id,
            timestamp=wall_clock(self.timestamp),
            zone=self.zone or "",
            duration_seconds=self.duration_seconds,
            emotion=self.emotion,
            event_id=self.event_id,
        )


@dataclass(frozen=True)
class Rejection:
    kind: str
    reason: str
    detail: str
    received_at: datetime


class RejectionCounter:
    """
    Thread-safe tally of rejected events, by reason, with a short tail of
    recent rejections for inspection.
    """

    def __init__(self, keep_recent: int = 100):
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._recent: Deque[Rejection] = deque(maxlen=keep_recent)

    def record(self, kind: str, reason: str, detail: str = ""):
        rejection = Rejection(kind=kind, reason=reason, detail=detail, received_at=datetime.now())
        with self._lock:
            self._counts[reason] += 1
            self._recent.append(rejection)
        logger.warning(f"Rejected {kind} event ({reason}): {detail}")

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def recent(self) -> List[Rejection]:
        with self._lock:
            return list(self._recent)


def _reason(exc: ValidationError) -> str:
    error = exc.errors()[0]
    loc = error.get("loc") or ("event",)
    field = _FIELD_NAMES.get(str(loc[0]), str(loc[0]))
    prefix = "missing" if error.get("type") == "missing" else "invalid"
    return f"{prefix}-{field}"


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if dataclasses.is_dataclass(raw) and not isinstance(raw, type):
        return dataclasses.asdict(raw)
    if isinstance(raw, Mapping):
        return raw
    raise TypeError(f"Unsupported event type: {type(raw).__name__}")


class EventValidator:
    """
    Validates raw events at the ingestion boundary. Malformed events are
    rejected and counted, never raised into the pipeline.
    """

    def __init__(
        self,
        is_known_student: Optional[Callable[[str], bool]] = None,
        counter: Optional[RejectionCounter] = None,
    ):
        self.is_known_student = is_known_student
        self.rejections = counter or RejectionCounter()

    def accept_sample(self, raw: Any) -> Optional[RecognitionSample]:
        parsed = self._validate("recognition", RawRecognitionEvent, raw)
        if parsed is None:
            return None
        if not self._known("recognition", parsed.student_id):
            return None
        return parsed.to_sample()

    def accept_location(self, raw: Any) -> Optional[LocationEvent]:
        parsed = self._validate("location", RawLocationEvent, raw)
        if parsed is None:
            return None
        if not self._known("location", parsed.student_id):
            return None
        return parsed.to_event()

    def _validate(self, kind: str, model, raw: Any):
        try:
            return model.model_validate(_as_mapping(raw))
        except TypeError as exc:
            self.rejections.record(kind, "unsupported-type", str(exc))
        except ValidationError as exc:
            self.rejections.record(kind, _reason(exc), str(exc.errors()[0].get("msg", "")))
        return None

    def _known(self, kind: str, student_id: str) -> bool:
        if self.is_known_student is None or self.is_known_student(student_id):
            return True
        self.rejections.record(kind, "unknown-student", student_id)
        return False


def _read_rows(path: str) -> Iterator[Dict[str, Any]]:
    df = pd.read_csv(path, on_bad_lines="skip", encoding="utf-8", dtype={"student_id": str, "studentId": str})
    df = df.astype(object).where(df.notna(), None)
    for row in df.to_dict(orient="records"):
        yield row


def load_samples_csv(path: str) -> Iterator[Dict[str, Any]]:
    """Raw recognition rows from a CSV export; validation happens on ingestion."""
    return _read_rows(path)


def load_locations_csv(path: str) -> Iterator[Dict[str, Any]]:
    return _read_rows(path)
