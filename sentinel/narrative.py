"""
Hand-off to an external narrative generator.

The generator is injected as a plain callable taking the digest payload and
returning either a mapping or JSON text. Nothing here knows which hosted
model sits behind it. Responses are validated against the fixed profile
shape; anything else (errors, timeouts, cancellation, empty or malformed
output) becomes the deterministic placeholder, and no failure here ever
reaches back into finalized scores.
"""

import json
import logging
import re
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import NARRATIVE_TIMEOUT_SEC
from .digest import ReportDigest


logger = logging.getLogger(__name__)

NarrativeGenerator = Callable[[Mapping[str, Any]], Union[Mapping[str, Any], str, bytes, None]]

TAG_SEPARATORS = re.compile(r"[|｜\n,，]")


def split_tags(text: Optional[str]) -> List[str]:
    """Split a separator-delimited tag string; text without separators is one tag."""
    if not text:
        return []
    return [t.strip() for t in TAG_SEPARATORS.split(text) if t.strip()]


class NarrativeResult(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    overall_evaluation: str = Field(..., alias="overallEvaluation", min_length=1)
    core_characteristics: str = Field(..., alias="coreCharacteristics", min_length=1)
    mental_health_assessment: str = Field(..., alias="mentalHealthAssessment", min_length=1)
    development_potential: str = Field(..., alias="developmentPotential", min_length=1)
    support_strategies: str = Field(..., alias="supportStrategies", min_length=1)
    tags: Optional[List[str]] = None
    available: bool = True

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            return split_tags(value)
        if isinstance(value, (list, tuple)):
            return [t for item in value if isinstance(item, str) for t in split_tags(item)]
        raise ValueError("tags must be a string or a list of strings")

    def section_tags(self, section: str) -> List[str]:
        """Render-ready tags for one section, e.g. `section_tags("core_characteristics")`."""
        return split_tags(getattr(self, section))


UNAVAILABLE_TEXT = "Analysis unavailable. Refer to the underlying indicators."

PLACEHOLDER = NarrativeResult(
    overall_evaluation=UNAVAILABLE_TEXT,
    core_characteristics=UNAVAILABLE_TEXT,
    mental_health_assessment=UNAVAILABLE_TEXT,
    development_potential=UNAVAILABLE_TEXT,
    support_strategies=UNAVAILABLE_TEXT,
    tags=[],
    available=False,
)


def parse_narrative(raw: Any) -> NarrativeResult:
    if raw is None:
        logger.warning("Narrative generator returned no response")
        return PLACEHOLDER
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            logger.warning("Narrative generator returned an empty response")
            return PLACEHOLDER
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            logger.warning(f"Narrative response is not valid JSON: {exc}")
            return PLACEHOLDER
    if not isinstance(raw, Mapping):
        logger.warning(f"Narrative response has unexpected type {type(raw).__name__}")
        return PLACEHOLDER
    payload = {k: v for k, v in raw.items() if k != "available"}
    try:
        return NarrativeResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Narrative response failed validation ({exc.error_count()} errors)")
        return PLACEHOLDER


class NarrativeRequest:
    """One in-flight narrative request; cancelling it never affects scores."""

    def __init__(self, future: Future, timeout: float):
        self._future = future
        self._timeout = timeout
        self._cancelled = False

    def cancel(self) -> bool:
        self._cancelled = True
        return self._future.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._cancelled or self._future.done()

    def result(self, timeout: Optional[float] = None) -> NarrativeResult:
        if self._cancelled:
            return PLACEHOLDER
        try:
            raw = self._future.result(timeout=self._timeout if timeout is None else timeout)
        except CancelledError:
            logger.info("Narrative request cancelled")
            return PLACEHOLDER
        except FutureTimeoutError:
            logger.warning("Narrative request timed out")
            return PLACEHOLDER
        except Exception as exc:
            logger.warning(f"Narrative generator failed: {exc}")
            return PLACEHOLDER
        if self._cancelled:
            return PLACEHOLDER
        return parse_narrative(raw)


class NarrativeService:
    """
    Runs the injected generator off the scoring path.

    Usage:
        service = NarrativeService(my_generator)
        request = service.request(engine.digest("S-001"))
        result = request.result()  # NarrativeResult, possibly PLACEHOLDER
    """

    def __init__(
        self,
        generator: NarrativeGenerator,
        timeout: float = NARRATIVE_TIMEOUT_SEC,
        max_workers: int = 2,
    ):
        self.generator = generator
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="narrative")

    def request(self, digest: ReportDigest) -> NarrativeRequest:
        payload = digest.to_payload()
        future = self._executor.submit(self.generator, payload)
        return NarrativeRequest(future, self.timeout)

    def generate(self, digest: ReportDigest, timeout: Optional[float] = None) -> NarrativeResult:
        return self.request(digest).result(timeout)

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=True)
