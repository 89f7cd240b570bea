import csv
import logging
import os
import tempfile
import threading
from datetime import datetime
from typing import List

import pandas as pd

from .types import DailyEmotionMetrics


logger = logging.getLogger(__name__)


LEDGER_FIELDS = [
    "recorded_at",
    "student_id",
    "date",
    "revision",
    "composite_score",
    "baseline_score",
    "stress",
    "aggression",
    "negative",
    "instability",
    "is_alert",
    "alert_reason",
    "sample_count",
]


class MetricsLedger:
    """
    Append-only CSV of finalized daily records, one row per revision.
    Tolerates a locked file (e.g. opened in Excel) by queueing rows to a
    side file until the ledger becomes writable again.
    """

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self.temp_csv_path = os.path.splitext(self.csv_path)[0] + "_queue.tmp"
        self._perm_warned = False
        self._lock = threading.Lock()

        os.makedirs(os.path.dirname(os.path.abspath(csv_path)), exist_ok=True)
        self._ensure_header(self.csv_path)

    def append(self, student_id: str, record: DailyEmotionMetrics) -> bool:
        """
        Write one finalized record. Usable directly as the engine's `on_finalized` hook.

        Returns False when the row was dropped because neither the ledger nor
        its queue file could be written.
        """
        row = self._build_row(student_id, record)

        with self._lock:
            try:
                return self._write_row(self.csv_path, row)
            except PermissionError:
                if not self._perm_warned:
                    logger.warning(
                        f"{os.path.basename(self.csv_path)} is locked; queueing rows to "
                        f"{os.path.basename(self.temp_csv_path)} until it becomes writable."
                    )
                    self._perm_warned = True
                return self._write_row(self.temp_csv_path, row, allow_permission_retry=False)

    def to_dataframe(self) -> pd.DataFrame:
        """Read main + queue CSVs with resilient parsing."""
        frames: List[pd.DataFrame] = []

        for path in [self.csv_path, self.temp_csv_path]:
            if not os.path.exists(path):
                continue
            df = self._read_csv_safe(path)
            if not df.empty:
                frames.append(df)

        if not frames:
            return pd.DataFrame(columns=LEDGER_FIELDS)

        combined = pd.concat(frames, ignore_index=True)

        for field in LEDGER_FIELDS:
            if field not in combined.columns:
                combined[field] = ""
        combined = combined[LEDGER_FIELDS]
        combined["student_id"] = combined["student_id"].astype(str)
        return combined

    def latest_revisions(self) -> pd.DataFrame:
        """One row per student and day: the highest revision recorded."""
        df = self.to_dataframe()
        if df.empty:
            return df
        df = df.sort_values(["student_id", "date", "revision"])
        return df.drop_duplicates(subset=["student_id", "date"], keep="last").reset_index(drop=True)

    # ----------------------------
    # Internal helpers
    # ----------------------------

    def _build_row(self, student_id: str, record: DailyEmotionMetrics) -> dict:
        return {
            "recorded_at": datetime.now().isoformat(timespec="seconds"),
            "student_id": student_id,
            "date": record.date.isoformat(),
            "revision": record.revision,
            "composite_score": f"{record.composite_score:.2f}",
            "baseline_score": f"{record.baseline_score:.2f}",
            "stress": f"{record.details.stress:.2f}",
            "aggression": f"{record.details.aggression:.2f}",
            "negative": f"{record.details.negative:.2f}",
            "instability": f"{record.details.instability:.2f}",
            "is_alert": 1 if record.is_alert else 0,
            "alert_reason": "|".join(r.value for r in record.alert_reason),
            "sample_count": record.sample_count,
        }

    def _write_row(self, path: str, row: dict, allow_permission_retry: bool = True) -> bool:
        try:
            need_header = not os.path.exists(path) or os.path.getsize(path) == 0
        except OSError:
            need_header = True

        try:
            with open(path, "a", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=LEDGER_FIELDS)
                if need_header:
                    writer.writeheader()
                writer.writerow(row)
        except PermissionError:
            if allow_permission_retry:
                raise
            logger.error(f"Queue file {path} is not writable either; row for {row['student_id']} dropped")
            return False
        except OSError:
            fallback = os.path.join(tempfile.gettempdir(), "sentinel_ledger_fallback.csv")
            if path == fallback:
                raise
            logger.warning(f"Could not write {path}; falling back to {fallback}")
            return self._write_row(fallback, row, allow_permission_retry=False)
        return True

    def _ensure_header(self, path: str):
        """Ensure the CSV has the expected header; migrate older layouts if needed."""
        expected = ",".join(LEDGER_FIELDS)
        if not os.path.exists(path):
            with open(path, "w", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=LEDGER_FIELDS)
                writer.writeheader()
            return

        with open(path, "r", encoding="utf-8") as handle:
            first_line = handle.readline().strip()

        if first_line == expected:
            return

        backup_path = path + ".bak"
        try:
            df = pd.read_csv(path, encoding="utf-8", engine="python", on_bad_lines="skip")
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            logger.warning(f"Could not migrate existing ledger ({exc}). Backup saved to {backup_path}")
            os.replace(path, backup_path)
            with open(path, "w", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(handle, fieldnames=LEDGER_FIELDS)
                writer.writeheader()
            return

        for field in LEDGER_FIELDS:
            if field not in df.columns:
                df[field] = ""
        df = df[LEDGER_FIELDS]
        os.replace(path, backup_path)
        df.to_csv(path, index=False, encoding="utf-8")
        logger.info(f"Migrated ledger to the current layout. Backup saved at {backup_path}")

    def _read_csv_safe(self, path: str) -> pd.DataFrame:
        """Read CSV while tolerating bad lines between versions."""
        try:
            return pd.read_csv(path, on_bad_lines="skip", encoding="utf-8", dtype={"student_id": str})
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            logger.warning(f"CSV read warning for {os.path.basename(path)}: {exc}")
            return pd.DataFrame(columns=LEDGER_FIELDS)
