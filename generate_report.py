"""
Run the scoring engine over CSV exports and write the ledger and an Excel report.

Usage (from project root, with venv activated):

    python generate_report.py --samples samples.csv --locations locations.csv \
        --roster roster.csv --ledger daily_metrics.csv --out risk_report.xlsx
"""

import argparse
import logging
import os
from datetime import datetime

import pandas as pd

from sentinel.config import EngineConfig
from sentinel.engine import RiskEngine
from sentinel.ingestion import load_locations_csv, load_samples_csv
from sentinel.ledger import MetricsLedger
from sentinel.report import ReportGenerator
from sentinel.types import StudentRecord


logger = logging.getLogger("generate_report")


def load_roster(path: str):
    df = pd.read_csv(path, dtype={"id": str}, encoding="utf-8")
    df = df.astype(object).where(df.notna(), None)
    for row in df.to_dict(orient="records"):
        yield StudentRecord(
            id=str(row["id"]),
            name=row.get("name") or "",
            age=int(row["age"]) if row.get("age") is not None else None,
            grade=row.get("grade"),
            class_name=row.get("class_name"),
        )


def main():
    parser = argparse.ArgumentParser(description="Score recognition/location exports and build a risk report.")
    parser.add_argument("--samples", type=str, required=True, help="Recognition samples CSV")
    parser.add_argument("--locations", type=str, default=None, help="Location events CSV (optional)")
    parser.add_argument("--roster", type=str, required=True, help="Student roster CSV (id,name,age,grade,class_name)")
    parser.add_argument(
        "--ledger",
        type=str,
        default="daily_metrics.csv",
        help="Ledger CSV to append finalized records to (default: daily_metrics.csv)",
    )
    parser.add_argument(
        "--out",
        type=str,
        default="risk_report.xlsx",
        help="Output Excel report path (default: risk_report.xlsx)",
    )
    parser.add_argument(
        "--watermark",
        type=str,
        default=None,
        help="ISO timestamp up to which days are closed (default: now)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    for path in filter(None, [args.samples, args.locations, args.roster]):
        if not os.path.exists(path):
            raise SystemExit(f"CSV file not found: {os.path.abspath(path)}")

    ledger = MetricsLedger(os.path.abspath(args.ledger))
    engine = RiskEngine(EngineConfig.from_env(), on_finalized=ledger.append)

    for record in load_roster(args.roster):
        engine.register_student(record)

    accepted = engine.ingest_many(
        samples=load_samples_csv(args.samples),
        locations=load_locations_csv(args.locations) if args.locations else (),
    )
    watermark = datetime.fromisoformat(args.watermark) if args.watermark else datetime.now()
    finalized = engine.advance(watermark)

    logger.info(
        f"Accepted {accepted} events, rejected {engine.rejections.total} "
        f"{engine.rejections.counts()}; finalized {len(finalized)} student-days"
    )

    df = ledger.latest_revisions()
    if df.empty:
        logger.warning("Ledger is empty, report will contain no data.")

    report = ReportGenerator(df)
    report.export_excel(os.path.abspath(args.out))
    logger.info(f"Report written to: {os.path.abspath(args.out)}")


if __name__ == "__main__":
    main()
