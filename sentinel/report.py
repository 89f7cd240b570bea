from dataclasses import dataclass

import pandas as pd


@dataclass
class RiskSummary:
    per_student: pd.DataFrame
    highest_risk_student: str
    lowest_risk_student: str


class ReportGenerator:
    def __init__(self, df: pd.DataFrame):
        self.df = df

    def summarize(self) -> RiskSummary:
        if self.df.empty:
            return RiskSummary(
                per_student=pd.DataFrame(),
                highest_risk_student="",
                lowest_risk_student="",
            )
        df = self.df.copy()
        df["composite_score"] = pd.to_numeric(df["composite_score"], errors="coerce")
        df["is_alert"] = pd.to_numeric(df["is_alert"], errors="coerce").fillna(0).astype(int)
        grouped = (
            df.groupby("student_id")
            .agg(
                days=("date", "nunique"),
                mean_composite=("composite_score", "mean"),
                max_composite=("composite_score", "max"),
                alert_days=("is_alert", "sum"),
            )
            .reset_index()
        )
        grouped["mean_composite"] = grouped["mean_composite"].round(2)
        grouped = grouped.sort_values(["mean_composite", "alert_days"], ascending=False)
        highest = grouped.iloc[0]["student_id"]
        lowest = grouped.iloc[-1]["student_id"]
        return RiskSummary(per_student=grouped, highest_risk_student=highest, lowest_risk_student=lowest)

    def export_excel(self, path: str):
        summary = self.summarize()
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            self.df.to_excel(writer, sheet_name="Daily Metrics", index=False)
            summary.per_student.to_excel(writer, sheet_name="Per-Student Summary", index=False)
            meta = pd.DataFrame(
                [
                    {"metric": "highest_risk_student", "value": summary.highest_risk_student},
                    {"metric": "lowest_risk_student", "value": summary.lowest_risk_student},
                ]
            )
            meta.to_excel(writer, sheet_name="Summary", index=False)
