"""Evaluation summaries and the migration report.

summarize_verdicts and history_frame are pandas-backed aggregations;
format_report renders a markdown report for a MigrationResult.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import pandas as pd

from distill.models import (
    CaseVerdict,
    IterationRecord,
    MigrationResult,
    MigrationStatus,
    ReferenceCase,
)

DEFAULT_CATEGORY = "default"
MAX_REPORTED_FAILURES = 5


@dataclass(frozen=True)
class CategoryStats:
    total: int
    passed: int
    average_score: float


@dataclass(frozen=True)
class EvaluationSummary:
    """Aggregate view of one iteration's verdicts."""

    total: int
    passed: int
    average_score: float
    by_category: Optional[dict[str, CategoryStats]] = None
    verdicts: tuple[CaseVerdict, ...] = ()

    @property
    def pass_rate(self) -> float:
        return self.passed / self.total if self.total else 0.0


def _verdict_frame(
    cases: Sequence[ReferenceCase], verdicts: Sequence[CaseVerdict]
) -> pd.DataFrame:
    categories = {case.id: case.category or DEFAULT_CATEGORY for case in cases}
    return pd.DataFrame(
        {
            "case_id": [v.case_id for v in verdicts],
            "category": [categories.get(v.case_id, DEFAULT_CATEGORY) for v in verdicts],
            "score": [float(v.score) for v in verdicts],
            "passed": [bool(v.passed) for v in verdicts],
        }
    )


def summarize_verdicts(
    cases: Sequence[ReferenceCase], verdicts: Sequence[CaseVerdict]
) -> EvaluationSummary:
    """Totals, pass count, mean score, and a per-category breakdown.

    by_category is only filled when more than one category is present.
    """
    if not verdicts:
        return EvaluationSummary(total=0, passed=0, average_score=0.0)

    df = _verdict_frame(cases, verdicts)
    grouped = df.groupby("category").agg(
        total=("case_id", "count"),
        passed=("passed", "sum"),
        average_score=("score", "mean"),
    )
    by_category: Optional[dict[str, CategoryStats]] = None
    if len(grouped) > 1:
        by_category = {
            str(category): CategoryStats(
                total=int(row["total"]),
                passed=int(row["passed"]),
                average_score=float(row["average_score"]),
            )
            for category, row in grouped.iterrows()
        }

    return EvaluationSummary(
        total=len(df),
        passed=int(df["passed"].sum()),
        average_score=float(df["score"].mean()),
        by_category=by_category,
        verdicts=tuple(verdicts),
    )


def history_frame(history: Sequence[IterationRecord]) -> pd.DataFrame:
    """One row per iteration: success rate, mean score, cost and tokens."""
    return pd.DataFrame(
        [
            {
                "iteration": record.iteration,
                "success_rate": record.success_rate,
                "average_score": record.average_score,
                "passed": record.passed_count,
                "total": len(record.verdicts),
                "cost": record.total_cost,
                "tokens": record.total_tokens,
            }
            for record in history
        ],
        columns=[
            "iteration", "success_rate", "average_score", "passed", "total", "cost", "tokens",
        ],
    )


_STATUS_HEADLINES: dict[MigrationStatus, str] = {
    MigrationStatus.CONVERGED: "Threshold met",
    MigrationStatus.BEST_EFFORT: "Best effort after exhausting budget",
    MigrationStatus.ABORTED: "Aborted due to fatal error",
    MigrationStatus.CANCELLED: "Cancelled",
}


def format_report(
    result: MigrationResult,
    cases: Sequence[ReferenceCase] = (),
    threshold: Optional[float] = None,
) -> str:
    """Render a markdown report for a finished migration."""
    lines = [
        "# Migration Report",
        "",
        f"**Outcome:** {_STATUS_HEADLINES[result.status]}",
    ]
    if result.warning:
        lines.append(f"**Warning:** {result.warning}")
    lines += [
        "",
        "## Summary",
        f"- Source model: {result.source_model or 'n/a'}",
        f"- Target model: {result.target_model or 'n/a'}",
        f"- Iterations run: {result.iterations}",
        f"- Best iteration: {result.best_iteration}",
        f"- Best success rate: {result.final_success_rate:.1%}",
    ]
    if threshold is not None:
        lines.append(f"- Threshold: {threshold:.1%}")
    if result.stop_reason:
        lines.append(f"- Stop reason: {result.stop_reason}")
    lines.append(f"- Total cost: ${result.total_cost:.4f}")

    if result.history:
        lines += ["", "## Iterations", "", "| Iteration | Success rate | Avg score | Cost |", "|---|---|---|---|"]
        for row in history_frame(result.history).itertuples(index=False):
            marker = " *" if row.iteration == result.best_iteration else ""
            lines.append(
                f"| {row.iteration}{marker} | {row.success_rate:.1%} | "
                f"{row.average_score:.2f} | ${row.cost:.4f} |"
            )

    best = next(
        (r for r in result.history if r.iteration == result.best_iteration), None
    )
    if best is not None:
        summary = summarize_verdicts(cases, best.verdicts)
        if summary.by_category:
            lines += ["", "## By Category"]
            for category, stats in summary.by_category.items():
                rate = stats.passed / stats.total if stats.total else 0.0
                lines.append(
                    f"- **{category}**: {rate:.0%} ({stats.passed}/{stats.total}), "
                    f"avg: {stats.average_score:.2f}"
                )

        failed = best.failed_verdicts
        if failed:
            lines += ["", f"## Failed Cases in Best Iteration ({len(failed)})"]
            for verdict in failed[:MAX_REPORTED_FAILURES]:
                lines += [
                    "",
                    f"### Case: {verdict.case_id}",
                    f"- Score: {verdict.score:.3f}",
                    f"- Tags: {', '.join(verdict.failure_tags) or 'none'}",
                    f"- Feedback: {verdict.feedback or 'n/a'}",
                ]
            if len(failed) > MAX_REPORTED_FAILURES:
                lines.append(f"\n... and {len(failed) - MAX_REPORTED_FAILURES} more failures")

    return "\n".join(lines) + "\n"
