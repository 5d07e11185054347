from __future__ import annotations

from typing import Iterable, Sequence

from titanscan.core.config import ReportConfig
from titanscan.core.models import FailedUnit, Finding, GateDecision, ScanSummary


def compute_summary(findings: Sequence[Finding], failed_units: Iterable[FailedUnit] = ()) -> ScanSummary:
    """Summarise successfully scanned units; failed units never enter the percentage."""
    total = len(findings)
    vulnerable = sum(1 for f in findings if f.is_vulnerable)
    percent = vulnerable * 100 // total if total else 0

    times = [f.inference_time_seconds for f in findings if f.inference_time_seconds is not None]
    average = sum(times) / len(times) if times else 0.0

    return ScanSummary(
        total=total,
        vulnerable_count=vulnerable,
        clean_count=total - vulnerable,
        percent_vulnerable=percent,
        failed_count=len(list(failed_units)),
        average_inference_time=average,
    )


def risk_level(percent: int) -> str:
    if percent == 0:
        return "LOW"
    if percent < 25:
        return "MEDIUM"
    if percent < 50:
        return "HIGH"
    return "CRITICAL"


def recommendation(summary: ScanSummary) -> str:
    if summary.vulnerable_count == 0:
        return "No immediate action required"
    return "Review and address identified security issues"


def decide(summary: ScanSummary, config: ReportConfig) -> GateDecision:
    pct = summary.percent_vulnerable
    if config.blocking and pct >= config.block_percentage:
        return GateDecision(
            exit_code=1,
            reason=f"Security issues detected ({pct}% >= threshold {config.block_percentage}%). Failing the step.",
        )
    if not config.blocking:
        reason = f"Blocking mode disabled; {pct}% of scanned units are vulnerable."
    else:
        reason = f"{pct}% of scanned units are vulnerable, below the {config.block_percentage}% threshold."
    return GateDecision(exit_code=0, reason=reason)
