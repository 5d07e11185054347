"""Markdown security report.

The Markdown document is the canonical report: the PDF and HTML variants are
derived from it. Output depends only on its inputs (the scan date is taken
from the result, not the clock) so re-rendering is byte-identical.
"""

from __future__ import annotations

from typing import List

from titanscan.core.config import ReportConfig
from titanscan.core.models import FailedUnit, Finding, ScanResult, ScanSummary
from titanscan.core.utils import truncate

REPORT_TITLE = "TITAN Security Scan Report"
GENERATOR = "TITAN Security Scanner"

MESSAGE_LIMIT = 800
MESSAGE_MARKER = "... [truncated]"
SNIPPET_LIMIT = 200


def job_label(result: ScanResult) -> str:
    return "Group ID" if result.transport == "poll" else "Job ID"


def _unit_lines(unit: Finding | FailedUnit) -> List[str]:
    lines = []
    if unit.unit_name:
        lines.append(f"- **Function:** `{unit.unit_name}`")
    lines.append(f"- **Lines:** {unit.lines}")
    return lines


def _score_line(finding: Finding) -> str:
    if finding.confidence:
        return f"- **Score:** {finding.score} ({finding.confidence} confidence)"
    return f"- **Score:** {finding.score}"


def _finding_details(finding: Finding) -> List[str]:
    lines = []
    if finding.finding_id:
        lines.append(f"- **Finding ID:** {finding.finding_id}")
    if finding.vuln_type:
        lines.append(f"- **Vulnerability Type:** {finding.vuln_type}")
    if finding.cwe_id:
        lines.append(f"- **CWE:** {finding.cwe_id}")
    if finding.prediction:
        lines.append(f"- **Prediction:** {finding.prediction}")
    if finding.threshold is not None:
        lines.append(f"- **Threshold:** {finding.threshold}")
    if finding.code_length is not None:
        lines.append(f"- **Code Length:** {finding.code_length} characters")
    if finding.inference_time_seconds is not None:
        lines.append(f"- **Inference Time:** {finding.inference_time_seconds}s")
    return lines


def _analysis(finding: Finding) -> List[str]:
    if not finding.message:
        return []
    return ["- **Analysis:**", "", truncate(finding.message, MESSAGE_LIMIT, MESSAGE_MARKER), ""]


def _snippet(finding: Finding) -> List[str]:
    if not finding.code:
        return []
    return ["- **Code Snippet:**", "```", truncate(finding.code, SNIPPET_LIMIT), "```"]


def render_vulnerable(finding: Finding) -> List[str]:
    lines = [f"### 🚨 Vulnerability Found: {finding.path}"]
    lines += _unit_lines(finding)
    lines.append(f"- **Severity:** {finding.severity}")
    lines.append(_score_line(finding))
    lines += _finding_details(finding)
    lines += _analysis(finding)
    lines += _snippet(finding)
    lines.append("")
    return lines


def render_clean(finding: Finding) -> List[str]:
    lines = [f"### ✅ Clean: {finding.path}"]
    lines += _unit_lines(finding)
    lines.append(f"- **Severity:** {finding.severity}")
    lines.append(_score_line(finding))
    lines += _finding_details(finding)
    lines.append("- **Status:** No security issues detected")
    lines += _analysis(finding)
    lines += _snippet(finding)
    lines.append("")
    return lines


def render_failed(unit: FailedUnit) -> List[str]:
    lines = [f"### ❌ Failed to Scan: {unit.path}"]
    lines += _unit_lines(unit)
    lines.append(f"- **Status:** Scan failed ({unit.status})")
    lines.append("")
    return lines


def render_markdown(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> str:
    vulnerable = [f for f in result.findings if f.is_vulnerable]
    clean = [f for f in result.findings if not f.is_vulnerable]

    out = [
        f"# 🛡️ {REPORT_TITLE}",
        "",
        "---",
        "",
        "## 📊 Scan Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| **Scan Date** | {result.scanned_at} |",
        f"| **Repository** | {result.repository_url} |",
        f"| **API Endpoint** | {result.api_base_url} |",
        f"| **{job_label(result)}** | {result.job.job_id} |",
        f"| **Transport** | {result.transport} |",
        f"| **Total Functions Processed** | {summary.processed} |",
        f"| **Successfully Scanned Functions** | {summary.total} |",
        f"| **Failed to Scan Functions** | {summary.failed_count} |",
        f"| **Vulnerable Functions** | {summary.vulnerable_count} |",
        f"| **Clean Functions** | {summary.clean_count} |",
        f"| **Vulnerability Rate** | {summary.percent_vulnerable}% |",
        f"| **Average Inference Time** | {summary.average_inference_time:.2f}s |",
        "",
        "---",
        "",
        "## 📁 Detailed Results",
        "",
    ]

    if not result.findings and not result.failed_units:
        out += ["No functions were reported by the scanner.", ""]

    if vulnerable:
        out += [f"## 🚨 Vulnerable Findings ({len(vulnerable)})", ""]
        for finding in vulnerable:
            out += render_vulnerable(finding)

    if clean:
        out += [f"## ✅ Clean Findings ({len(clean)})", ""]
        for finding in clean:
            out += render_clean(finding)

    if result.failed_units:
        out += [f"## ❌ Failed to Scan ({len(result.failed_units)})", ""]
        for unit in result.failed_units:
            out += render_failed(unit)

    excluded = ", ".join(config.exclude_patterns) if config.exclude_patterns else "None"
    out += [
        "---",
        "",
        "## 🔍 Scan Configuration",
        "",
        f"- **Excluded Files**: {excluded}",
        f"- **Blocking Mode**: {'true' if config.blocking else 'false'}",
        f"- **Block Percentage Threshold**: {config.block_percentage}%",
        f"- **Timeout**: {config.timeout_seconds} seconds",
        "",
        "---",
        "",
        f"*Report generated by {GENERATOR}*",
        "",
    ]
    return "\n".join(out)
