"""Structured XML security report."""

from __future__ import annotations

import xml.etree.ElementTree as ET

from titanscan.core.config import ReportConfig
from titanscan.core.gate import recommendation, risk_level
from titanscan.core.models import FailedUnit, Finding, ScanResult, ScanSummary
from titanscan.reporting.markdown import GENERATOR

ROOT_TAG = "TitanSecurityReport"


def _add(parent: ET.Element, tag: str, value) -> ET.Element:
    el = ET.SubElement(parent, tag)
    if isinstance(value, bool):
        value = "true" if value else "false"
    el.text = "" if value is None else str(value)
    return el


def _unit_fields(el: ET.Element, unit: Finding | FailedUnit, path_tag: str) -> None:
    _add(el, path_tag, unit.path)
    _add(el, "function", unit.unit_name or "")
    _add(el, "lines", unit.lines)


def _finding_fields(el: ET.Element, finding: Finding) -> None:
    _add(el, "score", finding.score)
    if finding.confidence:
        _add(el, "confidence", finding.confidence)
    if finding.finding_id:
        _add(el, "findingId", finding.finding_id)
    if finding.vuln_type:
        _add(el, "vulnerabilityType", finding.vuln_type)
    if finding.cwe_id:
        _add(el, "cweId", finding.cwe_id)
    if finding.code_length is not None:
        _add(el, "codeLength", finding.code_length)
    if finding.inference_time_seconds is not None:
        _add(el, "inferenceTime", finding.inference_time_seconds)
    if finding.message:
        _add(el, "analysis", finding.message)


def _vulnerability(parent: ET.Element, finding: Finding) -> None:
    el = ET.SubElement(parent, "vulnerability")
    _unit_fields(el, finding, "file")
    _add(el, "severity", finding.severity)
    _finding_fields(el, finding)
    if finding.code:
        _add(el, "codeSnippet", finding.code)


def _clean(parent: ET.Element, finding: Finding) -> None:
    el = ET.SubElement(parent, "file")
    _unit_fields(el, finding, "path")
    _add(el, "status", "clean")
    _add(el, "severity", finding.severity)
    _finding_fields(el, finding)
    if finding.code:
        _add(el, "codeSnippet", finding.code)


def _failed(parent: ET.Element, unit: FailedUnit) -> None:
    el = ET.SubElement(parent, "failed")
    _unit_fields(el, unit, "file")
    _add(el, "status", unit.status)


def build_xml(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> ET.Element:
    root = ET.Element(ROOT_TAG)

    metadata = ET.SubElement(root, "metadata")
    _add(metadata, "scanDate", result.scanned_at)
    _add(metadata, "repository", result.repository_url)
    _add(metadata, "apiEndpoint", result.api_base_url)
    _add(metadata, "groupId" if result.transport == "poll" else "jobId", result.job.job_id)
    _add(metadata, "transport", result.transport)
    _add(metadata, "totalFunctionsProcessed", summary.processed)
    _add(metadata, "successfullyScannedFunctions", summary.total)
    _add(metadata, "failedFunctions", summary.failed_count)
    _add(metadata, "issuesFound", summary.vulnerable_count)
    _add(metadata, "successRate", 100 - summary.percent_vulnerable)
    _add(metadata, "issueRate", summary.percent_vulnerable)

    configuration = ET.SubElement(root, "configuration")
    _add(configuration, "excludedFiles", ", ".join(config.exclude_patterns) or "None")
    _add(configuration, "blockingMode", config.blocking)
    _add(configuration, "blockPercentageThreshold", config.block_percentage)
    _add(configuration, "timeoutSeconds", config.timeout_seconds)

    findings = ET.SubElement(root, "findings")
    for finding in result.findings:
        if finding.is_vulnerable:
            _vulnerability(findings, finding)
    for finding in result.findings:
        if not finding.is_vulnerable:
            _clean(findings, finding)
    for unit in result.failed_units:
        _failed(findings, unit)

    summary_el = ET.SubElement(root, "summary")
    _add(summary_el, "riskLevel", risk_level(summary.percent_vulnerable))
    _add(summary_el, "recommendation", recommendation(summary))
    _add(summary_el, "generatedBy", GENERATOR)
    _add(summary_el, "generatedAt", result.scanned_at)
    details = ET.SubElement(summary_el, "scanDetails")
    _add(details, "totalFunctionsProcessed", summary.processed)
    _add(details, "successfullyScannedFunctions", summary.total)
    _add(details, "failedFunctions", summary.failed_count)
    _add(details, "vulnerableFunctions", summary.vulnerable_count)
    _add(details, "cleanFunctions", summary.clean_count)
    _add(details, "vulnerabilityPercentage", summary.percent_vulnerable)
    _add(details, "averageInferenceTime", f"{summary.average_inference_time:.2f}s")

    return root


def render_xml(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> str:
    root = build_xml(result, summary, config)
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"
