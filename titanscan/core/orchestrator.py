"""Drive one scan to completion against the remote API.

Two backend contracts exist: a REST one that is polled until every unit is
processed, and a Server-Sent Events one that pushes findings as they are
produced. Both are hidden behind ``Orchestrator.run`` so the rest of the
pipeline only ever sees a finished ``ScanResult``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Tuple

import requests
from pydantic import ValidationError

from titanscan.core import storage
from titanscan.core.client import ApiClient, decode_json
from titanscan.core.config import ReportConfig
from titanscan.core.errors import (
    ConfigurationError,
    InitiationError,
    MalformedResponse,
    ScanTimeoutError,
    StreamTerminatedError,
)
from titanscan.core.models import FailedUnit, Finding, ScanJob, ScanResult, ScanState
from titanscan.core.sse import parse_data_line
from titanscan.core.utils import utc_now

LOGGER = logging.getLogger("titanscan")

_VULNERABLE_PREDICTIONS = {"vulnerable", "1", "true", "yes"}


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _line_range(start: Any, end: Any) -> Tuple[int, int] | None:
    if start is None or end is None or start == "" or end == "":
        return None
    return int(start), int(end)


def _prediction_is_vulnerable(prediction: Any) -> bool:
    if isinstance(prediction, bool):
        return prediction
    if isinstance(prediction, (int, float)):
        return prediction >= 1
    if isinstance(prediction, str):
        return prediction.strip().lower() in _VULNERABLE_PREDICTIONS
    return False


def parse_progress(payload: Dict[str, Any]) -> Tuple[int, int, int]:
    """Return the backend's ``(completed, failed, total)`` triple."""
    summary = payload.get("summary")
    if not isinstance(summary, dict):
        raise MalformedResponse(f"Failed to parse summary from response: {str(payload)[:500]}")
    values = []
    for key in ("completed", "failed", "total"):
        value = summary.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedResponse(f"Progress summary field {key!r} is missing or not an integer: {summary!r}")
        values.append(value)
    return values[0], values[1], values[2]


def finding_from_job(entry: Dict[str, Any]) -> Finding:
    """Map one completed ``jobs[]`` entry of the polling contract."""
    unit = entry.get("input") or {}
    result = entry.get("result") or {}
    return Finding(
        path=str(unit.get("filePath") or ""),
        unit_name=_opt_str(unit.get("functionName")),
        line_range=_line_range(unit.get("startLine"), unit.get("endLine")),
        is_vulnerable=_as_bool(result.get("is_vulnerable", False)),
        score=float(result.get("score") or 0),
        severity=result.get("severity"),
        message=_opt_str(result.get("analysis")),
        confidence=_opt_str(result.get("confidence_percent")),
        inference_time_seconds=_opt_float(result.get("inference_time_seconds")),
        code_length=_opt_int(result.get("code_length")),
        code=_opt_str(unit.get("code")),
        prediction=_opt_str(result.get("prediction")),
        threshold=_opt_float(result.get("threshold")),
    )


def failed_unit_from_job(entry: Dict[str, Any]) -> FailedUnit:
    unit = entry.get("input") or {}
    return FailedUnit(
        path=str(unit.get("filePath") or ""),
        unit_name=_opt_str(unit.get("functionName")),
        line_range=_line_range(unit.get("startLine"), unit.get("endLine")),
        status=str(entry.get("status") or "unknown"),
    )


def finding_from_stream(item: Dict[str, Any]) -> Finding:
    """Map one element of a ``findings`` array (stream batch or results fetch)."""
    prediction = item.get("prediction")
    if "is_vulnerable" in item:
        vulnerable = _as_bool(item["is_vulnerable"])
    else:
        vulnerable = _prediction_is_vulnerable(prediction)
    return Finding(
        path=str(item.get("file_path") or ""),
        unit_name=_opt_str(item.get("function_name")),
        line_range=_line_range(item.get("start_line"), item.get("end_line")),
        is_vulnerable=vulnerable,
        score=float(item.get("score") or 0),
        severity=item.get("severity"),
        message=_opt_str(item.get("message")),
        finding_id=_opt_str(item.get("finding_id")),
        prediction=_opt_str(prediction),
        vuln_type=_opt_str(item.get("vuln_type")),
        cwe_id=_opt_str(item.get("cwe_id")),
    )


def map_jobs(jobs: Any) -> Tuple[List[Finding], List[FailedUnit]]:
    if jobs is None:
        return [], []
    if not isinstance(jobs, list):
        raise MalformedResponse(f"'jobs' must be a list, got {type(jobs).__name__}")
    findings: List[Finding] = []
    failed: List[FailedUnit] = []
    for entry in jobs:
        if not isinstance(entry, dict):
            raise MalformedResponse(f"Unexpected job entry: {entry!r}")
        try:
            if entry.get("status") == "completed":
                findings.append(finding_from_job(entry))
            else:
                failed.append(failed_unit_from_job(entry))
        except (ValidationError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"Could not decode job entry {entry!r}: {exc}") from exc
    return findings, failed


def map_findings(items: Any) -> List[Finding]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedResponse(f"'findings' must be a list, got {type(items).__name__}")
    findings: List[Finding] = []
    for item in items:
        if not isinstance(item, dict):
            raise MalformedResponse(f"Unexpected finding entry: {item!r}")
        try:
            findings.append(finding_from_stream(item))
        except (ValidationError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"Could not decode finding {item!r}: {exc}") from exc
    return findings


class Orchestrator:
    """Runs one scan and returns its findings once the job is terminal."""

    transport = ""

    def __init__(
        self,
        client: ApiClient,
        config: ReportConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.config = config
        self.clock = clock
        self.sleep = sleep

    def run(self, repository_url: str) -> ScanResult:
        raise NotImplementedError

    def _result(
        self,
        job: ScanJob,
        repository_url: str,
        findings: List[Finding],
        failed_units: List[FailedUnit] | None = None,
    ) -> ScanResult:
        return ScanResult(
            scan_id=storage.create_scan_id(),
            job=job,
            transport=self.transport,
            repository_url=repository_url,
            api_base_url=self.config.api_base_url,
            scanned_at=utc_now(),
            findings=findings,
            failed_units=failed_units or [],
        )


class PollingOrchestrator(Orchestrator):
    transport = "poll"

    def run(self, repository_url: str) -> ScanResult:
        group_id = self.initiate(repository_url)
        return self.poll_until_done(group_id, repository_url)

    def initiate(self, repository_url: str) -> str:
        payload = self.client.initiate(repository_url)
        error = payload.get("error") or payload.get("detail")
        if error:
            raise InitiationError(f"Backend rejected the scan request: {error}")
        group_id = payload.get("groupId")
        if isinstance(group_id, bool) or not isinstance(group_id, (str, int)) or not str(group_id).strip():
            raise InitiationError(f"Failed to retrieve groupId from response: {str(payload)[:500]}")
        group_id = str(group_id).strip()
        LOGGER.info("Scan initiated successfully. Group ID: %s", group_id)
        return group_id

    def poll_until_done(self, group_id: str, repository_url: str = "") -> ScanResult:
        job = ScanJob(job_id=group_id)
        deadline = self.clock() + self.config.timeout_seconds

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise ScanTimeoutError(
                    f"Scan {group_id} did not finish within {self.config.timeout_seconds}s "
                    f"(completed {job.completed}, failed {job.failed}, total {job.total})"
                )
            payload = self.client.group_results(group_id, timeout=remaining)
            job.completed, job.failed, job.total = parse_progress(payload)
            LOGGER.info("Progress: Completed: %d, Failed: %d, Total: %d", job.completed, job.failed, job.total)
            if job.is_done:
                break
            if job.completed or job.failed:
                job.advance(ScanState.RUNNING)
            self.sleep(self.config.poll_interval_seconds)

        LOGGER.info("Scan completed.")
        findings, failed_units = map_jobs(payload.get("jobs"))
        job.advance(ScanState.COMPLETED)
        return self._result(job, repository_url, findings, failed_units)


class StreamingOrchestrator(Orchestrator):
    transport = "stream"

    def run(self, repository_url: str) -> ScanResult:
        return self.stream(repository_url)

    def stream(self, repository_url: str) -> ScanResult:
        timeout = self.config.timeout_seconds
        deadline = self.clock() + timeout
        findings: List[Finding] = []
        batches = 0
        job_id = None
        completed = False

        resp = self.client.open_stream(repository_url, read_timeout=min(timeout, deadline - self.clock()))
        try:
            for raw in resp.iter_lines(decode_unicode=True):
                # Checked per raw line so keep-alive pings cannot extend the budget.
                if self.clock() >= deadline:
                    raise ScanTimeoutError(f"No completion event within {timeout}s ({len(findings)} findings received)")
                data = parse_data_line(raw)
                if data is None:
                    continue
                event = decode_json(data, "event stream")
                job_id = _opt_str(event.get("job_id")) or job_id

                if event.get("status") == "completed":
                    completed = True
                    break
                if "findings" in event:
                    batch = map_findings(event["findings"])
                    findings.extend(batch)
                    batches += 1
                    LOGGER.info("Received %d findings (running total %d)", len(batch), len(findings))
                elif "message" in event:
                    LOGGER.info("Stream: %s", event["message"])
                else:
                    LOGGER.debug("Ignoring unrecognized stream event: %s", data[:200])
        except requests.Timeout as exc:
            raise ScanTimeoutError(f"Event stream stalled past the {timeout}s budget") from exc
        except requests.RequestException as exc:
            if self.clock() >= deadline:
                raise ScanTimeoutError(f"Event stream stalled past the {timeout}s budget") from exc
            raise StreamTerminatedError(f"Event stream connection dropped: {exc}") from exc
        finally:
            resp.close()

        if not completed:
            raise StreamTerminatedError(
                f"Event stream closed without a completion event ({len(findings)} findings received)"
            )
        if not job_id:
            raise MalformedResponse("Completion event did not carry a job_id")

        job = ScanJob(job_id=job_id)
        if batches == 0:
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise ScanTimeoutError(f"No time left to fetch results for job {job_id}")
            LOGGER.info("Fetching results for job %s", job_id)
            payload = self.client.job_results(job_id, timeout=remaining)
            findings = map_findings(payload.get("findings"))
        job.completed = job.total = len(findings)
        job.advance(ScanState.COMPLETED)
        return self._result(job, repository_url, findings)


ORCHESTRATORS = {
    "poll": PollingOrchestrator,
    "stream": StreamingOrchestrator,
}


def create_orchestrator(config: ReportConfig, client: ApiClient, **kwargs) -> Orchestrator:
    try:
        cls = ORCHESTRATORS[config.transport]
    except KeyError as exc:
        raise ConfigurationError(f"Unsupported transport: {config.transport}") from exc
    return cls(client, config, **kwargs)
