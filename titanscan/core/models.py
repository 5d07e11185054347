from __future__ import annotations

from enum import Enum
from pydantic import BaseModel, field_validator, model_validator
from typing import List, Optional, Tuple

from titanscan.core.errors import StateTransitionError

SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL", "UNKNOWN")


class ScanState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.FAILED)


_TRANSITIONS = {
    ScanState.PENDING: {ScanState.RUNNING, ScanState.COMPLETED, ScanState.FAILED},
    ScanState.RUNNING: {ScanState.COMPLETED, ScanState.FAILED},
    ScanState.COMPLETED: set(),
    ScanState.FAILED: set(),
}


class ScanJob(BaseModel):
    job_id: str
    state: ScanState = ScanState.PENDING
    completed: int = 0
    failed: int = 0
    total: int = 0

    def advance(self, state: ScanState) -> None:
        """Move the job to ``state``; terminal states are final."""
        if state == self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise StateTransitionError(f"Illegal job transition {self.state.value} -> {state.value}")
        self.state = state

    @property
    def is_done(self) -> bool:
        return self.completed + self.failed == self.total


class Finding(BaseModel):
    path: str
    unit_name: Optional[str] = None
    line_range: Optional[Tuple[int, int]] = None
    is_vulnerable: bool = False
    score: float = 0.0
    severity: str = "UNKNOWN"
    message: Optional[str] = None

    finding_id: Optional[str] = None
    confidence: Optional[str] = None
    inference_time_seconds: Optional[float] = None
    code_length: Optional[int] = None
    code: Optional[str] = None
    prediction: Optional[str] = None
    threshold: Optional[float] = None
    vuln_type: Optional[str] = None
    cwe_id: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value):
        if value is None:
            return "UNKNOWN"
        value = str(value).strip().upper()
        return value if value in SEVERITIES else "UNKNOWN"

    @field_validator("line_range")
    @classmethod
    def _check_line_range(cls, value):
        if value is not None and value[0] > value[1]:
            raise ValueError(f"start line {value[0]} is after end line {value[1]}")
        return value

    @property
    def lines(self) -> str:
        if self.line_range is None:
            return "-"
        return f"{self.line_range[0]}-{self.line_range[1]}"


class FailedUnit(BaseModel):
    path: str
    unit_name: Optional[str] = None
    line_range: Optional[Tuple[int, int]] = None
    status: str = "failed"

    @property
    def lines(self) -> str:
        if self.line_range is None:
            return "-"
        return f"{self.line_range[0]}-{self.line_range[1]}"


class ScanSummary(BaseModel):
    total: int
    vulnerable_count: int
    clean_count: int
    percent_vulnerable: int
    failed_count: int = 0
    average_inference_time: float = 0.0

    @model_validator(mode="after")
    def _check_counts(self):
        if self.vulnerable_count + self.clean_count != self.total:
            raise ValueError("vulnerable_count + clean_count must equal total")
        if not 0 <= self.percent_vulnerable <= 100:
            raise ValueError("percent_vulnerable must be within 0..100")
        return self

    @property
    def processed(self) -> int:
        return self.total + self.failed_count


class ScanResult(BaseModel):
    scan_id: str
    job: ScanJob
    transport: str
    repository_url: str
    api_base_url: str
    scanned_at: str
    findings: List[Finding] = []
    failed_units: List[FailedUnit] = []


class GateDecision(BaseModel):
    exit_code: int
    reason: str

    @property
    def passed(self) -> bool:
        return self.exit_code == 0
