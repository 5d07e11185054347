import json

import pytest

from titanscan.core.client import ApiClient
from titanscan.core.config import ReportConfig
from titanscan.core.models import FailedUnit, Finding, ScanJob, ScanResult, ScanState

BASE = "https://scanner.example.com"
REPO = "https://github.com/acme/widgets"


class FakeResponse:
    def __init__(self, status_code=200, body=None, lines=None, text=None, raise_after=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text
        self._lines = list(lines or [])
        self._raise_after = raise_after
        self.closed = False

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return json.loads(self.text)

    def iter_lines(self, decode_unicode=False):
        for line in self._lines:
            yield line
        if self._raise_after is not None:
            raise self._raise_after

    def close(self):
        self.closed = True


class FakeSession:
    """Routes (method, path) to queued responses or exceptions."""

    def __init__(self):
        self.headers = {}
        self.routes = {}
        self.calls = []
        self.closed = False

    def add(self, method, path, *responses):
        self.routes.setdefault((method, path), []).extend(responses)

    def _dispatch(self, method, url, **kwargs):
        path = url[len(BASE):] or "/"
        self.calls.append((method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, **kwargs)

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def sse(*payloads):
    return [f"data: {json.dumps(p)}" for p in payloads]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return ApiClient(BASE, timeout=30, session=session)


@pytest.fixture
def clock():
    return FakeClock()


def make_config(**overrides):
    values = {"api_base_url": BASE, "repository_url": REPO}
    values.update(overrides)
    return ReportConfig(**values)


def make_findings(vulnerable, clean):
    findings = []
    for i in range(vulnerable):
        findings.append(Finding(
            path=f"src/vuln_{i}.py",
            unit_name=f"bad_{i}",
            line_range=(i + 1, i + 10),
            is_vulnerable=True,
            score=0.9,
            severity="HIGH",
            message=f"Injection risk in bad_{i}",
            confidence="90%",
            inference_time_seconds=0.5,
            code_length=42,
            code=f"def bad_{i}(): pass",
        ))
    for i in range(clean):
        findings.append(Finding(
            path=f"src/ok_{i}.py",
            unit_name=f"good_{i}",
            line_range=(1, 5),
            is_vulnerable=False,
            score=0.1,
            severity="LOW",
            inference_time_seconds=0.3,
        ))
    return findings


def make_result(findings=None, failed_units=None, transport="poll"):
    return ScanResult(
        scan_id="scan-20260101-120000-abcdef12",
        job=ScanJob(job_id="group-123", state=ScanState.COMPLETED),
        transport=transport,
        repository_url=REPO,
        api_base_url=BASE,
        scanned_at="2026-01-01T12:00:00Z",
        findings=findings or [],
        failed_units=failed_units or [],
    )


def make_failed_unit():
    return FailedUnit(path="src/broken.py", unit_name="oops", line_range=(3, 4), status="failed")
