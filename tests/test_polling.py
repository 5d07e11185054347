import pytest
import requests

from titanscan.core.errors import (
    ConnectivityError,
    InitiationError,
    MalformedResponse,
    ScanTimeoutError,
)
from titanscan.core.models import ScanJob, ScanState
from titanscan.core.orchestrator import PollingOrchestrator, create_orchestrator, finding_from_job

from conftest import REPO, FakeResponse, make_config

GROUP_PATH = "/parser/groups/g-1/results"


def job(path, name, vulnerable, status="completed", **result):
    entry = {
        "status": status,
        "input": {"filePath": path, "functionName": name, "startLine": 1, "endLine": 9, "code": "x = 1"},
        "result": {
            "is_vulnerable": vulnerable,
            "score": 0.8 if vulnerable else 0.2,
            "confidence_percent": "80%",
            "severity": "high" if vulnerable else None,
            "inference_time_seconds": 0.25,
            "code_length": 5,
            "analysis": "looks risky" if vulnerable else None,
            "prediction": "vulnerable" if vulnerable else "safe",
            "threshold": 0.5,
        },
    }
    entry["result"].update(result)
    return entry


def progress(completed, failed, total, jobs=None):
    return FakeResponse(body={"summary": {"completed": completed, "failed": failed, "total": total}, "jobs": jobs or []})


def make_orchestrator(client, clock, **config):
    return PollingOrchestrator(client, make_config(**config), clock=clock, sleep=clock.sleep)


def test_run_initiates_then_polls_until_done(client, session, clock):
    jobs = [job("a.py", "f", True), job("b.py", "g", False), job("c.py", "h", False, status="failed")]
    session.add("POST", "/initiate", FakeResponse(body={"groupId": "g-1"}))
    session.add("GET", GROUP_PATH, progress(0, 0, 3), progress(1, 0, 3), progress(2, 1, 3, jobs))

    result = make_orchestrator(client, clock).run(REPO)

    assert clock.sleeps == [10, 10]
    assert result.transport == "poll"
    assert result.repository_url == REPO
    assert result.job.job_id == "g-1"
    assert result.job.state == ScanState.COMPLETED
    assert (result.job.completed, result.job.failed, result.job.total) == (2, 1, 3)
    assert [f.path for f in result.findings] == ["a.py", "b.py"]
    assert [u.path for u in result.failed_units] == ["c.py"]
    assert result.failed_units[0].status == "failed"


def test_completed_job_fields_are_mapped():
    finding = finding_from_job(job("a.py", "f", True))
    assert finding.unit_name == "f"
    assert finding.line_range == (1, 9)
    assert finding.is_vulnerable is True
    assert finding.score == 0.8
    assert finding.severity == "HIGH"
    assert finding.message == "looks risky"
    assert finding.confidence == "80%"
    assert finding.inference_time_seconds == 0.25
    assert finding.code_length == 5
    assert finding.code == "x = 1"
    assert finding.prediction == "vulnerable"
    assert finding.threshold == 0.5


def test_missing_result_fields_use_defaults():
    entry = {"status": "completed", "input": {"filePath": "a.py"}, "result": None}
    finding = finding_from_job(entry)
    assert finding.is_vulnerable is False
    assert finding.score == 0.0
    assert finding.severity == "UNKNOWN"
    assert finding.line_range is None


def test_empty_group_completes_immediately(client, session, clock):
    session.add("GET", GROUP_PATH, progress(0, 0, 0))
    result = make_orchestrator(client, clock).poll_until_done("g-1", REPO)
    assert result.findings == []
    assert clock.sleeps == []


def test_scenario_d_poll_timeout(client, session, clock):
    session.add("GET", GROUP_PATH, progress(1, 0, 5))
    with pytest.raises(ScanTimeoutError):
        make_orchestrator(client, clock, timeout_seconds=30).poll_until_done("g-1")
    assert len(session.calls) == 3
    assert clock.now == 30


def test_poll_network_error_is_fatal_without_retry(client, session, clock):
    session.add("GET", GROUP_PATH, progress(0, 0, 2), requests.ConnectionError("reset"))
    with pytest.raises(ConnectivityError):
        make_orchestrator(client, clock).poll_until_done("g-1")
    assert len(session.calls) == 2


def test_poll_timeout_is_capped_by_remaining_budget(client, session, clock):
    session.add("GET", GROUP_PATH, progress(0, 0, 1), progress(1, 0, 1))
    make_orchestrator(client, clock, timeout_seconds=25).poll_until_done("g-1")
    timeouts = [kwargs["timeout"] for _, _, kwargs in session.calls]
    assert timeouts == [25, 15]


@pytest.mark.parametrize("body", [
    {"jobs": []},
    {"summary": {"completed": 1, "failed": 0}},
    {"summary": {"completed": "1", "failed": 0, "total": 1}},
    {"summary": "done"},
])
def test_unparseable_summary_is_malformed(client, session, clock, body):
    session.add("GET", GROUP_PATH, FakeResponse(body=body))
    with pytest.raises(MalformedResponse):
        make_orchestrator(client, clock).poll_until_done("g-1")


def test_bad_job_entry_is_malformed(client, session, clock):
    bad = job("a.py", "f", True)
    bad["input"]["startLine"] = 20
    bad["input"]["endLine"] = 3
    session.add("GET", GROUP_PATH, progress(1, 0, 1, [bad]))
    with pytest.raises(MalformedResponse):
        make_orchestrator(client, clock).poll_until_done("g-1")


@pytest.mark.parametrize("body", [
    {},
    {"groupId": ""},
    {"groupId": None},
    {"error": "repository not found"},
    {"detail": "unauthorized", "groupId": "g-1"},
])
def test_initiate_without_group_id_fails(client, session, clock, body):
    session.add("POST", "/initiate", FakeResponse(body=body))
    with pytest.raises(InitiationError):
        make_orchestrator(client, clock).initiate(REPO)


def test_numeric_group_id_is_accepted(client, session, clock):
    session.add("POST", "/initiate", FakeResponse(body={"groupId": 42}))
    assert make_orchestrator(client, clock).initiate(REPO) == "42"


def test_create_orchestrator_selects_polling(client):
    assert isinstance(create_orchestrator(make_config(transport="poll"), client), PollingOrchestrator)


def test_job_starts_running_only_once_progress_is_reported(client, session, clock, monkeypatch):
    seen = []
    original = ScanJob.advance

    def record(self, state):
        seen.append((self.completed, self.failed, state))
        original(self, state)

    monkeypatch.setattr(ScanJob, "advance", record)
    session.add("GET", GROUP_PATH, progress(0, 0, 2), progress(0, 0, 2), progress(1, 0, 2), progress(2, 0, 2))

    make_orchestrator(client, clock).poll_until_done("g-1")

    assert seen == [(1, 0, ScanState.RUNNING), (2, 0, ScanState.COMPLETED)]
