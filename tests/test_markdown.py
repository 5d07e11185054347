from titanscan.core.gate import compute_summary
from titanscan.core.models import Finding
from titanscan.reporting.markdown import MESSAGE_LIMIT, MESSAGE_MARKER, render_markdown

from conftest import BASE, REPO, make_config, make_failed_unit, make_findings, make_result


def render(result, **config):
    return render_markdown(result, compute_summary(result.findings, result.failed_units), make_config(**config))


def test_rendering_is_idempotent():
    result = make_result(make_findings(3, 7), [make_failed_unit()])
    assert render(result) == render(result)


def test_metadata_table():
    text = render(make_result(make_findings(3, 7), [make_failed_unit()]))
    assert "| **Scan Date** | 2026-01-01T12:00:00Z |" in text
    assert f"| **API Endpoint** | {BASE} |" in text
    assert f"| **Repository** | {REPO} |" in text
    assert "| **Group ID** | group-123 |" in text
    assert "| **Total Functions Processed** | 11 |" in text
    assert "| **Successfully Scanned Functions** | 10 |" in text
    assert "| **Failed to Scan Functions** | 1 |" in text
    assert "| **Vulnerable Functions** | 3 |" in text
    assert "| **Clean Functions** | 7 |" in text
    assert "| **Vulnerability Rate** | 30% |" in text


def test_stream_results_are_labelled_by_job_id():
    text = render(make_result(make_findings(1, 0), transport="stream"))
    assert "| **Job ID** | group-123 |" in text


def test_vulnerable_findings_come_before_clean_ones():
    findings = make_findings(2, 2)
    interleaved = [findings[2], findings[0], findings[3], findings[1]]
    text = render(make_result(interleaved))
    vuln_positions = [text.index(f"Vulnerability Found: src/vuln_{i}.py") for i in range(2)]
    clean_positions = [text.index(f"Clean: src/ok_{i}.py") for i in range(2)]
    assert max(vuln_positions) < min(clean_positions)


def test_finding_fields_round_trip():
    finding = Finding(
        path="pkg/mod.py",
        unit_name="handler",
        line_range=(10, 20),
        is_vulnerable=True,
        score=0.875,
        severity="critical",
        message="Command built from user input",
        finding_id="f-77",
        confidence="88%",
        inference_time_seconds=1.5,
        code_length=120,
        code="os.system(cmd)",
        prediction="vulnerable",
        threshold=0.5,
        vuln_type="Command Injection",
        cwe_id="CWE-78",
    )
    text = render(make_result([finding]))
    for fragment in [
        "pkg/mod.py", "`handler`", "10-20", "0.875", "CRITICAL", "Command built from user input",
        "f-77", "88%", "1.5s", "120 characters", "os.system(cmd)", "vulnerable", "0.5",
        "Command Injection", "CWE-78",
    ]:
        assert fragment in text


def test_long_messages_are_truncated():
    message = "A" * (MESSAGE_LIMIT + 50)
    finding = Finding(path="a.py", is_vulnerable=True, message=message)
    text = render(make_result([finding]))
    assert "A" * MESSAGE_LIMIT + MESSAGE_MARKER in text
    assert "A" * (MESSAGE_LIMIT + 1) not in text


def test_message_at_the_limit_is_not_marked():
    finding = Finding(path="a.py", is_vulnerable=True, message="B" * MESSAGE_LIMIT)
    text = render(make_result([finding]))
    assert "B" * MESSAGE_LIMIT in text
    assert MESSAGE_MARKER not in text


def test_failed_units_and_configuration_sections():
    text = render(
        make_result(make_findings(1, 1), [make_failed_unit()]),
        exclude_patterns=["tests/*", "docs/*"],
        blocking=False,
        block_percentage=40,
        timeout_seconds=120,
    )
    assert "### ❌ Failed to Scan: src/broken.py" in text
    assert "- **Excluded Files**: tests/*, docs/*" in text
    assert "- **Blocking Mode**: false" in text
    assert "- **Block Percentage Threshold**: 40%" in text
    assert "- **Timeout**: 120 seconds" in text


def test_empty_scan_renders_placeholder():
    text = render(make_result())
    assert "No functions were reported by the scanner." in text
    assert "| **Vulnerability Rate** | 0% |" in text
    assert "- **Excluded Files**: None" in text


def test_clean_finding_fields_round_trip():
    finding = Finding(
        path="lib/ok.py",
        unit_name="slugify",
        line_range=(1, 9),
        is_vulnerable=False,
        score=0.125,
        severity="low",
        message="No issues found.",
        code="def ok(): pass",
        prediction="safe",
        threshold=0.5,
    )
    text = render(make_result([finding]))
    section = text[text.index("### ✅ Clean: lib/ok.py"):]
    for fragment in ["`slugify`", "1-9", "- **Severity:** LOW", "0.125", "No issues found.", "def ok(): pass", "safe", "0.5"]:
        assert fragment in section
