from __future__ import annotations

import os
from pathlib import Path
import typer
from typing import Optional

from titanscan.core import client as client_mod
from titanscan.core import orchestrator as orchestrator_mod
from titanscan.core import storage
from titanscan.core.config import ReportConfig, load_config
from titanscan.core.errors import TitanError
from titanscan.core.gate import compute_summary, decide
from titanscan.core.models import ScanResult
from titanscan.core.utils import append_github_output, setup_logging
from titanscan.reporting.renderer import write_report

app = typer.Typer(help="TITAN security scan for CI pipelines")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", envvar="LOG_LEVEL", help="Logging level"),
):
    """Submit a repository to the TITAN scanning API and gate the build on the result."""
    setup_logging(log_level)


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _finish(result: ScanResult, config: ReportConfig) -> None:
    """Render the report, print the verdict and exit with the gate's code."""
    summary = compute_summary(result.findings, result.failed_units)
    artifacts = write_report(result, summary, config)
    decision = decide(summary, config)

    for path in artifacts.paths:
        typer.echo(f"Report saved: {path}")
    if artifacts.degraded:
        typer.echo("PDF generation unavailable; HTML and Markdown reports kept instead.")

    typer.echo(
        f"Issues found: {summary.vulnerable_count} / {summary.total} ({summary.percent_vulnerable}%), "
        f"{summary.failed_count} failed to scan"
    )
    append_github_output({
        "vulnerable_count": summary.vulnerable_count,
        "total": summary.total,
        "percent_vulnerable": summary.percent_vulnerable,
        "report_path": artifacts.primary,
        "gate_pass": decision.passed,
    })

    if not decision.passed:
        typer.echo(decision.reason, err=True)
        raise typer.Exit(code=decision.exit_code)
    typer.echo(decision.reason)
    typer.echo(
        f"Security scan completed successfully. Found {summary.vulnerable_count} vulnerable functions out of "
        f"{summary.total} successfully scanned functions ({summary.percent_vulnerable}%), with "
        f"{summary.failed_count} functions that failed to scan."
    )


def _save(result: ScanResult, config: ReportConfig) -> None:
    path = storage.store_result(result, Path(config.output_dir))
    typer.echo(f"Scan result saved: {path}")


@app.command()
def scan(
    api_base_url: Optional[str] = typer.Option(None, "--api-base-url", help="Scanning API base URL (env API_BASE_URL)"),
    repository_url: Optional[str] = typer.Option(None, "--repository-url", help="Repository to scan (env REPOSITORY_URL)"),
    transport: Optional[str] = typer.Option(None, "--transport", help="Backend contract: poll or stream"),
    format: Optional[str] = typer.Option(None, "--format", help="Report format: md, pdf, or xml"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", help="Directory for reports"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Overall scan budget in seconds"),
    blocking: Optional[bool] = typer.Option(None, "--blocking/--no-blocking", help="Fail the step over the threshold"),
    block_percentage: Optional[int] = typer.Option(None, "--block-percentage", help="Vulnerability threshold (0-100)"),
    save_result: bool = typer.Option(True, "--save-result/--no-save-result", help="Persist the raw scan result as JSON"),
):
    """Run a full scan: initiate, wait for results, write the report, apply the gate."""
    try:
        config = load_config(
            api_base_url=api_base_url,
            repository_url=repository_url,
            transport=transport,
            format=format,
            output_dir=output_dir,
            timeout_seconds=timeout,
            blocking=blocking,
            block_percentage=block_percentage,
        )
        repo = config.require_repository_url()
        typer.echo(f"Repository URL: {repo}")
        with client_mod.ApiClient(config.api_base_url, timeout=config.timeout_seconds) as client:
            client.check_connectivity()
            orchestrator = orchestrator_mod.create_orchestrator(config, client)
            result = orchestrator.run(repo)
        if save_result:
            _save(result, config)
        _finish(result, config)
    except TitanError as exc:
        _fail(exc)


@app.command()
def initiate(
    api_base_url: Optional[str] = typer.Option(None, "--api-base-url", help="Scanning API base URL (env API_BASE_URL)"),
    repository_url: Optional[str] = typer.Option(None, "--repository-url", help="Repository to scan (env REPOSITORY_URL)"),
):
    """Start a polled scan and publish its group id as the ``groupId`` step output."""
    try:
        config = load_config(api_base_url=api_base_url, repository_url=repository_url)
        repo = config.require_repository_url()
        with client_mod.ApiClient(config.api_base_url, timeout=config.timeout_seconds) as client:
            client.check_connectivity()
            group_id = orchestrator_mod.PollingOrchestrator(client, config).initiate(repo)
    except TitanError as exc:
        _fail(exc)

    typer.echo(group_id)
    append_github_output({"groupId": group_id})


@app.command("check-progress")
def check_progress(
    group_id: str = typer.Option(..., "--group-id", envvar="GROUP_ID", help="Group id returned by initiate"),
    api_base_url: Optional[str] = typer.Option(None, "--api-base-url", help="Scanning API base URL (env API_BASE_URL)"),
    format: Optional[str] = typer.Option(None, "--format", help="Report format: md, pdf, or xml"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", help="Directory for reports"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Overall polling budget in seconds"),
    blocking: Optional[bool] = typer.Option(None, "--blocking/--no-blocking", help="Fail the step over the threshold"),
    block_percentage: Optional[int] = typer.Option(None, "--block-percentage", help="Vulnerability threshold (0-100)"),
):
    """Poll an already initiated scan until it finishes, then report and gate."""
    try:
        config = load_config(
            api_base_url=api_base_url,
            format=format,
            output_dir=output_dir,
            timeout_seconds=timeout,
            blocking=blocking,
            block_percentage=block_percentage,
        )
        with client_mod.ApiClient(config.api_base_url, timeout=config.timeout_seconds) as client:
            orchestrator = orchestrator_mod.PollingOrchestrator(client, config)
            result = orchestrator.poll_until_done(group_id, config.repository_url or "")
        _save(result, config)
        _finish(result, config)
    except TitanError as exc:
        _fail(exc)


@app.command()
def report(
    input: Path = typer.Option(..., "--input", help="Scan result JSON written by scan or check-progress"),
    format: Optional[str] = typer.Option(None, "--format", help="Report format: md, pdf, or xml"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", help="Directory for reports"),
    blocking: Optional[bool] = typer.Option(None, "--blocking/--no-blocking", help="Fail the step over the threshold"),
    block_percentage: Optional[int] = typer.Option(None, "--block-percentage", help="Vulnerability threshold (0-100)"),
):
    """Re-render a saved scan result and apply the gate again."""
    try:
        result = storage.load_result(input)
        environ = dict(os.environ)
        if not environ.get("API_BASE_URL", "").strip():
            environ["API_BASE_URL"] = result.api_base_url
        config = load_config(
            environ,
            format=format,
            output_dir=output_dir,
            blocking=blocking,
            block_percentage=block_percentage,
        )
        _finish(result, config)
    except TitanError as exc:
        _fail(exc)


if __name__ == "__main__":
    app()
