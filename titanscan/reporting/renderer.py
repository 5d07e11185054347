from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List

from pydantic import BaseModel

from titanscan.core.config import ReportConfig
from titanscan.core.errors import RenderError
from titanscan.core.models import ScanResult, ScanSummary
from titanscan.core.utils import ensure_dir
from titanscan.reporting.markdown import render_markdown
from titanscan.reporting.pdf import markdown_to_html, render_pdf
from titanscan.reporting.xml_report import render_xml

LOGGER = logging.getLogger("titanscan")

REPORT_BASENAME = "security_report"


class ReportArtifacts(BaseModel):
    format: str
    primary: Path
    paths: List[Path]
    degraded: bool = False


def _render_pdf(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> bytes:
    return render_pdf(render_markdown(result, summary, config))


RENDERERS: Dict[str, Callable[[ScanResult, ScanSummary, ReportConfig], str | bytes]] = {
    "md": render_markdown,
    "xml": render_xml,
    "pdf": _render_pdf,
}


def render_report(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> str | bytes:
    """Render the report for ``config.format`` without touching the filesystem."""
    try:
        renderer = RENDERERS[config.format]
    except KeyError as exc:
        raise RenderError(f"Unsupported report format '{config.format}'. Supported formats: md, pdf, xml") from exc
    return renderer(result, summary, config)


def _write(path: Path, data: str | bytes) -> Path:
    try:
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            path.write_text(data, encoding="utf-8")
    except OSError as exc:
        raise RenderError(f"Could not write report {path}: {exc}") from exc
    LOGGER.info("Report saved as %s", path)
    return path


def write_report(result: ScanResult, summary: ScanSummary, config: ReportConfig) -> ReportArtifacts:
    """Write ``security_report.<ext>`` under ``config.output_dir``.

    The pdf format also keeps the Markdown source. If no PDF engine works, an
    HTML rendering is written instead and ``degraded`` is set; that is not an error.
    """
    out_dir = Path(config.output_dir)
    try:
        ensure_dir(out_dir)
    except OSError as exc:
        raise RenderError(f"Could not create output directory {out_dir}: {exc}") from exc
    base = out_dir / REPORT_BASENAME

    if config.format != "pdf":
        data = render_report(result, summary, config)
        path = _write(base.with_suffix(f".{config.format}"), data)
        return ReportArtifacts(format=config.format, primary=path, paths=[path])

    markdown = render_markdown(result, summary, config)
    md_path = _write(base.with_suffix(".md"), markdown)
    html_doc = markdown_to_html(markdown)
    try:
        pdf = render_pdf(markdown, html_doc)
    except RenderError as exc:
        LOGGER.warning("PDF generation failed, keeping HTML and Markdown versions: %s", exc)
        html_path = _write(base.with_suffix(".html"), html_doc)
        return ReportArtifacts(format="html", primary=html_path, paths=[md_path, html_path], degraded=True)

    pdf_path = _write(base.with_suffix(".pdf"), pdf)
    return ReportArtifacts(format="pdf", primary=pdf_path, paths=[md_path, pdf_path])
