"""titanscan reporting modules."""

from .markdown import render_markdown
from .xml_report import render_xml
from .pdf import markdown_to_html, render_pdf
from .renderer import ReportArtifacts, render_report, write_report

__all__ = [
    "render_markdown",
    "render_xml",
    "markdown_to_html",
    "render_pdf",
    "ReportArtifacts",
    "render_report",
    "write_report",
]
