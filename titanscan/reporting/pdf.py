"""PDF export of the Markdown report, with an HTML fallback.

PDF output is cosmetic. Each engine in ``PDF_ENGINES`` is tried in turn; when
none succeeds the caller keeps the Markdown report and gets a standalone HTML
rendering instead.
"""

from __future__ import annotations

import html
import io
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import List

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen.canvas import Canvas

from titanscan.core.errors import RenderError
from titanscan.core.utils import CommandError, run_cmd
from titanscan.reporting.markdown import REPORT_TITLE

LOGGER = logging.getLogger("titanscan")

HTML_STYLE = """
body { font-family: Helvetica, Arial, sans-serif; background: #f9fafb; color: #111827; }
main { max-width: 960px; margin: 0 auto; padding: 32px; background: #fff; }
h1 { color: #fff; background: #1e3a8a; padding: 20px; border-radius: 8px; }
h2 { color: #2c5aa0; border-bottom: 2px solid #2c5aa0; padding-bottom: 6px; margin-top: 40px; }
h3 { margin: 0 0 12px 0; }
table { border-collapse: collapse; width: 100%; }
td, th { border: 1px solid #e5e7eb; padding: 6px 10px; text-align: left; }
code { background: #f3f4f6; color: #dc2626; padding: 1px 4px; border-radius: 3px; }
pre { background: #111827; color: #86efac; padding: 12px; border-radius: 6px; white-space: pre-wrap; }
.card { border-radius: 8px; padding: 16px; margin-bottom: 16px; }
.vulnerable { background: #fef2f2; border-left: 6px solid #ef4444; }
.clean { background: #f0fdf4; border-left: 6px solid #10b981; }
.failed { background: #fffbeb; border-left: 6px solid #f59e0b; }
""".strip()

_CARD_CLASSES = {"🚨": "vulnerable", "✅": "clean", "❌": "failed"}


def _inline(text: str) -> str:
    text = html.escape(text, quote=False)
    text = re.sub(r"\*\*([^*]+)\*\*", r"<strong>\1</strong>", text)
    text = re.sub(r"`([^`]+)`", r"<code>\1</code>", text)
    text = re.sub(r"(?<![*\w])\*([^*]+)\*(?![*\w])", r"<em>\1</em>", text)
    return text


def markdown_to_html(markdown: str, title: str = REPORT_TITLE) -> str:
    """Convert the report's Markdown subset to a standalone HTML document."""
    body: List[str] = []
    in_code = False
    in_list = False
    in_card = False
    table: List[List[str]] = []

    def close_list():
        nonlocal in_list
        if in_list:
            body.append("</ul>")
            in_list = False

    def flush_table():
        if not table:
            return
        rows = [r for r in table if not all(set(c) <= set("-: ") for c in r)]
        body.append("<table>")
        for i, row in enumerate(rows):
            tag = "th" if i == 0 else "td"
            body.append("<tr>" + "".join(f"<{tag}>{_inline(c)}</{tag}>" for c in row) + "</tr>")
        body.append("</table>")
        table.clear()

    def close_card():
        nonlocal in_card
        if in_card:
            body.append("</div>")
            in_card = False

    for line in markdown.splitlines():
        if line.strip() == "```":
            if in_code:
                body.append("</pre>")
            else:
                close_list()
                body.append("<pre>")
            in_code = not in_code
            continue
        if in_code:
            body.append(html.escape(line, quote=False))
            continue

        if line.startswith("|") and line.rstrip().endswith("|"):
            close_list()
            table.append([c.strip() for c in line.strip().strip("|").split("|")])
            continue
        flush_table()

        if line.startswith("- "):
            if not in_list:
                body.append("<ul>")
                in_list = True
            body.append(f"<li>{_inline(line[2:])}</li>")
            continue
        close_list()

        if line.startswith("### "):
            close_card()
            heading = line[4:]
            css = " ".join(filter(None, ["card", _CARD_CLASSES.get(heading[:1])]))
            body.append(f'<div class="{css}">')
            body.append(f"<h3>{_inline(heading)}</h3>")
            in_card = True
        elif line.startswith("## "):
            close_card()
            body.append(f"<h2>{_inline(line[3:])}</h2>")
        elif line.startswith("# "):
            close_card()
            body.append(f"<h1>{_inline(line[2:])}</h1>")
        elif line.strip() == "---":
            close_card()
            body.append("<hr>")
        elif line.strip():
            body.append(f"<p>{_inline(line)}</p>")

    if in_code:
        body.append("</pre>")
    flush_table()
    close_list()
    close_card()

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="UTF-8">\n'
        f"<title>{html.escape(title)}</title>\n"
        f"<style>\n{HTML_STYLE}\n</style>\n"
        "</head>\n<body>\n<main>\n" + "\n".join(body) + "\n</main>\n</body>\n</html>\n"
    )


def _plain(text: str) -> str:
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = text.replace("`", "")
    # Base-14 fonts only cover Latin-1.
    return text.encode("latin-1", "ignore").decode("latin-1").strip()


class PdfEngine:
    name = ""

    def render(self, markdown: str, html_doc: str) -> bytes:
        raise NotImplementedError


class ReportlabEngine(PdfEngine):
    """Draws the Markdown line by line on an A4 canvas."""

    name = "reportlab"

    def render(self, markdown: str, html_doc: str) -> bytes:
        buf = io.BytesIO()
        try:
            self._draw(markdown, buf)
        except Exception as exc:
            raise RenderError(f"reportlab could not render the report: {exc}") from exc
        return buf.getvalue()

    def _draw(self, markdown: str, buf: io.BytesIO) -> None:
        W, H = A4
        left = 2.0 * cm
        width = W - 4.0 * cm
        c = Canvas(buf, pagesize=A4)
        c.setTitle(REPORT_TITLE)
        y = H - 2.2 * cm

        def emit(text: str, font: str, size: float, indent: float = 0.0, gap: float = 0.48 * cm):
            nonlocal y
            for part in simpleSplit(text, font, size, width - indent) or [""]:
                if y < 2.0 * cm:
                    c.showPage()
                    y = H - 2.2 * cm
                c.setFont(font, size)
                c.drawString(left + indent, y, part)
                y -= gap

        in_code = False
        for raw in markdown.splitlines():
            line = raw.rstrip()
            if line.strip() == "```":
                in_code = not in_code
                continue
            if in_code:
                emit(_plain(line) or " ", "Courier", 8, indent=0.5 * cm, gap=0.38 * cm)
                continue
            if not line.strip():
                y -= 0.25 * cm
                continue
            if line.strip() == "---" or set(line.replace("|", "").strip()) <= set("-: "):
                continue
            if line.startswith("# "):
                emit(_plain(line[2:]), "Helvetica-Bold", 16, gap=0.8 * cm)
            elif line.startswith("## "):
                emit(_plain(line[3:]), "Helvetica-Bold", 13, gap=0.6 * cm)
            elif line.startswith("### "):
                emit(_plain(line[4:]), "Helvetica-Bold", 11, gap=0.55 * cm)
            elif line.startswith("|"):
                cells = [_plain(c) for c in line.strip().strip("|").split("|")]
                emit("  ".join(cells), "Helvetica", 10)
            elif line.startswith("- "):
                emit("• " + _plain(line[2:]), "Helvetica", 10, indent=0.3 * cm)
            else:
                emit(_plain(line), "Helvetica", 10)
        c.save()


class WkhtmltopdfEngine(PdfEngine):
    name = "wkhtmltopdf"

    def render(self, markdown: str, html_doc: str) -> bytes:
        binary = shutil.which("wkhtmltopdf")
        if not binary:
            raise RenderError("wkhtmltopdf is not installed")
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "report.html"
            dst = Path(tmp) / "report.pdf"
            src.write_text(html_doc, encoding="utf-8")
            try:
                run_cmd([
                    binary, "--quiet", "--page-size", "A4",
                    "--margin-top", "15mm", "--margin-right", "15mm",
                    "--margin-bottom", "15mm", "--margin-left", "15mm",
                    str(src), str(dst),
                ])
            except CommandError as exc:
                raise RenderError(str(exc)) from exc
            return dst.read_bytes()


PDF_ENGINES: List[PdfEngine] = [ReportlabEngine(), WkhtmltopdfEngine()]


def render_pdf(markdown: str, html_doc: str | None = None) -> bytes:
    """Return PDF bytes from the first engine that succeeds."""
    html_doc = html_doc if html_doc is not None else markdown_to_html(markdown)
    errors = []
    for engine in PDF_ENGINES:
        try:
            data = engine.render(markdown, html_doc)
        except RenderError as exc:
            LOGGER.warning("PDF engine %s failed: %s", engine.name, exc)
            errors.append(f"{engine.name}: {exc}")
            continue
        LOGGER.info("PDF rendered with %s", engine.name)
        return data
    raise RenderError("No PDF renderer available (" + "; ".join(errors or ["no engines configured"]) + ")")
