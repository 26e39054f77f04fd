"""Render assembled report data as DOCX or HTML documents."""

from __future__ import annotations

import base64
import html
from io import BytesIO
from typing import Iterable, List, Sequence, Tuple

from docx import Document
from docx.shared import Pt

from .report import ReportData

try:  # pragma: no cover - matplotlib is optional at runtime
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
except Exception:  # pragma: no cover - gracefully degrade if missing
    plt = None  # type: ignore


def _cell(row: object, attr: str, mode: str) -> str:
    value = getattr(row, attr)
    if isinstance(value, str):
        return value or "N/A"
    text = f"{float(value):.4f}"
    if mode != "manual" and "percentage" in attr:
        text += "%"
    return text


def _table_rows(rows: Iterable[object], columns: Sequence[Tuple[str, str]], mode: str) -> List[List[str]]:
    return [[_cell(r, attr, mode) for attr, _ in columns] for r in rows]


def _sections(report: ReportData) -> List[Tuple[str, str, Sequence[Tuple[str, str]], list]]:
    """(heading, key, columns, rows) for every aggregate table of *report*."""
    if report.mode == "garments":
        return [("Average Overall Garment Composition", "without_moisture",
                 report.columns["without_moisture"], report.without_moisture)]
    return [
        ("Average Results (Without Moisture)", "without_moisture",
         report.columns["without_moisture"], report.without_moisture),
        ("Average Results (With Moisture)", "with_moisture",
         report.columns["with_moisture"], report.with_moisture),
    ]


def _basis_lines(report: ReportData) -> List[str]:
    lines = []
    if "average_initial_weight" in report.totals:
        lines.append(f"Average Initial Dry Sample Weight: {report.totals['average_initial_weight']:.4f} g")
    if "total_dry_weight" in report.totals:
        lines.append(f"Total Average Dry Weight: {report.totals['total_dry_weight']:.4f} g")
    return lines


def _add_table(doc, columns: Sequence[Tuple[str, str]], rows: List[List[str]]) -> None:
    t = doc.add_table(rows=len(rows) + 1, cols=len(columns))
    t.style = "Table Grid"
    for c, (_, header) in enumerate(columns):
        run = t.cell(0, c).paragraphs[0].add_run(header)
        run.bold = True
    for r, values in enumerate(rows, start=1):
        for c, value in enumerate(values):
            t.cell(r, c).text = value
    doc.add_paragraph("")


def to_docx(report: ReportData) -> bytes:
    """Return the report as a .docx file in memory."""
    doc = Document()
    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)

    doc.add_heading(report.title, level=0)
    doc.add_paragraph(f"Date: {report.created.strftime('%d/%m/%Y')}")
    for line in _basis_lines(report):
        doc.add_paragraph(line)
    doc.add_paragraph("")

    doc.add_heading("Sample-by-Sample Results", level=1)
    sample_cols = report.columns["sample"]
    for i, rows in enumerate(report.sample_results, start=1):
        doc.add_heading(f"Sample {i}", level=2)
        _add_table(doc, sample_cols, _table_rows(rows, sample_cols, report.mode))

    for heading, _, cols, rows in _sections(report):
        doc.add_heading(heading, level=1)
        _add_table(doc, cols, _table_rows(rows, cols, report.mode))

    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _encode_fig(fig) -> str:
    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight")
    plt.close(fig)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _composition_chart(report: ReportData) -> str:
    """Bar chart of averaged composition; empty string without matplotlib."""
    if plt is None:
        return ""
    if report.mode == "garments":
        labels = [r.fiber_name for r in report.without_moisture]
        series = [("Overall %", [r.overall_percentage for r in report.without_moisture])]
    elif report.mode == "manual":
        labels = [r.name for r in report.without_moisture]
        series = [("Dry %", [r.percentage for r in report.without_moisture]),
                  ("Wet %", [r.percentage for r in report.with_moisture])]
    else:
        labels = [r.name for r in report.without_moisture]
        series = [("Dry %", [r.dry_percentage for r in report.without_moisture]),
                  ("Conditioned %", [r.conditioned_percentage for r in report.with_moisture])]
    if not labels:
        return ""

    fig, ax = plt.subplots()
    width = 0.8 / len(series)
    xs = list(range(len(labels)))
    for k, (label, values) in enumerate(series):
        ax.bar([x + k * width for x in xs], values, width=width, label=label)
    ax.set_xticks([x + width * (len(series) - 1) / 2 for x in xs])
    ax.set_xticklabels([name or "N/A" for name in labels])
    ax.set_ylabel("Share [%]")
    ax.set_title("Average composition")
    ax.legend()
    return _encode_fig(fig)


def _html_table(columns: Sequence[Tuple[str, str]], rows: List[List[str]], table_id: str) -> str:
    head = "".join(f"<th>{html.escape(h)}</th>" for _, h in columns)
    body = "".join(
        "<tr>" + "".join(f"<td>{html.escape(v)}</td>" for v in row) + "</tr>" for row in rows
    )
    return f"<table id='{table_id}'><tr>{head}</tr>{body}</table>"


def to_html(report: ReportData) -> str:
    """Generate an HTML report with a composition chart and result tables."""
    parts = [f"<h2>{html.escape(report.title)}</h2>",
             f"<p>Date: {report.created.strftime('%d/%m/%Y')}</p>"]
    parts += [f"<p>{html.escape(line)}</p>" for line in _basis_lines(report)]

    chart = _composition_chart(report)
    if chart:
        parts.append(f"<img src='data:image/png;base64,{chart}' alt='Composition chart' />")

    parts.append("<h3>Sample-by-Sample Results</h3>")
    sample_cols = report.columns["sample"]
    for i, rows in enumerate(report.sample_results, start=1):
        parts.append(f"<h4>Sample {i}</h4>")
        parts.append(_html_table(sample_cols, _table_rows(rows, sample_cols, report.mode), f"sample{i}"))

    for heading, key, cols, rows in _sections(report):
        parts.append(f"<h3>{html.escape(heading)}</h3>")
        parts.append(_html_table(cols, _table_rows(rows, cols, report.mode), key))
    return "\n".join(parts)
