"""Render reviewed minutes into a Word document.

A user-supplied template is tried first; any problem with it is logged and
the document is generated from scratch instead. Only a failure of that
fallback reaches the caller.
"""

from __future__ import annotations

import base64
import copy
import io
import logging
from dataclasses import dataclass
from datetime import date as date_type, datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from docx import Document as DocumentFactory
from docx.document import Document
from docx.shared import Inches, Pt
from docx.table import Table, _Row
from docx.text.paragraph import Paragraph

from lions_minutes.errors import ExportError, NotFoundError
from lions_minutes.models.member import Member
from lions_minutes.models.schemas import MinuteItemData

logger = logging.getLogger("lions_minutes.export")


DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
NO_ATTENDANCE = "None recorded"
ROW_KEYS = ("item", "description", "remark")


class TemplateRenderError(Exception):
    """The template exists but cannot be filled."""


@dataclass(frozen=True)
class MinutesDocument:
    title: str
    venue: str
    date: datetime
    present: str
    items: Sequence[MinuteItemData]


@dataclass(frozen=True)
class ExportResult:
    filename: str
    mime_type: str
    content_base64: str
    rendered_with: str  # template | fallback


def present_names(members: Iterable[Member], attendance: Iterable[int]) -> str:
    """Names of present members in roster order, or ``"None recorded"``."""
    present = set(attendance)
    names = [m.name for m in members if m.id in present]
    return ", ".join(names) or NO_ATTENDANCE


def format_meeting_date(value: datetime) -> str:
    return value.strftime("%d %B %Y")


def export_filename(today: date_type) -> str:
    return f"Lions_Minutes_{today.isoformat()}.docx"


# --- template path ---


def _iter_paragraphs(container) -> Iterator[Paragraph]:
    for paragraph in container.paragraphs:
        yield paragraph
    for table in container.tables:
        for row in table.rows:
            for cell in row.cells:
                yield from _iter_paragraphs(cell)


def _replace_in_paragraph(paragraph: Paragraph, values: Dict[str, str]) -> None:
    text = paragraph.text
    if "{{" not in text:
        return
    replaced = text
    for key, value in values.items():
        replaced = replaced.replace("{{" + key + "}}", value)
    if replaced == text:
        return
    # Placeholders may be split across runs; keep the first run's formatting
    runs = paragraph.runs
    if not runs:
        return
    runs[0].text = replaced
    for run in runs[1:]:
        run.text = ""


def _find_minutes_row(document: Document) -> Optional[Tuple[Table, _Row]]:
    for table in document.tables:
        for row in table.rows:
            if any("{{item}}" in cell.text for cell in row.cells):
                return table, row
    return None


def _fill_minutes_rows(table: Table, template_row: _Row, items: Sequence[MinuteItemData]) -> None:
    template_tr = template_row._tr
    anchor = template_tr
    for data in items:
        new_tr = copy.deepcopy(template_tr)
        anchor.addnext(new_tr)
        anchor = new_tr
        values = {"item": data.item, "description": data.description, "remark": data.remark}
        for cell in _Row(new_tr, table).cells:
            for paragraph in cell.paragraphs:
                _replace_in_paragraph(paragraph, values)
    template_tr.getparent().remove(template_tr)


def render_from_template(template_path: Path, doc: MinutesDocument) -> bytes:
    document = DocumentFactory(str(template_path))
    found = _find_minutes_row(document)
    if found is None:
        raise TemplateRenderError("Template has no {{item}} row for the minutes")

    values = {
        "title": doc.title,
        "venue": doc.venue,
        "date": format_meeting_date(doc.date),
        "present": doc.present,
    }
    for paragraph in _iter_paragraphs(document):
        _replace_in_paragraph(paragraph, values)
    for section in document.sections:
        for part in (section.header, section.footer):
            if part.is_linked_to_previous:
                continue
            for paragraph in _iter_paragraphs(part):
                _replace_in_paragraph(paragraph, values)

    table, row = found
    _fill_minutes_rows(table, row, doc.items)
    return _to_bytes(document)


# --- fallback path ---


def _set_header_cell(cell, text: str) -> None:
    paragraph = cell.paragraphs[0]
    run = paragraph.add_run(text)
    run.bold = True


def render_fallback(doc: MinutesDocument) -> bytes:
    document = DocumentFactory()

    heading = document.add_paragraph()
    run = heading.add_run(f"Minutes of {doc.title}")
    run.bold = True
    run.font.size = Pt(16)
    heading.paragraph_format.space_after = Pt(20)

    for label, value in (
        ("Venue", doc.venue),
        ("Date", format_meeting_date(doc.date)),
        ("Present", doc.present),
    ):
        paragraph = document.add_paragraph(f"{label}: {value}")
        paragraph.paragraph_format.space_after = Pt(10)

    table = document.add_table(rows=1, cols=3)
    table.style = "Table Grid"
    widths = (Inches(0.7), Inches(4.6), Inches(1.3))
    for cell, title, width in zip(table.rows[0].cells, ("Item", "Description", "Action By"), widths):
        _set_header_cell(cell, title)
        cell.width = width

    for data in doc.items:
        cells = table.add_row().cells
        cells[0].text = data.item
        cells[1].text = data.description
        cells[2].text = data.remark
        for cell, width in zip(cells, widths):
            cell.width = width

    return _to_bytes(document)


def _to_bytes(document: Document) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def render_minutes(doc: MinutesDocument, template_path: Optional[Path]) -> Tuple[bytes, str]:
    """Return ``(docx_bytes, "template" | "fallback")``."""
    if template_path is not None and template_path.exists():
        try:
            return render_from_template(template_path, doc), "template"
        except Exception:
            logger.warning("Template rendering failed for %s; using generated layout", template_path, exc_info=True)
    try:
        content = render_fallback(doc)
    except Exception as exc:
        raise ExportError(f"Failed to render minutes document: {exc}") from exc
    if not content:
        raise ExportError("Rendered minutes document is empty")
    return content, "fallback"


def export_minutes(
    title: str,
    venue: str,
    meeting_date: datetime,
    minutes: Optional[List[MinuteItemData]],
    members: Sequence[Member],
    attendance: Iterable[int],
    template_path: Optional[Path],
    today: Optional[date_type] = None,
) -> ExportResult:
    if minutes is None:
        raise NotFoundError("No minutes to export")
    doc = MinutesDocument(
        title=title,
        venue=venue,
        date=meeting_date,
        present=present_names(members, attendance),
        items=minutes,
    )
    content, rendered_with = render_minutes(doc, template_path)
    return ExportResult(
        filename=export_filename(today or date_type.today()),
        mime_type=DOCX_MIME_TYPE,
        content_base64=base64.b64encode(content).decode("ascii"),
        rendered_with=rendered_with,
    )
