"""Word document rendering using python-docx."""
from __future__ import annotations

import base64
from io import BytesIO
from typing import Any, Mapping, Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt, RGBColor

from ..core.types import RenderedDocument
from .html import document_context


def _rgb(value: str) -> RGBColor:
    return RGBColor.from_string(value.lstrip("#").upper())


class DocxRenderer:
    content_type = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

    def render(
        self,
        report: Mapping[str, Any],
        narrative: Mapping[str, Any],
        charts: Sequence[Mapping[str, Any]],
        profile: Mapping[str, Any],
    ) -> RenderedDocument:
        context = document_context(report, narrative, charts, profile)
        document = Document()
        document.core_properties.title = context["title"]
        if context["author"]:
            document.core_properties.author = context["author"]

        title = document.add_heading(context["title"], level=0)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER
        subtitle = document.add_paragraph(context["style_label"])
        subtitle.alignment = WD_ALIGN_PARAGRAPH.CENTER
        if context["author"]:
            document.add_paragraph(context["author"]).alignment = WD_ALIGN_PARAGRAPH.CENTER
        document.add_page_break()

        self._heading(document, "Executive Summary", context)
        for paragraph in context["summary_paragraphs"]:
            document.add_paragraph(paragraph)

        if context["key_findings"]:
            self._heading(document, "Key Findings", context)
            for finding in context["key_findings"]:
                document.add_paragraph(finding, style="List Number")

        for section in context["sections"]:
            self._heading(document, section["title"] or "", context)
            for paragraph in section["paragraphs"]:
                document.add_paragraph(paragraph)

        if context["charts"]:
            self._heading(document, "Visualizations", context)
            for chart in context["charts"]:
                document.add_picture(BytesIO(base64.b64decode(chart["image"])), width=Inches(6))
                caption = document.add_paragraph(chart["title"])
                caption.alignment = WD_ALIGN_PARAGRAPH.CENTER

        table_data = context["summary_table"]
        if table_data["rows"]:
            self._heading(document, "Key Metrics Summary", context)
            table = document.add_table(rows=1, cols=len(table_data["headers"]))
            table.style = "Table Grid"
            for cell, header in zip(table.rows[0].cells, table_data["headers"]):
                cell.text = header
            for row in table_data["rows"]:
                for cell, value in zip(table.add_row().cells, row):
                    cell.text = value

        if context["recommendations"]:
            self._heading(document, "Recommendations", context)
            for item in context["recommendations"]:
                document.add_paragraph(item, style="List Bullet")

        buffer = BytesIO()
        document.save(buffer)
        return RenderedDocument(data=buffer.getvalue(), content_type=self.content_type)

    @staticmethod
    def _heading(document: Any, text: str, context: Mapping[str, Any]) -> None:
        heading = document.add_heading(text, level=1)
        for run in heading.runs:
            run.font.color.rgb = _rgb(context["branding"]["secondary"])
            run.font.size = Pt(16)
