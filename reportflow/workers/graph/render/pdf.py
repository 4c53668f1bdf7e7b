"""PDF rendering using ReportLab."""
from __future__ import annotations

import base64
import logging
from io import BytesIO
from typing import Any, List, Mapping, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Image, PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..core.types import RenderedDocument
from .html import document_context

logger = logging.getLogger(__name__)

_IMAGE_WIDTH = 16 * cm
_IMAGE_HEIGHT = 10 * cm


class PdfRenderer:
    content_type = "application/pdf"

    def render(
        self,
        report: Mapping[str, Any],
        narrative: Mapping[str, Any],
        charts: Sequence[Mapping[str, Any]],
        profile: Mapping[str, Any],
    ) -> RenderedDocument:
        context = document_context(report, narrative, charts, profile)
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2 * cm,
            leftMargin=2 * cm,
            topMargin=2 * cm,
            bottomMargin=2 * cm,
            title=context["title"],
            author=context["author"] or "",
        )
        doc.build(self._story(context))
        return RenderedDocument(data=buffer.getvalue(), content_type=self.content_type)

    def _story(self, context: Mapping[str, Any]) -> List[Any]:
        styles = getSampleStyleSheet()
        primary = colors.HexColor(context["branding"]["primary"])
        secondary = colors.HexColor(context["branding"]["secondary"])
        title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Title"],
            fontSize=26,
            leading=32,
            textColor=primary,
            alignment=TA_CENTER,
            spaceAfter=12,
        )
        heading_style = ParagraphStyle(
            "ReportHeading",
            parent=styles["Heading2"],
            textColor=secondary,
            spaceBefore=16,
            spaceAfter=8,
        )
        body_style = ParagraphStyle("ReportBody", parent=styles["BodyText"], fontSize=11, leading=16)
        caption_style = ParagraphStyle("Caption", parent=body_style, alignment=TA_CENTER, fontSize=9)

        story: List[Any] = [
            Spacer(1, 5 * cm),
            Paragraph(escape(context["title"]), title_style),
            Paragraph(escape(context["style_label"]), caption_style),
        ]
        if context["author"]:
            story.append(Paragraph(escape(context["author"]), caption_style))
        story.append(PageBreak())

        story.append(Paragraph("Executive Summary", heading_style))
        for paragraph in context["summary_paragraphs"]:
            story.append(Paragraph(escape(paragraph), body_style))

        if context["key_findings"]:
            story.append(Paragraph("Key Findings", heading_style))
            for index, finding in enumerate(context["key_findings"], start=1):
                story.append(Paragraph(f"{index}. {escape(finding)}", body_style))

        for section in context["sections"]:
            story.append(Paragraph(escape(section["title"] or ""), heading_style))
            for paragraph in section["paragraphs"]:
                story.append(Paragraph(escape(paragraph), body_style))

        if context["charts"]:
            story.append(PageBreak())
            story.append(Paragraph("Visualizations", heading_style))
            for chart in context["charts"]:
                image = Image(BytesIO(base64.b64decode(chart["image"])), width=_IMAGE_WIDTH, height=_IMAGE_HEIGHT)
                story.extend([image, Paragraph(escape(chart["title"]), caption_style), Spacer(1, 0.5 * cm)])

        table = context["summary_table"]
        if table["rows"]:
            story.append(Paragraph("Key Metrics Summary", heading_style))
            grid = Table([table["headers"], *table["rows"]], repeatRows=1)
            grid.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), primary),
                        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
                        ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ]
                )
            )
            story.append(grid)

        if context["recommendations"]:
            story.append(Paragraph("Recommendations", heading_style))
            for item in context["recommendations"]:
                story.append(Paragraph(f"&bull; {escape(item)}", body_style))

        return story
