from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from ..core.constants import _REPORT_TEMPLATE_NAME
from ..core.types import RenderedDocument
from ..core.utils import _JINJA_ENV, now_iso
from .charts import summary_table

_STYLE_LABELS = {
    "business": "Business Report",
    "research": "Research Report",
    "technical": "Technical Report",
}


def _paragraphs(text: str) -> List[str]:
    return [chunk.strip() for chunk in str(text or "").split("\n\n") if chunk.strip()]


def _completeness(profile: Mapping[str, Any]) -> float:
    rows = profile.get("rowCount") or 0
    columns = profile.get("columns") or []
    if not rows or not columns:
        return 0.0
    nulls = sum(column.get("nullCount", 0) for column in columns)
    return round(100.0 * (1 - nulls / (rows * len(columns))), 1)


def document_context(
    report: Mapping[str, Any],
    narrative: Mapping[str, Any],
    charts: Sequence[Mapping[str, Any]],
    profile: Mapping[str, Any],
) -> Dict[str, Any]:
    """Shared view model for every document renderer."""
    branding = dict(report.get("branding") or {})
    sections = []
    for section in narrative.get("sections", []):
        sections.append(
            {
                "id": section.get("sectionId"),
                "title": section.get("sectionTitle"),
                "paragraphs": _paragraphs(section.get("content", "")),
            }
        )
    return {
        "report": dict(report),
        "title": report.get("title") or "Report",
        "style_label": _STYLE_LABELS.get(str(report.get("style")), "Report"),
        "author": report.get("authorName") or branding.get("companyName"),
        "branding": {
            "primary": branding.get("primaryColor", "#1a365d"),
            "secondary": branding.get("secondaryColor", "#2b6cb0"),
            "accent": branding.get("accentColor", "#ed8936"),
            "font": branding.get("fontFamily") or "Helvetica, Arial, sans-serif",
            "logo": branding.get("logoUrl"),
            "company": branding.get("companyName"),
        },
        "generated_at": now_iso(),
        "summary_paragraphs": _paragraphs(narrative.get("executiveSummary", "")),
        "key_findings": list(narrative.get("keyFindings", [])),
        "recommendations": list(narrative.get("recommendations", [])),
        "sections": sections,
        "charts": [
            {"id": chart.get("id"), "title": chart.get("config", {}).get("title", ""), "image": chart.get("imageBase64")}
            for chart in charts
            if chart.get("imageBase64")
        ],
        "profile": dict(profile),
        "completeness": _completeness(profile),
        "summary_table": summary_table(profile),
    }


class HtmlRenderer:
    content_type = "text/html; charset=utf-8"

    def __init__(self, template_name: str = _REPORT_TEMPLATE_NAME) -> None:
        self.template = _JINJA_ENV.get_template(template_name)

    def render(
        self,
        report: Mapping[str, Any],
        narrative: Mapping[str, Any],
        charts: Sequence[Mapping[str, Any]],
        profile: Mapping[str, Any],
    ) -> RenderedDocument:
        html = self.template.render(**document_context(report, narrative, charts, profile))
        return RenderedDocument(data=html.encode("utf-8"), content_type=self.content_type)
