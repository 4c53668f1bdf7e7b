"""Narrative and image generation backed by the OpenAI API."""
from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import OpenAI, OpenAIError

from reportflow.workers.graph.core.constants import (
    DEFAULT_EXECUTIVE_SUMMARY,
    MAX_NARRATIVE_SAMPLE_ROWS,
    MAX_NARRATIVE_TEXT_CHARS,
)
from reportflow.workers.graph.core.errors import TransientError

logger = logging.getLogger(__name__)

_STYLE_GUIDANCE = {
    "business": (
        "Write in a concise, executive-friendly tone. Focus on KPIs, trends, risks and "
        "actionable recommendations. Lead with insights."
    ),
    "research": (
        "Write in a formal, structured academic tone. Discuss methodology, cite data points "
        "and state limitations."
    ),
    "technical": (
        "Write for an engineering audience. Be precise about metrics, distributions and "
        "anomalies, and describe how the figures were derived."
    ),
}

_RESPONSE_SHAPE = """Respond with valid JSON in exactly this shape:
{
  "executiveSummary": "2-3 paragraph summary",
  "sections": [{"sectionId": "id", "sectionTitle": "Title", "content": "2-4 paragraphs", "order": 1}],
  "recommendations": ["..."],
  "keyFindings": ["..."]
}"""


def system_prompt(style: str, title: str, instructions: Optional[str] = None) -> str:
    lines = [
        f"You are an expert writer of {style} reports.",
        _STYLE_GUIDANCE.get(style, _STYLE_GUIDANCE["business"]),
        f'Write the content of a report titled "{title}".',
    ]
    if instructions:
        lines.append(f"Additional instructions: {instructions}")
    lines.append(_RESPONSE_SHAPE)
    return "\n".join(lines)


def user_prompt(data_context: str, style: str) -> str:
    return (
        "Based on the following data analysis, write the report content.\n\n"
        f"DATA CONTEXT:\n{data_context}\n\n"
        f"Include an executive summary, 4-6 sections suited to a {style} report, "
        "3-5 actionable recommendations and 5-7 key findings. Keep every claim grounded in the data."
    )


def build_data_context(profile: Mapping[str, Any], records: Sequence[Mapping[str, Any]], text_content: Sequence[str]) -> str:
    columns = []
    for column in profile.get("columns", []):
        entry: Dict[str, Any] = {"name": column.get("name"), "type": column.get("type")}
        for key in ("min", "max", "mean", "median", "stdDev", "uniqueCount", "nullCount"):
            if column.get(key) is not None:
                entry[key] = column[key]
        if column.get("topValues"):
            entry["top"] = [f"{item['value']}({item['count']})" for item in column["topValues"]]
        columns.append(entry)

    context: Dict[str, Any] = {
        "rows": profile.get("rowCount", 0),
        "columns": profile.get("columnCount", 0),
        "qualityScore": profile.get("dataQualityScore", 0),
        "columnProfiles": columns,
        "sample": list(records[:MAX_NARRATIVE_SAMPLE_ROWS]),
    }
    text = "\n\n".join(text_content)
    if text:
        context["text"] = text[:MAX_NARRATIVE_TEXT_CHARS]
    return json.dumps(context, default=str, separators=(",", ":"))


def clean_narrative(raw: Any) -> Dict[str, Any]:
    """Coerce an LLM response into a complete narrative, filling defaults."""
    data = raw if isinstance(raw, Mapping) else {}
    sections: List[Dict[str, Any]] = []
    for index, section in enumerate(data.get("sections") or []):
        if not isinstance(section, Mapping):
            continue
        order = section.get("order")
        sections.append(
            {
                "sectionId": str(section.get("sectionId") or f"section-{index + 1}"),
                "sectionTitle": str(section.get("sectionTitle") or f"Section {index + 1}"),
                "content": str(section.get("content") or ""),
                "order": order if isinstance(order, int) and not isinstance(order, bool) else index + 1,
            }
        )
    sections.sort(key=lambda item: item["order"])
    return {
        "executiveSummary": str(data.get("executiveSummary") or DEFAULT_EXECUTIVE_SUMMARY),
        "sections": sections,
        "recommendations": [str(item) for item in data.get("recommendations") or [] if item],
        "keyFindings": [str(item) for item in data.get("keyFindings") or [] if item],
    }


class OpenAINarrativeService:
    def __init__(self, settings: Any, cost_tracker: Any = None, client: Optional[OpenAI] = None) -> None:
        self.model = settings.openai_model
        self.image_model = settings.openai_image_model
        self.max_tokens = settings.llm_max_tokens
        self.temperature = settings.llm_temperature
        self.cost_tracker = cost_tracker
        self.client = client if client is not None else OpenAI(api_key=settings.openai_api_key)

    def generate_narrative(
        self,
        profile: Mapping[str, Any],
        records: Sequence[Mapping[str, Any]],
        text_content: Sequence[str],
        style: str,
        title: str,
        instructions: Optional[str] = None,
        *,
        report_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        messages = [
            {"role": "system", "content": system_prompt(style, title, instructions)},
            {"role": "user", "content": user_prompt(build_data_context(profile, records, text_content), style)},
        ]
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error("Narrative request failed", extra={"reportId": report_id, "error": str(exc)})
            raise TransientError(f"Narrative generation failed: {exc}") from exc

        usage = getattr(response, "usage", None)
        if usage is not None and report_id and self.cost_tracker is not None:
            self.cost_tracker.track_usage(
                report_id,
                prompt_tokens=usage.prompt_tokens or 0,
                completion_tokens=usage.completion_tokens or 0,
            )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise TransientError("Narrative generation failed: empty response")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise TransientError(f"Narrative generation failed: invalid JSON ({exc.msg})") from exc

        narrative = clean_narrative(parsed)
        logger.info(
            "Generated narrative",
            extra={"reportId": report_id, "sections": len(narrative["sections"])},
        )
        return narrative

    def generate_image(self, prompt: str, *, size: str = "1024x1024", report_id: Optional[str] = None) -> bytes:
        try:
            response = self.client.images.generate(
                model=self.image_model,
                prompt=f"Professional illustration: {prompt}. Clean, modern style, no text.",
                n=1,
                size=size,
                response_format="b64_json",
            )
        except OpenAIError as exc:
            raise TransientError(f"Image generation failed: {exc}") from exc

        data = response.data[0].b64_json if response.data else None
        if not data:
            raise TransientError("Image generation failed: no image data returned")
        if report_id and self.cost_tracker is not None:
            self.cost_tracker.track_usage(report_id, images_generated=1)
        return base64.b64decode(data)
