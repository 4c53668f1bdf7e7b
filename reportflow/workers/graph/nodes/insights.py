from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.context import ActivityContext

logger = logging.getLogger(__name__)


def _matches(section: Mapping[str, Any], names: Sequence[str]) -> bool:
    wanted = {name.strip().lower() for name in names}
    return (
        str(section.get("sectionId", "")).lower() in wanted
        or str(section.get("sectionTitle", "")).lower() in wanted
    )


def filter_sections(
    narrative: Dict[str, Any],
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    sections: List[Dict[str, Any]] = list(narrative.get("sections", []))
    if include:
        sections = [section for section in sections if _matches(section, include)]
    if exclude:
        sections = [section for section in sections if not _matches(section, exclude)]
    return {**narrative, "sections": sections}


def generate_insights(
    ctx: ActivityContext,
    *,
    report_id: str,
    profile: Dict[str, Any],
    records: List[Dict[str, Any]],
    text_content: List[str],
    config: Dict[str, Any],
) -> Dict[str, Any]:
    narrative = ctx.deps.llm.generate_narrative(
        profile,
        records,
        text_content,
        config.get("style", "business"),
        config.get("title", ""),
        config.get("customPromptInstructions"),
        report_id=report_id,
    )
    narrative = filter_sections(narrative, config.get("sectionsToInclude"), config.get("sectionsToExclude"))
    logger.info("Generated insights", extra={"reportId": report_id, "sections": len(narrative["sections"])})
    return narrative
