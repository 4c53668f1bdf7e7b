from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..core.context import ActivityContext
from ..core.utils import b64encode

logger = logging.getLogger(__name__)


def generate_charts(
    ctx: ActivityContext,
    *,
    report_id: str,
    profile: Dict[str, Any],
    records: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    suggestions = list(profile.get("suggestedCharts", []))
    renderer = ctx.deps.chart_renderer
    charts: List[Dict[str, Any]] = []
    with ctx.ticker("charts", len(suggestions)) as ticker:
        for index, suggestion in enumerate(suggestions):
            chart = renderer.render_one(index, suggestion, records)
            ticker.advance()
            if chart is None:
                continue
            image = chart["imageBytes"]
            location = ctx.deps.storage.save_chart(report_id, chart["id"], image)
            charts.append(
                {
                    "id": chart["id"],
                    "config": chart["config"],
                    "location": location,
                    "imageBase64": b64encode(image),
                }
            )
    logger.info("Generated charts", extra={"reportId": report_id, "charts": len(charts)})
    return charts
