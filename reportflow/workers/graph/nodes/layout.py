from __future__ import annotations

import logging
from typing import Any, Dict, List

from reportflow.common.pipeline import output_filename

from ..core.constants import OUTPUT_EXTENSIONS
from ..core.context import ActivityContext

logger = logging.getLogger(__name__)


def render_layout(
    ctx: ActivityContext,
    *,
    report_id: str,
    report: Dict[str, Any],
    narrative: Dict[str, Any],
    charts: List[Dict[str, Any]],
    profile: Dict[str, Any],
) -> Dict[str, Any]:
    """Render the HTML document; it is the layout every export format starts from."""
    document = ctx.deps.renderers["HTML"].render(report, narrative, charts, profile)
    filename = output_filename(report_id, OUTPUT_EXTENSIONS["HTML"])
    location = ctx.deps.storage.save_output_file(report_id, filename, document.data)
    logger.info("Rendered layout", extra={"reportId": report_id, "bytes": document.size})
    return {"html_location": location, "size": document.size}
