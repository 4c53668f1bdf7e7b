from __future__ import annotations

import logging
from typing import Any, Dict, List

from reportflow.common.pipeline import output_filename

from ..core.constants import OUTPUT_EXTENSIONS
from ..core.context import ActivityContext
from ..core.errors import TransientError
from ..core.types import ReportFile
from ..core.utils import now_iso

logger = logging.getLogger(__name__)


def export_formats(
    ctx: ActivityContext,
    *,
    report_id: str,
    report: Dict[str, Any],
    narrative: Dict[str, Any],
    charts: List[Dict[str, Any]],
    profile: Dict[str, Any],
    output_formats: List[str],
    html_location: str,
) -> List[Dict[str, Any]]:
    """Produce one file per requested format, heartbeating between formats."""
    storage = ctx.deps.storage
    files: List[Dict[str, Any]] = []
    with ctx.ticker("export", len(output_formats)) as ticker:
        for fmt in output_formats:
            extension = OUTPUT_EXTENSIONS.get(fmt)
            if extension is None:
                logger.warning("Unknown export format skipped", extra={"reportId": report_id, "format": fmt})
                ticker.advance()
                continue

            if fmt == "HTML":
                location = html_location
                if not storage.file_exists(location):
                    raise TransientError(f"Rendered HTML missing at {location}")
                size = storage.get_file_size(location)
            else:
                renderer = ctx.deps.renderers[fmt]
                document = renderer.render(report, narrative, charts, profile)
                location = storage.save_output_file(report_id, output_filename(report_id, extension), document.data)
                size = document.size

            files.append(ReportFile(format=fmt, location=location, size=size, generated_at=now_iso()).to_dict())
            ticker.advance()
            logger.info("Exported report", extra={"reportId": report_id, "format": fmt, "bytes": size})
    return files
