from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.constants import STATUS_COMPLETED
from ..core.context import ActivityContext
from ..core.utils import now_iso

logger = logging.getLogger(__name__)


def finalize_report(
    ctx: ActivityContext,
    *,
    report_id: str,
    report: Dict[str, Any],
    files: List[Dict[str, Any]],
    profile: Dict[str, Any],
    current_step: str,
    created_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Write the completed record in one save; COMPLETED is never written before the files are."""
    completed_at = now_iso()
    record: Dict[str, Any] = {
        "title": report.get("title"),
        "style": report.get("style"),
        "outputFormats": list(report.get("outputFormats") or []),
        "status": STATUS_COMPLETED,
        "progress": 100,
        "currentStep": current_step,
        "updatedAt": completed_at,
        "completedAt": completed_at,
        "files": list(files),
        "dataProfile": profile,
    }
    if created_at:
        record["createdAt"] = created_at
    saved = ctx.deps.storage.save_report(report_id, record)
    logger.info("Report finalized", extra={"reportId": report_id, "files": len(files)})
    return saved
