from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..core.constants import TERMINAL_STATUSES
from ..core.context import ActivityContext
from ..core.utils import now_iso

logger = logging.getLogger(__name__)


def update_report_status(
    ctx: ActivityContext,
    *,
    report_id: str,
    status: str,
    progress: Optional[int] = None,
    current_step: Optional[str] = None,
    error_message: Optional[str] = None,
    error_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Persist the live status tuple onto the report; terminal records are left untouched."""
    storage = ctx.deps.storage
    existing = storage.get_report(report_id) or {}
    current = existing.get("status")
    if current in TERMINAL_STATUSES:
        logger.warning(
            "Report already terminal; status update ignored",
            extra={"reportId": report_id, "status": current, "requested": status},
        )
        return {"reportId": report_id, "status": current, "updated": False}

    update: Dict[str, Any] = {"status": status, "updatedAt": now_iso()}
    if progress is not None:
        update["progress"] = progress
    if current_step is not None:
        update["currentStep"] = current_step
    if error_message is not None:
        update["errorMessage"] = error_message
    if error_type is not None:
        update["errorType"] = error_type

    storage.save_report(report_id, update)
    logger.info("Report status updated", extra={"reportId": report_id, "status": status, "progress": progress})
    return {"reportId": report_id, "status": status, "updated": True}
