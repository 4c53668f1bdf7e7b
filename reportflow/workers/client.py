from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional, Sequence

from .engine import PipelineEngine
from .graph.app import checkpoint_snapshot
from .graph.core.constants import (
    INITIAL_STEP_LABEL,
    QUEUED_STEP_LABEL,
    STATUS_QUEUED,
    TERMINAL_STATUSES,
)
from .graph.core.errors import ValidationError
from .graph.core.schema import validate_request
from .graph.core.types import CostMetrics, PipelineOutcome, WorkflowState
from .graph.core.utils import now_iso

logger = logging.getLogger(__name__)

INSTANCE_PREFIX = "report-"


def new_report_id() -> str:
    # 9 random bytes -> 12 url-safe characters
    return secrets.token_urlsafe(9)


def instance_id_for(report_id: str) -> str:
    return f"{INSTANCE_PREFIX}{report_id}"


def report_id_for(instance_id: str) -> Optional[str]:
    if instance_id.startswith(INSTANCE_PREFIX):
        return instance_id[len(INSTANCE_PREFIX):]
    return None


class PipelineClient:
    """Caller-facing surface: start, observe, cancel and await report pipelines."""

    def __init__(self, engine: PipelineEngine, storage: Any, settings: Any, cost_tracker: Any = None) -> None:
        self.engine = engine
        self.storage = storage
        self.settings = settings
        self.cost_tracker = cost_tracker

    def start(self, input_data: Sequence[Any], config: Any) -> Dict[str, str]:
        blocks, report_config = validate_request(
            input_data,
            config,
            default_style=self.settings.default_report_style,
            default_output_format=self.settings.default_output_format,
        )
        return self._launch(blocks, report_config)

    def _launch(self, blocks: List[Dict[str, Any]], report_config: Dict[str, Any], **extra: Any) -> Dict[str, str]:
        report_id = new_report_id()
        instance_id = instance_id_for(report_id)
        created_at = now_iso()

        record: Dict[str, Any] = {
            "id": report_id,
            "title": report_config["title"],
            "style": report_config["style"],
            "status": STATUS_QUEUED,
            "progress": 0,
            "currentStep": QUEUED_STEP_LABEL,
            "outputFormats": list(report_config["outputFormats"]),
            "branding": dict(report_config.get("branding") or {}),
            "instanceId": instance_id,
            "files": [],
            "createdAt": created_at,
            "updatedAt": created_at,
        }
        if report_config.get("authorName"):
            record["authorName"] = report_config["authorName"]
        record.update(extra)
        self.storage.save_report(report_id, record)

        self.engine.start(
            report_id=report_id,
            instance_id=instance_id,
            input_data=blocks,
            config=report_config,
            created_at=created_at,
        )
        logger.info(
            "Report workflow started",
            extra={"reportId": report_id, "instanceId": instance_id, "formats": record["outputFormats"]},
        )
        return {"reportId": report_id, "instanceId": instance_id}

    def status(self, instance_id: str) -> Optional[WorkflowState]:
        """Live status, falling back to the persisted record once the instance is gone."""
        instance = self.engine.get(instance_id)
        if instance is not None:
            return instance.query()

        report_id = report_id_for(instance_id)
        record = self.storage.get_report(report_id) if report_id else None
        if record is None:
            return None
        return WorkflowState(
            status=record.get("status", STATUS_QUEUED),
            progress=int(record.get("progress", 0)),
            current_step=record.get("currentStep", INITIAL_STEP_LABEL),
            error=record.get("errorMessage"),
            error_type=record.get("errorType"),
        )

    def progress(self, instance_id: str) -> Optional[int]:
        state = self.status(instance_id)
        return state.progress if state is not None else None

    def cancel(self, instance_id: str) -> bool:
        instance = self.engine.get(instance_id)
        if instance is None or instance.done:
            logger.info("Cancel ignored; no running instance", extra={"instanceId": instance_id})
            return False
        instance.signal_cancel()
        return True

    def await_result(self, instance_id: str, timeout: Optional[float] = None) -> Optional[PipelineOutcome]:
        """Block until the instance finishes; raises ``concurrent.futures.TimeoutError`` on timeout."""
        instance = self.engine.get(instance_id)
        if instance is None:
            return None
        return instance.result(timeout=timeout)

    def retry(self, report_id: str) -> Dict[str, str]:
        """Start a fresh report from a failed one's original input and config."""
        record = self.storage.get_report(report_id)
        if record is None:
            raise KeyError(report_id)
        if record.get("status") not in TERMINAL_STATUSES:
            raise ValidationError(f"Report {report_id} is still running")

        instance_id = record.get("instanceId") or instance_id_for(report_id)
        request = self._original_request(instance_id)
        if request is None:
            raise ValidationError(f"Original input for report {report_id} is no longer available")
        blocks, report_config = request
        logger.info("Retrying report", extra={"reportId": report_id})
        return self._launch(blocks, report_config, retryOf=report_id)

    def _original_request(self, instance_id: str):
        instance = self.engine.get(instance_id)
        if instance is not None and instance.request is not None:
            return instance.request
        if self.engine.checkpointer is None:
            return None
        values, _ = checkpoint_snapshot(self.engine.checkpointer, instance_id)
        if not values.get("input_data") or not values.get("config"):
            return None
        return list(values["input_data"]), dict(values["config"])

    # costs

    def get_cost_metrics(self, report_id: str) -> Optional[CostMetrics]:
        if self.cost_tracker is None:
            return None
        return self.cost_tracker.get_cost_metrics(report_id)

    def get_aggregated_costs(self) -> Dict[str, Any]:
        if self.cost_tracker is None:
            return {"totalReports": 0, "totalTokens": 0, "totalCost": 0.0, "averageCostPerReport": 0.0}
        return self.cost_tracker.get_aggregated_costs()

    def shutdown(self, wait: bool = True) -> None:
        self.engine.shutdown(wait=wait)
