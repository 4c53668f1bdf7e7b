"""Per-report ledger of LLM token and image usage."""
from __future__ import annotations

import logging
import math
import threading
from typing import Any, Dict, Optional

from reportflow.workers.graph.core.types import CostMetrics
from reportflow.workers.graph.core.utils import now_iso

logger = logging.getLogger(__name__)


def round_cost(value: float) -> float:
    """Round half up to 4 decimal places."""
    return math.floor(value * 10000 + 0.5) / 10000


class CostTracker:
    def __init__(
        self,
        storage: Any,
        *,
        enabled: bool = True,
        cost_per_1k_input: float = 0.005,
        cost_per_1k_output: float = 0.015,
        cost_per_image: float = 0.040,
    ) -> None:
        self.storage = storage
        self.enabled = enabled
        self.cost_per_1k_input = cost_per_1k_input
        self.cost_per_1k_output = cost_per_1k_output
        self.cost_per_image = cost_per_image
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, storage: Any, settings: Any) -> "CostTracker":
        return cls(
            storage,
            enabled=settings.enable_cost_tracking,
            cost_per_1k_input=settings.cost_per_1k_input,
            cost_per_1k_output=settings.cost_per_1k_output,
            cost_per_image=settings.cost_per_image,
        )

    def _lock_for(self, report_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(report_id)
            if lock is None:
                lock = self._locks[report_id] = threading.Lock()
            return lock

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int, images_generated: int) -> float:
        if not self.enabled:
            return 0.0
        cost = (
            (prompt_tokens / 1000) * self.cost_per_1k_input
            + (completion_tokens / 1000) * self.cost_per_1k_output
            + images_generated * self.cost_per_image
        )
        return round_cost(cost)

    def track_usage(
        self,
        report_id: str,
        *,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        images_generated: int = 0,
    ) -> CostMetrics:
        if min(prompt_tokens, completion_tokens, images_generated) < 0:
            raise ValueError("usage deltas must be non-negative")

        with self._lock_for(report_id):
            metrics = self.get_cost_metrics(report_id) or CostMetrics(report_id=report_id, timestamp=now_iso())
            metrics.prompt_tokens += prompt_tokens
            metrics.completion_tokens += completion_tokens
            metrics.images_generated += images_generated
            metrics.total_tokens = metrics.prompt_tokens + metrics.completion_tokens
            metrics.estimated_cost = self.calculate_cost(
                metrics.prompt_tokens, metrics.completion_tokens, metrics.images_generated
            )
            metrics.timestamp = now_iso()
            self.storage.save_cost_metrics(report_id, metrics.to_dict())

        logger.debug(
            "Tracked usage",
            extra={
                "reportId": report_id,
                "totalTokens": metrics.total_tokens,
                "estimatedCost": metrics.estimated_cost,
            },
        )
        return metrics

    def get_cost_metrics(self, report_id: str) -> Optional[CostMetrics]:
        stored = self.storage.get_cost_metrics(report_id)
        if stored is None:
            return None
        return CostMetrics.from_dict(stored)

    def get_aggregated_costs(self) -> Dict[str, Any]:
        ledgers = [CostMetrics.from_dict(item) for item in self.storage.list_cost_metrics()]
        total_reports = len(ledgers)
        total_tokens = sum(item.total_tokens for item in ledgers)
        raw_cost = sum(item.estimated_cost for item in ledgers)
        total_cost = round_cost(raw_cost)
        average = round_cost(raw_cost / total_reports) if total_reports else 0
        return {
            "totalReports": total_reports,
            "totalTokens": total_tokens,
            "totalCost": total_cost,
            "averageCostPerReport": average,
        }
