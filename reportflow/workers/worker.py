"""Long-running worker process: ``python -m reportflow.workers.worker``."""
from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Optional

from reportflow.common.costs import CostTracker
from reportflow.common.llm import OpenAINarrativeService
from reportflow.common.storage import create_storage
from reportflow.config import Settings, configure_logging, load_settings

from .client import PipelineClient
from .engine import PipelineEngine
from .graph.app import create_checkpointer
from .graph.core.context import Dependencies
from .graph.render import ChartRenderer, default_renderers

logger = logging.getLogger("reportflow.worker")


def build_client(settings: Settings, *, storage: Any = None, llm: Any = None, checkpointer: Any = None) -> PipelineClient:
    """Construct every collaborator once and wire them into a client."""
    if storage is None:
        storage = create_storage(settings)
    cost_tracker = CostTracker.from_settings(storage, settings)
    if llm is None:
        llm = OpenAINarrativeService(settings, cost_tracker=cost_tracker)
    deps = Dependencies(
        storage=storage,
        llm=llm,
        chart_renderer=ChartRenderer(),
        renderers=default_renderers(),
        cost_tracker=cost_tracker,
    )
    if checkpointer is None:
        checkpointer = create_checkpointer(settings)
    engine = PipelineEngine(settings, deps, checkpointer=checkpointer)
    return PipelineClient(engine, storage, settings, cost_tracker=cost_tracker)


def stop_on_signal(stop: threading.Event):
    """Signal handler that only sets ``stop``; logging is not safe inside a handler."""

    def _handle(_signum, _frame):
        stop.set()

    return _handle


def main(settings: Optional[Settings] = None) -> int:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    client = build_client(settings)
    resumed = client.engine.recover()
    logger.info(
        "Worker started",
        extra={
            "storageType": settings.storage_type,
            "maxInstances": settings.max_concurrent_instances,
            "maxActivities": settings.max_concurrent_activities,
            "resumed": len(resumed),
        },
    )

    stop = threading.Event()
    handler = stop_on_signal(stop)
    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)

    while not stop.wait(1.0):
        pass

    logger.info("Shutdown signal received")
    client.shutdown(wait=True)
    logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
