from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Dependencies:
    """Collaborators constructed once at process start and shared by every instance."""

    storage: Any
    llm: Any
    chart_renderer: Any
    renderers: Dict[str, Any]
    cost_tracker: Any = None


@dataclass
class ActivityContext:
    name: str
    report_id: str
    instance_id: str
    attempt: int
    deps: Dependencies
    heartbeat_interval: float = 5.0
    clock: Callable[[], float] = time.monotonic
    last_heartbeat: float = 0.0
    heartbeat_details: Optional[Tuple[Any, ...]] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.last_heartbeat = self.clock()

    def heartbeat(self, *details: Any) -> None:
        with self._lock:
            self.last_heartbeat = self.clock()
            self.heartbeat_details = details or None
        logger.debug(
            "Activity heartbeat",
            extra={"activity": self.name, "reportId": self.report_id, "details": details},
        )

    def report_progress(self, *details: Any) -> None:
        """Refresh the reported details without counting as a liveness signal."""
        with self._lock:
            self.heartbeat_details = details or None
        logger.debug(
            "Activity progress",
            extra={"activity": self.name, "reportId": self.report_id, "details": details},
        )

    def seconds_since_heartbeat(self) -> float:
        with self._lock:
            return self.clock() - self.last_heartbeat

    def ticker(self, step_name: str, total: int) -> "HeartbeatTicker":
        return HeartbeatTicker(self, step_name, total, self.heartbeat_interval)


class HeartbeatTicker:
    """Tracks ``(step_name, completed, total)`` for a multi-part step.

    Only the activity thread proves liveness: entering the ticker and every
    :meth:`advance` heartbeat. The background thread re-reports the latest
    counts every ``interval`` seconds but never refreshes the heartbeat clock,
    so a part that hangs is caught by the heartbeat timeout.
    """

    def __init__(self, context: ActivityContext, step_name: str, total: int, interval: float) -> None:
        self._context = context
        self._step_name = step_name
        self._total = total
        self._interval = interval
        self._completed = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def completed(self) -> int:
        return self._completed

    def advance(self, count: int = 1) -> None:
        self._completed += count
        self._beat()

    def _beat(self) -> None:
        self._context.heartbeat(self._step_name, self._completed, self._total)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self._context.report_progress(self._step_name, self._completed, self._total)

    def __enter__(self) -> "HeartbeatTicker":
        self._beat()
        self._thread = threading.Thread(
            target=self._run,
            name=f"heartbeat-{self._context.name}",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval)
