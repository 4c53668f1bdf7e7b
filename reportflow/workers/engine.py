"""In-process durable executor for report pipeline instances.

Each instance runs its LangGraph graph on the instance pool. Every step's side
effects go through :meth:`PipelineEngine.execute_activity`, which runs the
activity on the bounded activity pool under the retry policy, the
start-to-close timeout and (for long activities) the heartbeat timeout.
Progress is checkpointed per step so a restarted process can resume
interrupted instances through :meth:`PipelineEngine.recover`.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, replace
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from .graph.app import checkpoint_snapshot, initial_state, run_workflow
from .graph.core.constants import (
    CANCELLED_MESSAGE,
    FAILED_STEP_LABEL,
    INITIAL_STEP_LABEL,
    LOST_INSTANCE_MESSAGE,
    STATUS_FAILED,
    STATUS_QUEUED,
    TERMINAL_STATUSES,
)
from .graph.core.context import ActivityContext, Dependencies
from .graph.core.errors import (
    ActivityTimeoutError,
    CancelledError,
    HeartbeatTimeoutError,
    is_retryable,
)
from .graph.core.state import report_view
from .graph.core.types import PipelineOutcome, WorkflowState
from .graph.core.utils import now_iso
from .graph.nodes import update_report_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    initial_interval: float = 1.0
    backoff_coefficient: float = 2.0
    maximum_interval: float = 30.0
    maximum_attempts: int = 3

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        delay = self.initial_interval * (self.backoff_coefficient ** (attempt - 1))
        return min(delay, self.maximum_interval)

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            initial_interval=settings.retry_initial_interval,
            backoff_coefficient=settings.retry_backoff_coefficient,
            maximum_interval=settings.retry_maximum_interval,
            maximum_attempts=settings.retry_maximum_attempts,
        )


class PipelineInstance:
    """One running report workflow: live status, cancellation flag and result future."""

    def __init__(
        self,
        engine: "PipelineEngine",
        report_id: str,
        instance_id: str,
        summary: Mapping[str, Any],
    ) -> None:
        self.engine = engine
        self.report_id = report_id
        self.instance_id = instance_id
        self.summary: Dict[str, Any] = dict(summary)
        self.history: List[str] = [STATUS_QUEUED]
        self.activity_log: List[Tuple[str, int, str]] = []
        self.request: Optional[Tuple[List[Dict[str, Any]], Dict[str, Any]]] = None
        self.future: Optional[Future] = None
        self._state = WorkflowState()
        self._lock = threading.Lock()
        self._cancel = threading.Event()

    def query(self) -> WorkflowState:
        with self._lock:
            return replace(self._state)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()

    def signal_cancel(self) -> None:
        self._cancel.set()
        logger.info("Cancellation requested", extra={"reportId": self.report_id, "instanceId": self.instance_id})

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise CancelledError(CANCELLED_MESSAGE)

    def set_state(self, status: str, progress: int, current_step: str) -> None:
        with self._lock:
            self._state.status = status
            self._state.progress = progress
            self._state.current_step = current_step
            if not self.history or self.history[-1] != status:
                self.history.append(status)

    def transition(self, status: str, progress: int, current_step: str) -> None:
        """Move the live status forward and persist it onto the report record."""
        self.set_state(status, progress, current_step)
        self.execute(
            "update_report_status",
            update_report_status,
            report_id=self.report_id,
            status=status,
            progress=progress,
            current_step=current_step,
        )

    def fail(self, message: str, error_type: str) -> None:
        with self._lock:
            self._state.status = STATUS_FAILED
            self._state.current_step = FAILED_STEP_LABEL
            self._state.error = message
            self._state.error_type = error_type
            self.history.append(STATUS_FAILED)

    def execute(self, name: str, fn: Callable[..., Any], *, heartbeat: bool = False, **kwargs: Any) -> Any:
        return self.engine.execute_activity(self, name, fn, heartbeat=heartbeat, **kwargs)

    def result(self, timeout: Optional[float] = None) -> PipelineOutcome:
        if self.future is None:
            raise RuntimeError(f"Instance {self.instance_id} was never started")
        return self.future.result(timeout=timeout)


class PipelineEngine:
    def __init__(
        self,
        settings: Any,
        deps: Dependencies,
        *,
        checkpointer: Any = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.25,
    ) -> None:
        self.settings = settings
        self.deps = deps
        self.checkpointer = checkpointer
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.poll_interval = min(poll_interval, settings.heartbeat_timeout / 4)
        self._sleep = sleep
        self._clock = clock
        self._instances: Dict[str, PipelineInstance] = {}
        self._finished: Deque[str] = deque()
        self._lock = threading.Lock()
        self._instance_pool = ThreadPoolExecutor(
            max_workers=settings.max_concurrent_instances,
            thread_name_prefix="report-instance",
        )
        self._activity_pool = ThreadPoolExecutor(
            max_workers=settings.max_concurrent_activities,
            thread_name_prefix="report-activity",
        )

    # instances

    def get(self, instance_id: str) -> Optional[PipelineInstance]:
        with self._lock:
            return self._instances.get(instance_id)

    def instances(self) -> List[PipelineInstance]:
        with self._lock:
            return list(self._instances.values())

    def start(
        self,
        *,
        report_id: str,
        instance_id: str,
        input_data: Sequence[Mapping[str, Any]],
        config: Mapping[str, Any],
        created_at: Optional[str] = None,
    ) -> PipelineInstance:
        state = initial_state(report_id, instance_id, input_data, config, created_at or now_iso())
        with self._lock:
            existing = self._instances.get(instance_id)
            if existing is not None and not existing.done:
                logger.info("Instance already running", extra={"instanceId": instance_id})
                return existing
            instance = PipelineInstance(self, report_id, instance_id, report_view(state))
            instance.request = (list(state["input_data"]), dict(state["config"]))
            self._instances[instance_id] = instance
            instance.future = self._instance_pool.submit(self._run, instance, state)
        instance.future.add_done_callback(lambda _future: self._release(instance))
        logger.info("Instance scheduled", extra={"reportId": report_id, "instanceId": instance_id})
        return instance

    def resume(self, report_id: str, instance_id: str) -> Optional[PipelineInstance]:
        """Continue an interrupted instance from its last checkpoint, if it has one."""
        if self.checkpointer is None:
            return None
        values, pending = checkpoint_snapshot(self.checkpointer, instance_id)
        if not values or not pending:
            return None

        record = self.deps.storage.get_report(report_id) or {}
        with self._lock:
            existing = self._instances.get(instance_id)
            if existing is not None and not existing.done:
                return existing
            instance = PipelineInstance(self, report_id, instance_id, report_view(values))
            instance.request = (list(values.get("input_data") or []), dict(values.get("config") or {}))
            instance.set_state(
                record.get("status", STATUS_QUEUED),
                int(record.get("progress", 0)),
                record.get("currentStep", INITIAL_STEP_LABEL),
            )
            self._instances[instance_id] = instance
            instance.future = self._instance_pool.submit(self._run, instance, None)
        instance.future.add_done_callback(lambda _future: self._release(instance))
        logger.info(
            "Instance resumed from checkpoint",
            extra={"reportId": report_id, "instanceId": instance_id, "pending": list(pending)},
        )
        return instance

    def recover(self) -> List[str]:
        """Resume every non-terminal report; those with no checkpoint are marked FAILED."""
        if self.checkpointer is None:
            logger.info("Checkpointing disabled; skipping recovery")
            return []

        resumed: List[str] = []
        for record in self.deps.storage.list_reports():
            if record.get("status") in TERMINAL_STATUSES:
                continue
            report_id = record.get("id")
            instance_id = record.get("instanceId")
            if not report_id or not instance_id or self.get(instance_id) is not None:
                continue
            if self.resume(report_id, instance_id) is not None:
                resumed.append(instance_id)
                continue
            self.deps.storage.save_report(
                report_id,
                {
                    "status": STATUS_FAILED,
                    "currentStep": FAILED_STEP_LABEL,
                    "errorMessage": LOST_INSTANCE_MESSAGE,
                    "errorType": "InstanceLostError",
                    "updatedAt": now_iso(),
                },
            )
            logger.warning("Instance lost; report marked failed", extra={"reportId": report_id})
        return resumed

    def _run(self, instance: PipelineInstance, state: Optional[Dict[str, Any]]) -> PipelineOutcome:
        logger.info("Instance started", extra={"reportId": instance.report_id, "instanceId": instance.instance_id})
        outcome = run_workflow(instance, state, checkpointer=self.checkpointer)
        logger.info(
            "Instance finished",
            extra={"reportId": instance.report_id, "instanceId": instance.instance_id, "success": outcome.success},
        )
        return outcome

    def _release(self, instance: PipelineInstance) -> None:
        """Drop a finished instance's input and evict the oldest finished ones past retention.

        The request stays only when there is no checkpoint to read it back from.
        """
        with self._lock:
            if self.checkpointer is not None:
                instance.request = None
            self._finished.append(instance.instance_id)
            while len(self._finished) > self.settings.finished_instance_retention:
                evicted = self._finished.popleft()
                current = self._instances.get(evicted)
                if current is not None and current.done:
                    del self._instances[evicted]

    # activities

    def execute_activity(
        self,
        instance: PipelineInstance,
        name: str,
        fn: Callable[..., Any],
        *,
        heartbeat: bool = False,
        **kwargs: Any,
    ) -> Any:
        policy = self.retry_policy
        attempt = 1
        while True:
            ctx = ActivityContext(
                name=name,
                report_id=instance.report_id,
                instance_id=instance.instance_id,
                attempt=attempt,
                deps=self.deps,
                heartbeat_interval=self.settings.heartbeat_interval,
                clock=self._clock,
            )
            try:
                result = self._run_attempt(ctx, fn, kwargs, heartbeat)
            except Exception as exc:
                instance.activity_log.append((name, attempt, type(exc).__name__))
                if not is_retryable(exc) or attempt >= policy.maximum_attempts:
                    logger.error(
                        "Activity failed",
                        extra={"activity": name, "attempt": attempt, "reportId": instance.report_id},
                    )
                    raise
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Activity attempt failed; retrying",
                    extra={
                        "activity": name,
                        "attempt": attempt,
                        "reportId": instance.report_id,
                        "delaySeconds": delay,
                        "error": str(exc),
                    },
                )
                self._sleep(delay)
                attempt += 1
                continue
            instance.activity_log.append((name, attempt, "ok"))
            return result

    def _run_attempt(
        self,
        ctx: ActivityContext,
        fn: Callable[..., Any],
        kwargs: Mapping[str, Any],
        heartbeat: bool,
    ) -> Any:
        timeout = self.settings.activity_timeout
        deadline = self._clock() + timeout
        future = self._activity_pool.submit(fn, ctx, **kwargs)
        while True:
            done, _ = wait_futures([future], timeout=self.poll_interval)
            if done:
                return future.result()
            # the abandoned attempt keeps its pool slot until it returns
            if self._clock() >= deadline:
                future.cancel()
                raise ActivityTimeoutError(f"Activity {ctx.name} timed out after {timeout:g}s")
            if heartbeat and ctx.seconds_since_heartbeat() > self.settings.heartbeat_timeout:
                future.cancel()
                raise HeartbeatTimeoutError(
                    f"Activity {ctx.name} missed heartbeats for {self.settings.heartbeat_timeout:g}s"
                )

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Shutting down pipeline engine", extra={"instances": len(self._instances)})
        self._instance_pool.shutdown(wait=wait, cancel_futures=not wait)
        self._activity_pool.shutdown(wait=wait, cancel_futures=not wait)
