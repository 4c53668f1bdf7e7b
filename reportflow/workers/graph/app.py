from __future__ import annotations

import logging
import os
import sqlite3
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.graph import END, StateGraph

from .core.constants import (
    FAILED_STEP_LABEL,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STEP_ORDER,
    UNKNOWN_ERROR_MESSAGE,
)
from .core.state import GraphState, _with_step, report_view
from .core.types import PipelineOutcome
from .core.utils import now_iso
from .nodes import (
    export_formats,
    finalize_report,
    generate_charts,
    generate_insights,
    profile_data,
    render_layout,
    update_report_status,
)

logger = logging.getLogger(__name__)

StepHandler = Callable[[Any, GraphState, str], Dict[str, Any]]


def _profile_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    result = runtime.execute(
        "profile_data",
        profile_data,
        report_id=state["report_id"],
        input_data=state["input_data"],
    )
    return _with_step(
        state,
        "profile",
        status,
        profile=result["profile"],
        records=result["records"],
        text_content=result["text_content"],
    )


def _insights_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    narrative = runtime.execute(
        "generate_insights",
        generate_insights,
        report_id=state["report_id"],
        profile=state["profile"],
        records=state.get("records") or [],
        text_content=state.get("text_content") or [],
        config=state["config"],
    )
    return _with_step(state, "insights", status, narrative=narrative)


def _charts_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    charts = runtime.execute(
        "generate_charts",
        generate_charts,
        heartbeat=True,
        report_id=state["report_id"],
        profile=state["profile"],
        records=state.get("records") or [],
    )
    return _with_step(state, "charts", status, charts=charts)


def _layout_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    result = runtime.execute(
        "render_layout",
        render_layout,
        report_id=state["report_id"],
        report=report_view(state),
        narrative=state["narrative"],
        charts=state.get("charts") or [],
        profile=state["profile"],
    )
    return _with_step(state, "layout", status, html_location=result["html_location"])


def _export_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    files = runtime.execute(
        "export_formats",
        export_formats,
        heartbeat=True,
        report_id=state["report_id"],
        report=report_view(state),
        narrative=state["narrative"],
        charts=state.get("charts") or [],
        profile=state["profile"],
        output_formats=list(state["config"].get("outputFormats") or []),
        html_location=state["html_location"],
    )
    return _with_step(state, "export", status, files=files)


def _finalize_step(runtime: Any, state: GraphState, status: str) -> Dict[str, Any]:
    label = STEP_ORDER[-1][3]
    report = runtime.execute(
        "finalize_report",
        finalize_report,
        report_id=state["report_id"],
        report=report_view(state),
        files=state.get("files") or [],
        profile=state["profile"],
        current_step=label,
        created_at=state.get("created_at"),
    )
    runtime.set_state(STATUS_COMPLETED, STEP_ORDER[-1][2], label)
    return _with_step(state, "finalize", status, report=report)


_STEP_HANDLERS: Dict[str, StepHandler] = {
    "profile": _profile_step,
    "insights": _insights_step,
    "charts": _charts_step,
    "layout": _layout_step,
    "export": _export_step,
    "finalize": _finalize_step,
}


def _step_node(runtime: Any, name: str, status: str, progress: int, label: str, cancellable: bool):
    handler = _STEP_HANDLERS[name]

    def node(state: GraphState) -> Dict[str, Any]:
        if cancellable:
            runtime.check_cancelled()
        if status != STATUS_COMPLETED:
            runtime.transition(status, progress, label)
        return handler(runtime, state, status)

    node.__name__ = f"{name}_node"
    return node


def build_graph(runtime: Any, checkpointer=None):
    g = StateGraph(GraphState)
    for name, status, progress, label, cancellable in STEP_ORDER:
        g.add_node(name, _step_node(runtime, name, status, progress, label, cancellable))

    g.set_entry_point(STEP_ORDER[0][0])
    for (current, *_), (following, *_) in zip(STEP_ORDER, STEP_ORDER[1:]):
        g.add_edge(current, following)
    g.add_edge(STEP_ORDER[-1][0], END)
    return g.compile(checkpointer=checkpointer)


def create_checkpointer(settings: Any) -> Optional[SqliteSaver]:
    if settings.disable_checkpoint:
        return None

    db_path = settings.checkpoint_path
    use_uri = db_path.startswith("file:")
    if not use_uri:
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)

    # shared by every instance thread
    conn = sqlite3.connect(db_path, uri=use_uri, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return SqliteSaver(conn)


def thread_config(instance_id: str) -> Dict[str, Any]:
    return {"configurable": {"thread_id": f"report:{instance_id}"}}


def checkpoint_snapshot(checkpointer: Any, instance_id: str) -> Tuple[Dict[str, Any], Tuple[str, ...]]:
    """Last checkpointed values for an instance and the steps still pending."""
    app = build_graph(None, checkpointer=checkpointer)
    snapshot = app.get_state(thread_config(instance_id))
    return dict(snapshot.values or {}), tuple(snapshot.next or ())


def initial_state(
    report_id: str,
    instance_id: str,
    input_data: Any,
    config: Mapping[str, Any],
    created_at: str,
) -> GraphState:
    return {
        "report_id": report_id,
        "instance_id": instance_id,
        "input_data": list(input_data),
        "config": dict(config),
        "created_at": created_at,
        "step_log": [],
    }


def _failed_report(runtime: Any, message: str, error_type: str) -> Dict[str, Any]:
    live = runtime.query()
    report = dict(runtime.summary)
    report.update(
        {
            "status": STATUS_FAILED,
            "progress": live.progress,
            "currentStep": FAILED_STEP_LABEL,
            "errorMessage": message,
            "errorType": error_type,
            "updatedAt": now_iso(),
            "files": [],
        }
    )
    return report


def fail_workflow(runtime: Any, exc: BaseException) -> PipelineOutcome:
    message = str(exc) or UNKNOWN_ERROR_MESSAGE
    error_type = type(exc).__name__
    runtime.fail(message, error_type)
    logger.error(
        "Report pipeline failed",
        extra={"reportId": runtime.report_id, "instanceId": runtime.instance_id, "errorType": error_type},
        exc_info=exc,
    )
    try:
        runtime.execute(
            "update_report_status",
            update_report_status,
            report_id=runtime.report_id,
            status=STATUS_FAILED,
            current_step=FAILED_STEP_LABEL,
            error_message=message,
            error_type=error_type,
        )
    except Exception:
        logger.exception("Failed to persist FAILED status", extra={"reportId": runtime.report_id})
    return PipelineOutcome(
        report=_failed_report(runtime, message, error_type),
        success=False,
        error=message,
        error_type=error_type,
    )


def run_workflow(runtime: Any, state: Optional[GraphState] = None, *, checkpointer=None) -> PipelineOutcome:
    """Drive one instance to a terminal state; ``state=None`` resumes from the last checkpoint."""
    app = build_graph(runtime, checkpointer=checkpointer)
    config = thread_config(runtime.instance_id) if checkpointer is not None else {}
    try:
        final_state = app.invoke(state, config)
    except Exception as exc:
        return fail_workflow(runtime, exc)
    return PipelineOutcome(report=dict(final_state.get("report") or {}), success=True)
