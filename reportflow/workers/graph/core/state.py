from __future__ import annotations

from typing import Any, Dict, List, Mapping, TypedDict

from .utils import now_iso


class GraphState(TypedDict, total=False):
    report_id: str
    instance_id: str
    input_data: List[Dict[str, Any]]
    config: Dict[str, Any]
    created_at: str
    profile: Dict[str, Any]
    records: List[Dict[str, Any]]
    text_content: List[str]
    narrative: Dict[str, Any]
    charts: List[Dict[str, Any]]
    html_location: str
    files: List[Dict[str, Any]]
    report: Dict[str, Any]
    step_log: List[Dict[str, Any]]


def _with_step(state: Mapping[str, Any], step: str, status: str, **extra: Any) -> Dict[str, Any]:
    log = list(state.get("step_log") or [])
    log.append({"step": step, "status": status, "completedAt": now_iso()})
    update: Dict[str, Any] = {"step_log": log}
    update.update(extra)
    return update


def report_view(state: Mapping[str, Any]) -> Dict[str, Any]:
    """The report fields document renderers need, built from graph state."""
    config = state.get("config") or {}
    view: Dict[str, Any] = {
        "id": state.get("report_id"),
        "title": config.get("title"),
        "style": config.get("style"),
        "outputFormats": list(config.get("outputFormats") or []),
        "branding": dict(config.get("branding") or {}),
        "createdAt": state.get("created_at"),
    }
    if config.get("authorName"):
        view["authorName"] = config["authorName"]
    return view
