from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .constants import INITIAL_STEP_LABEL, STATUS_QUEUED

AxisRef = Union[str, List[str]]


@dataclass
class ColumnProfile:
    name: str
    type: str = "unknown"
    null_count: int = 0
    unique_count: int = 0
    min: Any = None
    max: Any = None
    mean: Optional[float] = None
    median: Optional[float] = None
    std_dev: Optional[float] = None
    top_values: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "nullCount": self.null_count,
            "uniqueCount": self.unique_count,
        }
        if self.type == "numeric":
            payload.update(
                {
                    "min": self.min,
                    "max": self.max,
                    "mean": self.mean,
                    "median": self.median,
                    "stdDev": self.std_dev,
                }
            )
        elif self.type == "datetime":
            payload.update({"min": self.min, "max": self.max})
        if self.top_values is not None:
            payload["topValues"] = [dict(item) for item in self.top_values]
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnProfile":
        return cls(
            name=str(data.get("name")),
            type=str(data.get("type", "unknown")),
            null_count=int(data.get("nullCount", 0)),
            unique_count=int(data.get("uniqueCount", 0)),
            min=data.get("min"),
            max=data.get("max"),
            mean=data.get("mean"),
            median=data.get("median"),
            std_dev=data.get("stdDev"),
            top_values=data.get("topValues"),
        )


@dataclass
class ChartSuggestion:
    type: str
    title: str
    reason: str
    x_axis: Optional[str] = None
    y_axis: Optional[AxisRef] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "title": self.title}
        if self.x_axis is not None:
            payload["xAxis"] = self.x_axis
        if self.y_axis is not None:
            payload["yAxis"] = list(self.y_axis) if isinstance(self.y_axis, list) else self.y_axis
        payload["reason"] = self.reason
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChartSuggestion":
        y_axis = data.get("yAxis")
        return cls(
            type=str(data.get("type")),
            title=str(data.get("title", "")),
            reason=str(data.get("reason", "")),
            x_axis=data.get("xAxis"),
            y_axis=list(y_axis) if isinstance(y_axis, (list, tuple)) else y_axis,
        )


@dataclass
class DataProfile:
    row_count: int = 0
    column_count: int = 0
    columns: List[ColumnProfile] = field(default_factory=list)
    data_quality_score: int = 0
    suggested_charts: List[ChartSuggestion] = field(default_factory=list)

    def column(self, name: str) -> Optional[ColumnProfile]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def columns_of_type(self, column_type: str) -> List[ColumnProfile]:
        return [column for column in self.columns if column.type == column_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rowCount": self.row_count,
            "columnCount": self.column_count,
            "columns": [column.to_dict() for column in self.columns],
            "dataQualityScore": self.data_quality_score,
            "suggestedCharts": [chart.to_dict() for chart in self.suggested_charts],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DataProfile":
        return cls(
            row_count=int(data.get("rowCount", 0)),
            column_count=int(data.get("columnCount", 0)),
            columns=[ColumnProfile.from_dict(item) for item in data.get("columns", [])],
            data_quality_score=int(data.get("dataQualityScore", 0)),
            suggested_charts=[ChartSuggestion.from_dict(item) for item in data.get("suggestedCharts", [])],
        )


@dataclass
class NormalizedInput:
    records: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    text_blocks: List[str] = field(default_factory=list)


@dataclass
class ReportFile:
    format: str
    location: str
    size: int
    generated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "location": self.location,
            "size": self.size,
            "generatedAt": self.generated_at,
        }


@dataclass
class WorkflowState:
    status: str = STATUS_QUEUED
    progress: int = 0
    current_step: str = INITIAL_STEP_LABEL
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "progress": self.progress,
            "currentStep": self.current_step,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.error_type is not None:
            payload["errorType"] = self.error_type
        return payload


@dataclass
class CostMetrics:
    report_id: str
    timestamp: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    images_generated: int = 0
    estimated_cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "timestamp": self.timestamp,
            "openai": {
                "promptTokens": self.prompt_tokens,
                "completionTokens": self.completion_tokens,
                "totalTokens": self.total_tokens,
                "imagesGenerated": self.images_generated,
                "estimatedCost": self.estimated_cost,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CostMetrics":
        usage = data.get("openai") or {}
        return cls(
            report_id=str(data.get("reportId")),
            timestamp=str(data.get("timestamp", "")),
            prompt_tokens=int(usage.get("promptTokens", 0)),
            completion_tokens=int(usage.get("completionTokens", 0)),
            total_tokens=int(usage.get("totalTokens", 0)),
            images_generated=int(usage.get("imagesGenerated", 0)),
            estimated_cost=float(usage.get("estimatedCost", 0.0)),
        )


@dataclass
class RenderedDocument:
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class PipelineOutcome:
    report: Dict[str, Any]
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"report": dict(self.report), "success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        if self.error_type is not None:
            payload["errorType"] = self.error_type
        return payload
