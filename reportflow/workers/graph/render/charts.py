"""Chart configuration and PNG rasterization with matplotlib."""
from __future__ import annotations

import io
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from ..core.constants import (
    CHART_HEIGHT,
    CHART_PALETTE,
    CHART_PRIMARY,
    CHART_WIDTH,
    MAX_BAR_CATEGORIES_RENDERED,
    MAX_PIE_SLICES,
)
from ..core.utils import coerce_number, label_for, parse_date

logger = logging.getLogger(__name__)

_DPI = 100


def chart_id_for(index: int, chart_type: str) -> str:
    return f"chart-{index + 1:02d}-{chart_type}"


def _y_axes(suggestion: Mapping[str, Any]) -> List[str]:
    y_axis = suggestion.get("yAxis")
    if isinstance(y_axis, list):
        return [str(item) for item in y_axis]
    return [str(y_axis)] if y_axis else []


def _aggregate_by_category(records: Sequence[Mapping[str, Any]], category: str, metric: str) -> Dict[str, Any]:
    totals: Dict[str, float] = {}
    for row in records:
        key = str(row.get(category))
        totals[key] = totals.get(key, 0.0) + coerce_number(row.get(metric))
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:MAX_BAR_CATEGORIES_RENDERED]
    return {"labels": [label for label, _ in ranked], "values": [value for _, value in ranked]}


def _line_config(chart_id: str, suggestion: Mapping[str, Any], records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    x_axis = suggestion.get("xAxis") or ""
    y_axes = _y_axes(suggestion)
    y_axis = y_axes[0] if y_axes else ""
    dated = [(parse_date(row.get(x_axis)), row) for row in records]
    dated = [(stamp, row) for stamp, row in dated if stamp is not None]
    dated.sort(key=lambda item: item[0])
    return {
        "id": chart_id,
        "type": suggestion.get("type", "line"),
        "title": suggestion.get("title", ""),
        "data": {
            "labels": [label_for(row.get(x_axis)) for _, row in dated],
            "datasets": [
                {
                    "label": y_axis,
                    "data": [coerce_number(row.get(y_axis)) for _, row in dated],
                    "color": CHART_PRIMARY,
                }
            ],
        },
        "options": {"xAxisLabel": x_axis, "yAxisLabel": y_axis, "showLegend": True, "showGrid": True},
    }


def _bar_config(chart_id: str, suggestion: Mapping[str, Any], records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    x_axis = suggestion.get("xAxis") or ""
    y_axes = _y_axes(suggestion)
    y_axis = y_axes[0] if y_axes else ""
    aggregated = _aggregate_by_category(records, x_axis, y_axis)
    return {
        "id": chart_id,
        "type": "bar",
        "title": suggestion.get("title", ""),
        "data": {
            "labels": aggregated["labels"],
            "datasets": [
                {
                    "label": y_axis,
                    "data": aggregated["values"],
                    "colors": CHART_PALETTE[: len(aggregated["labels"])],
                }
            ],
        },
        "options": {"xAxisLabel": x_axis, "yAxisLabel": y_axis, "showLegend": False, "showGrid": True},
    }


def _stacked_config(chart_id: str, suggestion: Mapping[str, Any], records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    x_axis = suggestion.get("xAxis") or ""
    categories: List[str] = []
    for row in records:
        key = str(row.get(x_axis))
        if key not in categories:
            categories.append(key)
    datasets = []
    for index, metric in enumerate(_y_axes(suggestion)):
        totals = {category: 0.0 for category in categories}
        for row in records:
            totals[str(row.get(x_axis))] += coerce_number(row.get(metric))
        datasets.append(
            {
                "label": metric,
                "data": [totals[category] for category in categories],
                "color": CHART_PALETTE[index % len(CHART_PALETTE)],
            }
        )
    return {
        "id": chart_id,
        "type": "stacked_bar",
        "title": suggestion.get("title", ""),
        "data": {"labels": categories, "datasets": datasets},
        "options": {"xAxisLabel": x_axis, "showLegend": True, "showGrid": True},
    }


def _pie_config(chart_id: str, suggestion: Mapping[str, Any], records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    x_axis = suggestion.get("xAxis") or ""
    counts: Dict[str, int] = {}
    for row in records:
        key = str(row.get(x_axis))
        counts[key] = counts.get(key, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:MAX_PIE_SLICES]
    return {
        "id": chart_id,
        "type": "donut" if suggestion.get("type") == "donut" else "pie",
        "title": suggestion.get("title", ""),
        "data": {
            "labels": [label for label, _ in ranked],
            "datasets": [
                {
                    "label": "Distribution",
                    "data": [count for _, count in ranked],
                    "colors": CHART_PALETTE[: len(ranked)],
                }
            ],
        },
        "options": {"showLegend": True},
    }


def build_chart_config(chart_id: str, suggestion: Mapping[str, Any], records: Sequence[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    chart_type = suggestion.get("type")
    if chart_type in ("line", "area"):
        return _line_config(chart_id, suggestion, records)
    if chart_type == "bar":
        return _bar_config(chart_id, suggestion, records)
    if chart_type == "stacked_bar":
        return _stacked_config(chart_id, suggestion, records)
    if chart_type in ("pie", "donut"):
        return _pie_config(chart_id, suggestion, records)
    # tables are rendered inside the documents
    return None


def summary_table(profile: Mapping[str, Any]) -> Dict[str, Any]:
    def _fmt(value: Any, digits: Optional[int] = None) -> str:
        if value is None:
            return "N/A"
        if digits is not None:
            return f"{float(value):.{digits}f}"
        return f"{value:g}" if isinstance(value, float) else str(value)

    rows = []
    for column in profile.get("columns", []):
        if column.get("type") != "numeric":
            continue
        rows.append(
            [
                str(column.get("name")),
                _fmt(column.get("min")),
                _fmt(column.get("max")),
                _fmt(column.get("mean"), 2),
                _fmt(column.get("stdDev"), 2),
            ]
        )
    return {"headers": ["Metric", "Min", "Max", "Mean", "Std Dev"], "rows": rows}


class ChartRenderer:
    def __init__(self, width: int = CHART_WIDTH, height: int = CHART_HEIGHT) -> None:
        self.width = width
        self.height = height

    def render(
        self,
        suggestions: Sequence[Mapping[str, Any]],
        records: Sequence[Mapping[str, Any]],
        profile: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        charts = []
        for index, suggestion in enumerate(suggestions):
            chart = self.render_one(index, suggestion, records)
            if chart is not None:
                charts.append(chart)
        return charts

    def render_one(
        self,
        index: int,
        suggestion: Mapping[str, Any],
        records: Sequence[Mapping[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        """Render one suggestion; failures are logged and yield ``None``."""
        chart_id = chart_id_for(index, str(suggestion.get("type")))
        try:
            config = build_chart_config(chart_id, suggestion, records)
            if config is None:
                return None
            return {"id": chart_id, "config": config, "imageBytes": self.rasterize(config)}
        except Exception:
            logger.exception("Failed to generate chart", extra={"chart": suggestion.get("title")})
            return None

    def rasterize(self, config: Mapping[str, Any]) -> bytes:
        # no pyplot: figures are drawn from concurrent activity threads
        fig = Figure(figsize=(self.width / _DPI, self.height / _DPI), dpi=_DPI)
        FigureCanvasAgg(fig)
        ax = fig.add_subplot(1, 1, 1)
        self._draw(ax, config)
        ax.set_title(config.get("title", ""), fontsize=14, fontweight="bold")
        fig.tight_layout()
        buffer = io.BytesIO()
        fig.savefig(buffer, format="png", facecolor="white")
        return buffer.getvalue()

    def _draw(self, ax: Any, config: Mapping[str, Any]) -> None:
        chart_type = config.get("type")
        data = config.get("data", {})
        labels = list(data.get("labels", []))
        datasets = list(data.get("datasets", []))
        options = config.get("options", {})

        if chart_type in ("pie", "donut"):
            dataset = datasets[0] if datasets else {"data": []}
            wedge = {"width": 0.45} if chart_type == "donut" else None
            ax.pie(dataset["data"], labels=labels, colors=dataset.get("colors"), wedgeprops=wedge, autopct="%1.0f%%")
            ax.axis("equal")
            return

        positions = list(range(len(labels)))
        if chart_type in ("line", "area"):
            for dataset in datasets:
                ax.plot(positions, dataset["data"], color=dataset.get("color"), linewidth=2, label=dataset["label"])
                if chart_type == "area":
                    ax.fill_between(positions, dataset["data"], color=dataset.get("color"), alpha=0.2)
        elif chart_type == "stacked_bar":
            bottoms = [0.0] * len(labels)
            for dataset in datasets:
                ax.bar(positions, dataset["data"], bottom=bottoms, color=dataset.get("color"), label=dataset["label"])
                bottoms = [base + value for base, value in zip(bottoms, dataset["data"])]
        else:
            for dataset in datasets:
                ax.bar(positions, dataset["data"], color=dataset.get("colors") or CHART_PRIMARY, label=dataset["label"])

        step = max(1, len(labels) // 12)
        ax.set_xticks(positions[::step])
        ax.set_xticklabels(labels[::step], rotation=30, ha="right")
        ax.set_xlabel(options.get("xAxisLabel", ""))
        ax.set_ylabel(options.get("yAxisLabel", ""))
        ax.grid(bool(options.get("showGrid", True)), alpha=0.3)
        if options.get("showLegend") and datasets:
            ax.legend(loc="best")
