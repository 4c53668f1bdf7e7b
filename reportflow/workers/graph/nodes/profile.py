from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.constants import (
    CATEGORICAL_MIN_VALUES,
    CATEGORICAL_UNIQUE_RATIO,
    MAX_BAR_CATEGORIES,
    MAX_BAR_METRICS,
    MAX_CHART_SUGGESTIONS,
    MAX_LINE_SUGGESTIONS,
    MAX_PIE_CARDINALITY,
    MAX_PIE_SUGGESTIONS,
    MAX_STACKED_METRICS,
    QUALITY_NULL_WEIGHT,
    QUALITY_UNIQUENESS_FLOOR,
    QUALITY_UNIQUENESS_PENALTY,
    QUALITY_UNKNOWN_WEIGHT,
    TOP_VALUES_LIMIT,
    TYPE_THRESHOLD,
)
from ..core.context import ActivityContext
from ..core.types import ChartSuggestion, ColumnProfile, DataProfile, NormalizedInput
from ..core.utils import parse_date, to_number
from ..io.ingest import normalize_input

logger = logging.getLogger(__name__)


def _is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        raise ValueError("median of empty sequence")
    middle = count // 2
    if count % 2 == 0:
        return (ordered[middle - 1] + ordered[middle]) / 2
    return ordered[middle]


def population_std_dev(values: Sequence[float], mean: Optional[float] = None) -> float:
    if not values:
        return 0.0
    center = sum(values) / len(values) if mean is None else mean
    return math.sqrt(sum((value - center) ** 2 for value in values) / len(values))


def infer_column_type(values: Sequence[Any]) -> str:
    """Classify a column; date and boolean run before numeric since both can coerce to numbers."""
    present = [value for value in values if not _is_null(value)]
    if not present:
        return "unknown"
    total = len(present)

    dates = sum(1 for value in present if parse_date(value) is not None)
    if dates / total >= TYPE_THRESHOLD:
        return "datetime"

    booleans = sum(1 for value in present if isinstance(value, bool))
    if booleans / total >= TYPE_THRESHOLD:
        return "boolean"

    numbers = sum(1 for value in present if to_number(value) is not None)
    if numbers / total >= TYPE_THRESHOLD:
        return "numeric"

    distinct = len({str(value) for value in present})
    if distinct / total < CATEGORICAL_UNIQUE_RATIO and total > CATEGORICAL_MIN_VALUES:
        return "categorical"
    return "text"


def _top_values(values: Sequence[Any]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for value in values:
        key = str(value)
        counts[key] = counts.get(key, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{"value": value, "count": count} for value, count in ranked[:TOP_VALUES_LIMIT]]


def profile_column(name: str, values: Sequence[Any]) -> ColumnProfile:
    present = [value for value in values if not _is_null(value)]
    column = ColumnProfile(
        name=name,
        type=infer_column_type(values),
        null_count=len(values) - len(present),
        unique_count=len({str(value) for value in present}),
    )

    if column.type == "numeric":
        numbers = [number for number in (to_number(value) for value in present) if number is not None]
        if numbers:
            mean = sum(numbers) / len(numbers)
            column.min = min(numbers)
            column.max = max(numbers)
            column.mean = mean
            column.median = median(numbers)
            column.std_dev = population_std_dev(numbers, mean)
    elif column.type in ("categorical", "text"):
        column.top_values = _top_values(present)
    elif column.type == "datetime":
        dates = [parsed for parsed in (parse_date(value) for value in present) if parsed is not None]
        if dates:
            column.min = min(dates).isoformat()
            column.max = max(dates).isoformat()
    return column


def calculate_quality_score(columns: Sequence[ColumnProfile], row_count: int) -> int:
    if not columns or row_count <= 0:
        return 0

    score = 100.0
    total_cells = row_count * len(columns)
    null_cells = sum(column.null_count for column in columns)
    score -= QUALITY_NULL_WEIGHT * (null_cells / total_cells)

    non_categorical = [column for column in columns if column.type != "categorical"]
    if non_categorical:
        uniqueness = sum(column.unique_count / row_count for column in non_categorical) / len(non_categorical)
        if uniqueness < QUALITY_UNIQUENESS_FLOOR:
            score -= QUALITY_UNIQUENESS_PENALTY

    unknown = sum(1 for column in columns if column.type == "unknown")
    score -= QUALITY_UNKNOWN_WEIGHT * (unknown / len(columns))

    return max(0, min(100, _round_half_up(score)))


def suggest_charts(columns: Sequence[ColumnProfile], has_records: bool) -> List[ChartSuggestion]:
    numeric = [column for column in columns if column.type == "numeric"]
    categorical = [column for column in columns if column.type == "categorical"]
    datetimes = [column for column in columns if column.type == "datetime"]
    suggestions: List[ChartSuggestion] = []

    if datetimes:
        time_axis = datetimes[0].name
        for column in numeric[:MAX_LINE_SUGGESTIONS]:
            suggestions.append(
                ChartSuggestion(
                    type="line",
                    title=f"{column.name} Over Time",
                    x_axis=time_axis,
                    y_axis=column.name,
                    reason="Time-series data detected - line chart recommended for trend visualization",
                )
            )

    for category in categorical[:MAX_BAR_CATEGORIES]:
        for metric in numeric[:MAX_BAR_METRICS]:
            suggestions.append(
                ChartSuggestion(
                    type="bar",
                    title=f"{metric.name} by {category.name}",
                    x_axis=category.name,
                    y_axis=metric.name,
                    reason="Categorical grouping detected - bar chart recommended for comparison",
                )
            )

    low_cardinality = [column for column in categorical if column.unique_count <= MAX_PIE_CARDINALITY]
    for category in low_cardinality[:MAX_PIE_SUGGESTIONS]:
        suggestions.append(
            ChartSuggestion(
                type="pie",
                title=f"{category.name} Distribution",
                x_axis=category.name,
                reason="Low-cardinality categorical data - pie chart recommended for distribution",
            )
        )

    if len(numeric) >= 2 and categorical:
        suggestions.append(
            ChartSuggestion(
                type="stacked_bar",
                title="Multi-Metric Comparison",
                x_axis=categorical[0].name,
                y_axis=[column.name for column in numeric[:MAX_STACKED_METRICS]],
                reason="Multiple numeric metrics with categories - stacked bar recommended",
            )
        )

    if has_records:
        suggestions.append(
            ChartSuggestion(
                type="table",
                title="Key Metrics Summary",
                reason="Tabular summary of key statistics",
            )
        )

    return suggestions[:MAX_CHART_SUGGESTIONS]


def profile_records(records: Sequence[Dict[str, Any]], column_names: Optional[Sequence[str]] = None) -> DataProfile:
    if not records:
        return DataProfile()

    if column_names is None:
        seen: Dict[str, None] = {}
        for record in records:
            for key in record:
                seen.setdefault(key, None)
        column_names = list(seen)

    row_count = len(records)
    columns = [profile_column(name, [record.get(name) for record in records]) for name in column_names]
    return DataProfile(
        row_count=row_count,
        column_count=len(columns),
        columns=columns,
        data_quality_score=calculate_quality_score(columns, row_count),
        suggested_charts=suggest_charts(columns, has_records=True),
    )


def profile_input(blocks: Sequence[Dict[str, Any]]) -> Tuple[DataProfile, NormalizedInput]:
    normalized = normalize_input(blocks)
    return profile_records(normalized.records, normalized.columns), normalized


def profile_data(ctx: ActivityContext, *, report_id: str, input_data: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Normalize the input blocks, profile them and store the profile on the report."""
    profile, normalized = profile_input(input_data)
    payload = profile.to_dict()
    ctx.deps.storage.save_report(report_id, {"dataProfile": payload})
    logger.info(
        "Profiled input data",
        extra={
            "reportId": report_id,
            "rows": profile.row_count,
            "columns": profile.column_count,
            "qualityScore": profile.data_quality_score,
        },
    )
    return {
        "profile": payload,
        "records": normalized.records,
        "text_content": normalized.text_blocks,
    }
